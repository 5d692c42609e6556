"""Declarative record filters (core domain).

A filter is a frozen value: equality checks on columns plus an optional
calendar-day window on ``created_at``. Sources receive the flattened
predicate tuple and translate it into their own query language.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Iterable, Mapping, Optional

from sendvision.core.models import CREATED_AT_FIELD, parse_timestamp

OP_EQ = "eq"
OP_IS = "is"
OP_GTE = "gte"
OP_LTE = "lte"
OPERATORS = (OP_EQ, OP_IS, OP_GTE, OP_LTE)


@dataclass(frozen=True)
class Predicate:
    """A single column comparison understood by every record source."""

    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported predicate operator: {self.op}")

    def matches(self, value: Any) -> bool:
        """Evaluate the predicate against a column value in process."""

        if self.op == OP_IS:
            return value is None
        if self.op == OP_EQ:
            return value is not None and value == self.value
        if value is None:
            return False
        if self.field == CREATED_AT_FIELD:
            value = parse_timestamp(value)
        if self.op == OP_GTE:
            return value >= self.value
        return value <= self.value


@dataclass(frozen=True)
class DateRange:
    """Calendar-day window over ``created_at``; either side may be open."""

    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def last_days(cls, days: int, today: Optional[date] = None) -> "DateRange":
        """Window used by the dashboard when the operator picked nothing."""

        today = today or date.today()
        return cls(start=today - timedelta(days=days), end=today)

    def bounds(self, tz: tzinfo) -> tuple[Optional[datetime], Optional[datetime]]:
        """Return (lower, upper) timestamps, both inclusive.

        The upper bound is widened to midnight after ``end`` so records from
        any time on the ``end`` day are kept.
        """

        lower = datetime.combine(self.start, time.min, tzinfo=tz) if self.start else None
        upper = None
        if self.end:
            upper = datetime.combine(self.end + timedelta(days=1), time.min, tzinfo=tz)
        return lower, upper


@dataclass(frozen=True)
class RecordFilter:
    """Immutable filter: column equality checks and an optional date window."""

    equals: tuple[tuple[str, Any], ...] = ()
    date_range: Optional[DateRange] = None

    @classmethod
    def where(cls, date_range: Optional[DateRange] = None, **equals: Any) -> "RecordFilter":
        return cls.from_mapping(equals, date_range=date_range)

    @classmethod
    def from_mapping(
        cls, equals: Mapping[str, Any], date_range: Optional[DateRange] = None
    ) -> "RecordFilter":
        # Sorted so two filters built from the same mapping compare equal.
        return cls(equals=tuple(sorted(equals.items())), date_range=date_range)

    def with_date_range(self, date_range: Optional[DateRange]) -> "RecordFilter":
        return replace(self, date_range=date_range)

    def predicates(self, tz: tzinfo) -> tuple[Predicate, ...]:
        """Flatten the filter into source-level predicates."""

        predicates = [
            Predicate(column, OP_IS) if value is None else Predicate(column, OP_EQ, value)
            for column, value in self.equals
        ]
        if self.date_range is not None:
            lower, upper = self.date_range.bounds(tz)
            if lower is not None:
                predicates.append(Predicate(CREATED_AT_FIELD, OP_GTE, lower))
            if upper is not None:
                predicates.append(Predicate(CREATED_AT_FIELD, OP_LTE, upper))
        return tuple(predicates)


def match_all(predicates: Iterable[Predicate], getter) -> bool:
    """Return True when every predicate accepts the value ``getter`` yields."""

    return all(predicate.matches(getter(predicate.field)) for predicate in predicates)
