from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from sendvision.core.filters import (
    OP_EQ,
    OP_GTE,
    OP_IS,
    OP_LTE,
    DateRange,
    Predicate,
    RecordFilter,
    match_all,
)
from sendvision.core.models import Record


def test_null_value_becomes_is_predicate() -> None:
    record_filter = RecordFilter.where(permission=None, escalation=True)
    predicates = record_filter.predicates(timezone.utc)

    assert Predicate("permission", OP_IS) in predicates
    assert Predicate("escalation", OP_EQ, True) in predicates


def test_filters_from_same_mapping_are_equal() -> None:
    first = RecordFilter.from_mapping({"permission": "Waiting", "removed": False})
    second = RecordFilter.from_mapping({"removed": False, "permission": "Waiting"})
    assert first == second
    assert hash(first) == hash(second)


def test_upper_bound_is_widened_by_one_day() -> None:
    date_range = DateRange(start=date(2024, 3, 1), end=date(2024, 3, 7))
    lower, upper = date_range.bounds(timezone.utc)

    assert lower == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert upper == datetime(2024, 3, 8, tzinfo=timezone.utc)


def test_record_late_on_end_day_is_included() -> None:
    record_filter = RecordFilter(date_range=DateRange(end=date(2024, 3, 7)))
    predicates = record_filter.predicates(timezone.utc)
    late = Record(id="a", created_at=datetime(2024, 3, 7, 23, 59, 59, tzinfo=timezone.utc))
    next_day = Record(id="b", created_at=datetime(2024, 3, 8, 0, 0, 1, tzinfo=timezone.utc))

    assert match_all(predicates, late.get)
    assert not match_all(predicates, next_day.get)


def test_bounds_follow_the_configured_timezone() -> None:
    tz = ZoneInfo("Europe/Athens")
    lower, upper = DateRange(start=date(2024, 1, 10), end=date(2024, 1, 10)).bounds(tz)

    assert lower.utcoffset() == upper.utcoffset()
    assert (upper - lower).days == 1
    assert lower.astimezone(timezone.utc).hour == 22


def test_open_ended_range_only_emits_one_bound() -> None:
    predicates = RecordFilter(date_range=DateRange(start=date(2024, 1, 1))).predicates(timezone.utc)
    assert [predicate.op for predicate in predicates] == [OP_GTE]

    predicates = RecordFilter(date_range=DateRange(end=date(2024, 1, 1))).predicates(timezone.utc)
    assert [predicate.op for predicate in predicates] == [OP_LTE]


def test_last_days_window() -> None:
    window = DateRange.last_days(7, today=date(2024, 5, 10))
    assert window == DateRange(start=date(2024, 5, 3), end=date(2024, 5, 10))


def test_with_date_range_keeps_equality_checks() -> None:
    base = RecordFilter.where(escalation=True)
    windowed = base.with_date_range(DateRange(start=date(2024, 1, 1)))

    assert windowed.equals == base.equals
    assert base.date_range is None
    assert windowed != base


def test_predicate_matching_on_string_timestamps() -> None:
    predicate = Predicate("created_at", OP_GTE, datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert predicate.matches("2024-01-01T00:00:00Z")
    assert not predicate.matches("2023-12-31T23:59:59+00:00")
    assert not predicate.matches(None)


def test_equality_never_matches_null() -> None:
    assert not Predicate("permission", OP_EQ, "Waiting").matches(None)
    assert Predicate("permission", OP_IS).matches(None)
    assert not Predicate("permission", OP_IS).matches("Waiting")


def test_unknown_operator_is_rejected() -> None:
    with pytest.raises(ValueError):
        Predicate("permission", "like", "Wait%")
