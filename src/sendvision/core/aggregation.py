"""Live statistics over a snapshot (core domain).

Everything here is a pure function of the records passed in, so callers may
recompute as often as they like and cache by snapshot generation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sendvision.core.models import Record, Status

PERMISSION_BREAKDOWN = "permission"
OVERALL_BREAKDOWN = "overall"

PERMISSION_CATEGORIES = (
    Status.APPROVAL.value,
    Status.OBJECTION.value,
    Status.MANUAL_HANDLE.value,
    Status.WAITING.value,
)
OVERALL_CATEGORIES = (
    Status.ESCALATION.value,
    Status.CANCEL.value,
    Status.IMPORTANT.value,
    Status.BOOKCALL.value,
)


@dataclass(frozen=True)
class AggregateResult:
    """Counters for the eight dashboard categories."""

    approval: int = 0
    objection: int = 0
    manual_handle: int = 0
    waiting: int = 0
    escalation: int = 0
    cancel: int = 0
    important: int = 0
    bookcall: int = 0

    def as_dict(self) -> dict[str, int]:
        """Category name to count, in dashboard display order."""

        return {
            Status.APPROVAL.value: self.approval,
            Status.OBJECTION.value: self.objection,
            Status.MANUAL_HANDLE.value: self.manual_handle,
            Status.ESCALATION.value: self.escalation,
            Status.CANCEL.value: self.cancel,
            Status.IMPORTANT.value: self.important,
            Status.BOOKCALL.value: self.bookcall,
            Status.WAITING.value: self.waiting,
        }

    @property
    def total_flagged(self) -> int:
        return self.escalation + self.cancel + self.important + self.bookcall


def aggregate(records: Iterable[Record]) -> AggregateResult:
    """Count records per status bucket and per flag.

    Status buckets are exclusive (unknown statuses land in none of them);
    flag buckets are independent of status and of each other.
    """

    counts = dict.fromkeys(
        ("approval", "objection", "manual_handle", "waiting",
         "escalation", "cancel", "important", "bookcall"),
        0,
    )
    status_keys = {
        Status.APPROVAL.value: "approval",
        Status.OBJECTION.value: "objection",
        Status.MANUAL_HANDLE.value: "manual_handle",
    }

    for record in records:
        if record.is_waiting:
            counts["waiting"] += 1
        elif record.status in status_keys:
            counts[status_keys[record.status]] += 1

        if record.escalation:
            counts["escalation"] += 1
        if record.cancel:
            counts["cancel"] += 1
        if record.important:
            counts["important"] += 1
        if record.bookcall:
            counts["bookcall"] += 1

    return AggregateResult(**counts)


def _breakdown(result: AggregateResult, categories: tuple[str, ...]) -> list[tuple[str, int]]:
    # Zero-sized pie segments render as nothing, so they are left out.
    counts = result.as_dict()
    return [(category, counts[category]) for category in categories if counts[category]]


def permission_breakdown(result: AggregateResult) -> list[tuple[str, int]]:
    return _breakdown(result, PERMISSION_CATEGORIES)


def overall_breakdown(result: AggregateResult) -> list[tuple[str, int]]:
    return _breakdown(result, OVERALL_CATEGORIES)


def breakdowns(result: AggregateResult) -> dict[str, list[tuple[str, int]]]:
    """Both chart groupings keyed by name."""

    return {
        PERMISSION_BREAKDOWN: permission_breakdown(result),
        OVERALL_BREAKDOWN: overall_breakdown(result),
    }
