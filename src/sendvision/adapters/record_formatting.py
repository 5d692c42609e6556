"""Shared record formatting helpers for terminal output.

Keeping labels here prevents drift between commands and keeps queue entries
consistent regardless of which view shows them.
"""

from __future__ import annotations

from datetime import tzinfo
from typing import Any, Optional

from sendvision.core.models import Record

# (label, column) pairs shown for each queue, in display order.
ESCALATION_FIELDS = (
    ("Thread Context", "Previous_Emails_Summary"),
    ("Why I'm not able to do it", "reasoning"),
    ("Current Customer Message", "Customer_Email"),
    ("CRM Notes", "CRM_notes"),
)
MANUAL_REPLY_FIELDS = (
    ("Required Feedback", "feedback"),
    ("Thread Context", "Previous_Emails_Summary"),
    ("Current Customer Message", "Customer_Email"),
    ("CRM Notes", "CRM_notes"),
    ("Thought Process", "reasoning"),
    ("Availabilities", "Availabilities"),
    ("Original Draft Reply", "draft_reply"),
)
SENDGUARD_FIELDS = (
    ("Current Customer Message", "Customer_Email"),
    ("Original Draft Reply", "draft_reply"),
)
QUEUE_FIELDS = {
    "escalations": ESCALATION_FIELDS,
    "manual": MANUAL_REPLY_FIELDS,
    "sendguard": SENDGUARD_FIELDS,
}


def format_timestamp(record: Record, tz: Optional[tzinfo] = None) -> str:
    return record.created_at.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def context_fields(record: Record, queue_name: str) -> list[tuple[str, str]]:
    """Return the non-empty (label, value) pairs to show for a queue entry."""

    pairs: list[tuple[str, str]] = []
    for label, column in QUEUE_FIELDS.get(queue_name, ()):
        # Availabilities only matter when the customer asked for a call.
        if column == "Availabilities" and not record.bookcall:
            continue
        value = record.get(column)
        if _has_value(value):
            pairs.append((label, str(value)))
    return pairs


def flag_labels(record: Record) -> list[str]:
    labels = []
    for flag in ("escalation", "cancel", "important", "bookcall"):
        if getattr(record, flag):
            labels.append(flag.capitalize())
    return labels


def format_record_text(record: Record, queue_name: str, tz: Optional[tzinfo] = None) -> str:
    """Plain-text block for one queue entry."""

    status = record.status or "Waiting"
    header = f"[{format_timestamp(record, tz)}] {record.id} ({status})"
    flags = flag_labels(record)
    if flags:
        header += f" [{', '.join(flags)}]"

    lines = [header]
    for label, value in context_fields(record, queue_name):
        lines.extend(["", f"{label}:", value])
    return "\n".join(lines)
