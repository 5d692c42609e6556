"""Core domain models.

Records arrive from the source as flat rows. The core only interprets the id,
timestamp, workflow status and the four boolean flags; every other column is
carried through untouched as an opaque payload for the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

ID_FIELD = "id"
CREATED_AT_FIELD = "created_at"
# The classification pipeline stores the workflow status in "permission".
STATUS_FIELD = "permission"
FLAG_FIELDS = ("escalation", "cancel", "important", "bookcall")


class Status(str, Enum):
    """Workflow status values written by the pipeline and by operators."""

    APPROVAL = "Approval"
    OBJECTION = "Objection"
    MANUAL_HANDLE = "Manual Handle"
    WAITING = "Waiting"
    ESCALATION = "Escalation"
    CANCEL = "Cancel"
    IMPORTANT = "Important"
    BOOKCALL = "Bookcall"
    REPLIED = "Replied"


def parse_timestamp(value: Any) -> datetime:
    """Return an aware datetime from a datetime or ISO-8601 string.

    Naive values are assumed to be UTC.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Record:
    """A single classified message as seen by the dashboard."""

    id: str
    created_at: datetime
    status: Optional[str] = None
    escalation: bool = False
    cancel: bool = False
    important: bool = False
    bookcall: bool = False
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Record":
        """Build a record from a source row keyed by column name."""

        known = {ID_FIELD, CREATED_AT_FIELD, STATUS_FIELD, *FLAG_FIELDS}
        payload = {key: value for key, value in row.items() if key not in known}
        status = row.get(STATUS_FIELD)
        if isinstance(status, Status):
            status = status.value
        return cls(
            id=str(row[ID_FIELD]),
            created_at=parse_timestamp(row[CREATED_AT_FIELD]),
            status=status,
            escalation=bool(row.get("escalation")),
            cancel=bool(row.get("cancel")),
            important=bool(row.get("important")),
            bookcall=bool(row.get("bookcall")),
            payload=MappingProxyType(payload),
        )

    @property
    def is_waiting(self) -> bool:
        # Unset status means the pipeline has not decided yet.
        return self.status is None or self.status == Status.WAITING

    def get(self, column: str, default: Any = None) -> Any:
        """Return a column value, looking at core fields first."""

        if column == ID_FIELD:
            return self.id
        if column == CREATED_AT_FIELD:
            return self.created_at
        if column == STATUS_FIELD:
            return self.status
        if column in FLAG_FIELDS:
            return getattr(self, column)
        return self.payload.get(column, default)

    def to_row(self) -> dict[str, Any]:
        """Return a flat row, the inverse of ``from_row``."""

        row: dict[str, Any] = {
            ID_FIELD: self.id,
            CREATED_AT_FIELD: self.created_at.isoformat(),
            STATUS_FIELD: self.status,
        }
        for flag in FLAG_FIELDS:
            row[flag] = getattr(self, flag)
        row.update(self.payload)
        return row


@dataclass(frozen=True)
class Snapshot:
    """The materialized record set for the active filter."""

    records: tuple[Record, ...] = ()
    is_loading: bool = False
    last_error: Optional[Exception] = None
    generation: int = 0
