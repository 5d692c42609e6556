"""Named operator work queues.

A queue is just a filter plus the action that closes an entry out. All queues
list the oldest entries first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sendvision.core.actions import RESOLVE_ESCALATION, SUBMIT_MANUAL_REPLY
from sendvision.core.filters import RecordFilter
from sendvision.core.models import CREATED_AT_FIELD, STATUS_FIELD, Status

QUEUE_ORDER_BY = CREATED_AT_FIELD


@dataclass(frozen=True)
class QueueView:
    name: str
    title: str
    record_filter: RecordFilter
    action: Optional[str]
    empty_message: str


QUEUE_VIEWS: dict[str, QueueView] = {
    view.name: view
    for view in (
        QueueView(
            name="escalations",
            title="Escalations",
            record_filter=RecordFilter.where(escalation=True),
            action=RESOLVE_ESCALATION,
            empty_message="There are no escalations waiting for a response.",
        ),
        QueueView(
            name="manual",
            title="Manual Replies",
            record_filter=RecordFilter.from_mapping({STATUS_FIELD: Status.MANUAL_HANDLE.value}),
            action=SUBMIT_MANUAL_REPLY,
            empty_message="There are no messages waiting for a manual reply.",
        ),
        QueueView(
            name="sendguard",
            title="SendGuard - Content Approval",
            record_filter=RecordFilter.from_mapping(
                {STATUS_FIELD: Status.WAITING.value, "removed": False}
            ),
            action=None,
            empty_message="There are no items awaiting moderation.",
        ),
    )
}


def get_queue(name: str) -> QueueView:
    try:
        return QUEUE_VIEWS[name]
    except KeyError:
        raise KeyError(f"Unknown queue: {name}") from None
