"""Operator workflow actions (core domain).

Each action is a single field-set mutation keyed by record id. There is no
read-modify-write and no optimistic concurrency: the source applies last
write wins. A successful action does not touch any snapshot; the change
signal (or an explicit refresh by the caller) brings the view up to date.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sendvision.core.errors import DuplicateSubmissionError, RemoteError, ValidationError
from sendvision.core.models import STATUS_FIELD, Status
from sendvision.core.ports import RecordSource

LOGGER = logging.getLogger(__name__)

RESOLVE_ESCALATION = "resolve_escalation"
SUBMIT_MANUAL_REPLY = "submit_manual_reply"
ACTIONS = (RESOLVE_ESCALATION, SUBMIT_MANUAL_REPLY)

ESCALATED_REPLY_FIELD = "Escalated_reply"
HUMAN_REPLY_FIELD = "human_reply"
HUMAN_NAME_FIELD = "human_name"


def _require_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{label} cannot be empty.")
    return value


class WorkflowActionExecutor:
    """Applies operator actions and guards against double submission."""

    def __init__(self, source: RecordSource, collection: str) -> None:
        self._source = source
        self._collection = collection
        self._pending: set[str] = set()

    def is_pending(self, record_id: str) -> bool:
        """True while a submission for ``record_id`` is in flight."""

        return record_id in self._pending

    async def resolve_escalation(self, record_id: str, reply_text: str) -> None:
        """Store the operator's answer and clear the escalation flag."""

        reply = _require_text(reply_text, "Response")
        await self._submit(
            record_id,
            {ESCALATED_REPLY_FIELD: reply, "escalation": False},
        )
        LOGGER.info("Escalation handled for %s", record_id)

    async def submit_manual_reply(
        self,
        record_id: str,
        reply_text: str,
        author_name: Optional[str] = None,
    ) -> None:
        """Store a hand-written reply and mark the record as replied."""

        reply = _require_text(reply_text, "Reply")
        await self._submit(
            record_id,
            {
                HUMAN_REPLY_FIELD: reply,
                HUMAN_NAME_FIELD: author_name or None,
                STATUS_FIELD: Status.REPLIED.value,
            },
        )
        LOGGER.info("Manual reply submitted for %s", record_id)

    async def dispatch(self, action_name: str, record_id: str, payload: Mapping[str, Any]) -> None:
        """Route an action by name; payload keys are ``reply`` and ``name``."""

        if action_name == RESOLVE_ESCALATION:
            await self.resolve_escalation(record_id, payload.get("reply", ""))
        elif action_name == SUBMIT_MANUAL_REPLY:
            await self.submit_manual_reply(
                record_id,
                payload.get("reply", ""),
                author_name=payload.get("name"),
            )
        else:
            raise ValidationError(f"Unknown action: {action_name}")

    async def _submit(self, record_id: str, fields: Mapping[str, Any]) -> None:
        if not record_id:
            raise ValidationError("Record id is required.")
        # The guard is claimed before the first await, so a second submission
        # for the same record sees it even on a single-threaded loop.
        if record_id in self._pending:
            raise DuplicateSubmissionError(record_id)
        self._pending.add(record_id)
        try:
            await self._source.mutate(self._collection, record_id, fields)
        except RemoteError:
            LOGGER.warning("Action on %s rejected by the record source", record_id)
            raise
        finally:
            self._pending.discard(record_id)
