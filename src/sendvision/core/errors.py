"""Error taxonomy shared by the core and its adapters."""

from __future__ import annotations


class SendVisionError(Exception):
    """Base class for every error raised by sendvision."""


class ValidationError(SendVisionError):
    """Caller-supplied input failed a local precondition.

    Raised before any I/O, so the record source never sees the request.
    """


class DuplicateSubmissionError(ValidationError):
    """An action for the same record is already in flight."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"A submission for record {record_id} is already in progress")
        self.record_id = record_id


class RemoteError(SendVisionError):
    """The record source rejected a query or mutation."""


class StaleResultDiscarded(SendVisionError):
    """A query result arrived for a generation that is no longer current.

    Internal only: the store logs and drops these, callers never see them.
    """

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"Dropped result of generation {generation} (current {current})")
        self.generation = generation
        self.current = current
