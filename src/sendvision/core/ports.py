"""Ports (interfaces) used by the core.

The record source is an external system; the core only relies on these
contracts so the same store and executor run against SQLite, an in-memory
table, or any hosted realtime database behind an adapter.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, Mapping, Optional, Protocol, Sequence

from sendvision.core.filters import Predicate
from sendvision.core.models import Record

ChangeCallback = Callable[[], None]


class RecordSource(Protocol):
    """Query, subscribe and mutate operations against a named collection.

    Every failure is reported as ``RemoteError``. Change callbacks carry no
    payload: they only signal that something in the collection changed.
    """

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str] = None,
    ) -> list[Record]:
        ...

    def subscribe(self, collection: str, on_change: ChangeCallback) -> Hashable:
        ...

    def unsubscribe(self, subscription: Hashable) -> None:
        ...

    async def mutate(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        ...
