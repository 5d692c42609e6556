"""In-memory record source adapter.

Implements the RecordSource port over plain dicts. Useful for tests, demos and
for embedding the dashboard core next to a pipeline that already holds its
records in process.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

from sendvision.adapters.subscriptions import Subscription, SubscriptionRegistry
from sendvision.core.errors import RemoteError
from sendvision.core.filters import Predicate, match_all
from sendvision.core.models import CREATED_AT_FIELD, ID_FIELD, Record, parse_timestamp
from sendvision.core.ports import ChangeCallback


def _sort_key(value: Any, column: str) -> tuple[bool, Any]:
    if value is not None and column == CREATED_AT_FIELD:
        value = parse_timestamp(value)
    return value is None, value


class InMemoryRecordSource:
    """Dict-backed collections that satisfy the RecordSource contract."""

    def __init__(self, collections: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions = SubscriptionRegistry()
        for collection, rows in (collections or {}).items():
            table = self._tables.setdefault(collection, {})
            for row in rows:
                table[str(row[ID_FIELD])] = dict(row)

    def insert(self, collection: str, row: Mapping[str, Any]) -> str:
        """Add or replace a row and signal subscribers."""

        record_id = str(row[ID_FIELD])
        self._tables.setdefault(collection, {})[record_id] = dict(row)
        self._subscriptions.notify(collection)
        return record_id

    def delete(self, collection: str, record_id: str) -> None:
        self._tables.get(collection, {}).pop(record_id, None)
        self._subscriptions.notify(collection)

    def rows(self, collection: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self._tables.get(collection, {}).values()]

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str] = None,
    ) -> list[Record]:
        table = self._tables.get(collection, {})
        try:
            matched = [row for row in table.values() if match_all(predicates, row.get)]
            if order_by:
                matched.sort(key=lambda row: _sort_key(row.get(order_by), order_by))
            return [Record.from_row(row) for row in matched]
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteError(f"Query on {collection} failed: {exc}") from exc

    async def mutate(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        row = self._tables.get(collection, {}).get(record_id)
        if row is None:
            raise RemoteError(f"Record {record_id} not found in {collection}")
        row.update(fields)
        self._subscriptions.notify(collection)

    def subscribe(self, collection: str, on_change: ChangeCallback) -> Subscription:
        return self._subscriptions.add(collection, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
