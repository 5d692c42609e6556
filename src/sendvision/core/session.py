"""Presentation-facing facade over one store and one action executor."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from sendvision.core.actions import WorkflowActionExecutor
from sendvision.core.aggregation import AggregateResult, aggregate, breakdowns
from sendvision.core.filters import DateRange, RecordFilter
from sendvision.core.models import Snapshot
from sendvision.core.ports import RecordSource
from sendvision.core.store import FilteredStore, SnapshotListener


class DashboardSession:
    """What a dashboard screen or CLI command talks to.

    Aggregates are computed once per snapshot generation, so rendering the
    same snapshot repeatedly costs nothing extra.
    """

    def __init__(self, store: FilteredStore, executor: WorkflowActionExecutor) -> None:
        self._store = store
        self._executor = executor
        self._aggregate_cache: Optional[tuple[int, AggregateResult]] = None

    @classmethod
    def open(
        cls,
        source: RecordSource,
        collection: str,
        record_filter: RecordFilter,
        **store_kwargs,
    ) -> "DashboardSession":
        store = FilteredStore.open(source, collection, record_filter, **store_kwargs)
        return cls(store, WorkflowActionExecutor(source, collection))

    @property
    def store(self) -> FilteredStore:
        return self._store

    @property
    def executor(self) -> WorkflowActionExecutor:
        return self._executor

    def snapshot(self) -> Snapshot:
        return self._store.current_snapshot()

    def aggregates(self) -> AggregateResult:
        snapshot = self._store.current_snapshot()
        cached = self._aggregate_cache
        if cached is not None and cached[0] == snapshot.generation:
            return cached[1]
        result = aggregate(snapshot.records)
        self._aggregate_cache = (snapshot.generation, result)
        return result

    def breakdowns(self) -> dict[str, list[tuple[str, int]]]:
        return breakdowns(self.aggregates())

    async def dispatch_action(self, action_name: str, record_id: str, payload: Mapping[str, Any]) -> None:
        """Run an action, then refresh without waiting for the change signal."""

        await self._executor.dispatch(action_name, record_id, payload)
        self._store.refresh()

    def refresh(self) -> None:
        self._store.refresh()

    def set_filter(self, record_filter: RecordFilter) -> None:
        self._store.set_filter(record_filter)

    def set_date_range(self, date_range: Optional[DateRange]) -> None:
        self._store.set_filter(self._store.record_filter.with_date_range(date_range))

    def set_realtime(self, enabled: bool) -> None:
        self._store.set_realtime(enabled)

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        return self._store.add_listener(listener)

    async def wait_until_idle(self) -> None:
        await self._store.wait_until_idle()

    def close(self) -> None:
        self._store.close()
