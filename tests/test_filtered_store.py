from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from sendvision.adapters.memory_source import InMemoryRecordSource
from sendvision.core.errors import RemoteError
from sendvision.core.filters import Predicate, RecordFilter
from sendvision.core.models import Record, Snapshot
from sendvision.core.store import FilteredStore

COLLECTION = "messages"

ROWS = [
    {"id": "A", "created_at": "2024-01-01T09:00:00+00:00", "permission": "Waiting", "escalation": False},
    {"id": "B", "created_at": "2024-01-02T09:00:00+00:00", "permission": None, "escalation": True},
    {"id": "C", "created_at": "2024-01-03T09:00:00+00:00", "permission": "Approval", "escalation": False},
]


class GatedSource(InMemoryRecordSource):
    """In-memory source whose queries can be held until released."""

    def __init__(self, hold: bool = False) -> None:
        super().__init__({COLLECTION: ROWS})
        self.hold = hold
        self.fail = False
        self.calls: list[tuple[Predicate, ...]] = []
        self._gates: list[asyncio.Event] = []

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str] = None,
    ) -> list[Record]:
        self.calls.append(tuple(predicates))
        if self.hold:
            gate = asyncio.Event()
            self._gates.append(gate)
            await gate.wait()
        if self.fail:
            raise RemoteError("connection refused")
        return await super().query(collection, predicates, order_by)

    def release(self, index: int) -> None:
        self._gates[index].set()


class BrokenSource(InMemoryRecordSource):
    async def query(self, collection, predicates, order_by=None):
        raise RuntimeError("driver crashed")


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _ids(snapshot: Snapshot) -> list[str]:
    return [record.id for record in snapshot.records]


def test_open_loads_initial_snapshot() -> None:
    async def scenario() -> tuple[Snapshot, Snapshot]:
        source = GatedSource()
        store = FilteredStore.open(source, COLLECTION, RecordFilter.where(permission="Waiting"))
        loading = store.current_snapshot()
        await store.wait_until_idle()
        loaded = store.current_snapshot()
        store.close()
        return loading, loaded

    loading, loaded = asyncio.run(scenario())

    assert loading.is_loading
    assert loading.records == ()
    assert _ids(loaded) == ["A"]
    assert not loaded.is_loading
    assert loaded.last_error is None


def test_null_filter_matches_unset_status() -> None:
    async def scenario() -> Snapshot:
        store = FilteredStore.open(GatedSource(), COLLECTION, RecordFilter.where(permission=None))
        await store.wait_until_idle()
        store.close()
        return store.current_snapshot()

    assert _ids(asyncio.run(scenario())) == ["B"]


def test_result_of_older_filter_is_discarded() -> None:
    async def scenario() -> tuple[Snapshot, Snapshot, int]:
        source = GatedSource(hold=True)
        store = FilteredStore.open(source, COLLECTION, RecordFilter.where(permission="Waiting"))
        await _settle()
        store.set_filter(RecordFilter.where(permission="Approval"))
        await _settle()

        source.release(1)
        await _settle()
        after_new = store.current_snapshot()

        source.release(0)
        await _settle()
        after_old = store.current_snapshot()
        store.close()
        return after_new, after_old, len(source.calls)

    after_new, after_old, calls = asyncio.run(scenario())

    assert _ids(after_new) == ["C"]
    assert not after_new.is_loading
    assert after_old == after_new
    assert calls == 2


def test_stale_result_arriving_first_does_not_land() -> None:
    async def scenario() -> tuple[Snapshot, Snapshot]:
        source = GatedSource(hold=True)
        store = FilteredStore.open(source, COLLECTION, RecordFilter.where(permission="Waiting"))
        await _settle()
        store.set_filter(RecordFilter.where(permission="Approval"))
        await _settle()

        source.release(0)
        await _settle()
        pending = store.current_snapshot()

        source.release(1)
        await _settle()
        final = store.current_snapshot()
        store.close()
        return pending, final

    pending, final = asyncio.run(scenario())

    assert pending.records == ()
    assert pending.is_loading
    assert _ids(final) == ["C"]


def test_burst_of_changes_coalesces_into_one_trailing_query() -> None:
    async def scenario() -> tuple[int, int, Snapshot]:
        source = GatedSource(hold=True)
        store = FilteredStore.open(source, COLLECTION, RecordFilter())
        await _settle()
        for index in range(5):
            source.insert(
                COLLECTION,
                {"id": f"N{index}", "created_at": "2024-01-04T09:00:00+00:00", "permission": "Objection"},
            )
        calls_during_flight = len(source.calls)

        source.release(0)
        await _settle()
        source.release(1)
        await _settle()
        store.close()
        return calls_during_flight, len(source.calls), store.current_snapshot()

    during, total, snapshot = asyncio.run(scenario())

    assert during == 1
    assert total == 2
    assert len(snapshot.records) == 8
    assert not snapshot.is_loading


def test_query_error_keeps_previous_records() -> None:
    async def scenario() -> tuple[Snapshot, Snapshot, Snapshot]:
        source = GatedSource()
        store = FilteredStore.open(source, COLLECTION, RecordFilter())
        await store.wait_until_idle()
        good = store.current_snapshot()

        source.fail = True
        store.refresh()
        await store.wait_until_idle()
        failed = store.current_snapshot()

        source.fail = False
        store.refresh()
        await store.wait_until_idle()
        recovered = store.current_snapshot()
        store.close()
        return good, failed, recovered

    good, failed, recovered = asyncio.run(scenario())

    assert failed.records == good.records
    assert isinstance(failed.last_error, RemoteError)
    assert not failed.is_loading
    assert recovered.last_error is None
    assert recovered.records == good.records


def test_unexpected_query_failure_surfaces_as_remote_error() -> None:
    async def scenario() -> Snapshot:
        store = FilteredStore.open(BrokenSource(), COLLECTION, RecordFilter())
        await store.wait_until_idle()
        store.close()
        return store.current_snapshot()

    snapshot = asyncio.run(scenario())

    assert isinstance(snapshot.last_error, RemoteError)
    assert "driver crashed" in str(snapshot.last_error)
    assert not snapshot.is_loading


def test_close_stops_queries_and_snapshot_changes() -> None:
    async def scenario() -> tuple[Snapshot, int, int]:
        source = GatedSource(hold=True)
        store = FilteredStore.open(source, COLLECTION, RecordFilter())
        await _settle()
        before = store.current_snapshot()
        store.close()

        source.release(0)
        source.insert(COLLECTION, {"id": "Z", "created_at": "2024-01-05T00:00:00+00:00"})
        store.refresh()
        store.set_filter(RecordFilter.where(permission="Approval"))
        await _settle()
        assert store.current_snapshot() == before
        return store.current_snapshot(), len(source.calls), source.subscriber_count

    snapshot, calls, subscribers = asyncio.run(scenario())

    assert snapshot.records == ()
    assert calls == 1
    assert subscribers == 0


def test_realtime_toggle_ignores_change_signals_and_catches_up() -> None:
    async def scenario() -> tuple[list[int], list[str]]:
        source = GatedSource()
        store = FilteredStore.open(source, COLLECTION, RecordFilter(), realtime=False)
        await store.wait_until_idle()
        counts = [len(source.calls)]

        source.insert(COLLECTION, {"id": "D", "created_at": "2024-01-04T00:00:00+00:00"})
        await _settle()
        counts.append(len(source.calls))

        store.set_realtime(True)
        await store.wait_until_idle()
        counts.append(len(source.calls))
        ids = _ids(store.current_snapshot())

        store.set_realtime(True)
        source.insert(COLLECTION, {"id": "E", "created_at": "2024-01-04T00:00:00+00:00"})
        await store.wait_until_idle()
        counts.append(len(source.calls))
        store.close()
        return counts, ids

    counts, ids = asyncio.run(scenario())

    assert counts == [1, 1, 2, 3]
    assert "D" in ids


def test_stores_sharing_a_source_keep_separate_snapshots() -> None:
    async def scenario() -> tuple[Snapshot, Snapshot]:
        source = GatedSource()
        waiting = FilteredStore.open(source, COLLECTION, RecordFilter.where(permission="Waiting"))
        escalated = FilteredStore.open(source, COLLECTION, RecordFilter.where(escalation=True))
        await waiting.wait_until_idle()
        await escalated.wait_until_idle()

        await source.mutate(COLLECTION, "C", {"permission": "Waiting", "escalation": True})
        await waiting.wait_until_idle()
        await escalated.wait_until_idle()
        waiting.close()
        escalated.close()
        return waiting.current_snapshot(), escalated.current_snapshot()

    waiting, escalated = asyncio.run(scenario())

    assert _ids(waiting) == ["A", "C"]
    assert _ids(escalated) == ["B", "C"]


def test_listeners_receive_snapshots_and_failures_are_isolated() -> None:
    seen: list[Snapshot] = []

    def broken(_snapshot: Snapshot) -> None:
        raise ValueError("render failed")

    async def scenario() -> None:
        store = FilteredStore(GatedSource(), COLLECTION, RecordFilter.where(permission="Approval"))
        store.add_listener(broken)
        remove = store.add_listener(seen.append)
        store.refresh()
        await store.wait_until_idle()
        remove()
        store.refresh()
        await store.wait_until_idle()
        store.close()

    asyncio.run(scenario())

    assert [snapshot.is_loading for snapshot in seen] == [True, False]
    assert _ids(seen[-1]) == ["C"]


def test_set_filter_replaces_the_whole_snapshot() -> None:
    async def scenario() -> Snapshot:
        store = FilteredStore.open(GatedSource(), COLLECTION, RecordFilter.where(permission="Waiting"))
        await store.wait_until_idle()
        store.set_filter(RecordFilter.where(escalation=True))
        await store.wait_until_idle()
        store.close()
        return store.current_snapshot()

    snapshot = asyncio.run(scenario())

    assert _ids(snapshot) == ["B"]
    assert snapshot.generation == 2


def test_failed_query_is_published_before_trailing_refresh() -> None:
    seen: list[tuple[bool, bool]] = []

    async def scenario() -> Snapshot:
        source = GatedSource(hold=True)
        store = FilteredStore.open(source, COLLECTION, RecordFilter())
        store.add_listener(lambda snapshot: seen.append((snapshot.is_loading, snapshot.last_error is not None)))
        await _settle()

        source.fail = True
        source.insert(COLLECTION, {"id": "F", "created_at": "2024-01-05T00:00:00+00:00"})
        source.release(0)
        await _settle()

        source.fail = False
        source.release(1)
        await _settle()
        store.close()
        return store.current_snapshot()

    final = asyncio.run(scenario())

    assert (False, True) in seen
    assert seen.index((False, True)) < seen.index((True, True))
    assert final.last_error is None
    assert len(final.records) == 4
