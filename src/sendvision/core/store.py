"""Filtered, realtime-synchronized record store.

The store keeps one materialized snapshot for one filter. Change signals from
the source never carry data we trust, so every trigger results in a full
re-query. Two rules keep the snapshot correct:

1) Every query is tagged with a generation number at issue time; a result
   whose generation is no longer current is dropped on arrival.
2) Signals arriving while a query is in flight only mark a refresh as owed;
   exactly one trailing query runs once the current one finishes.

All state is touched from the event loop thread only.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timezone, tzinfo
from typing import Callable, Hashable, Optional

from sendvision.core.errors import RemoteError, StaleResultDiscarded
from sendvision.core.filters import RecordFilter
from sendvision.core.models import Record, Snapshot
from sendvision.core.ports import RecordSource

LOGGER = logging.getLogger(__name__)

SnapshotListener = Callable[[Snapshot], None]


class FilteredStore:
    """Snapshot of one collection under one filter, kept fresh by re-query."""

    def __init__(
        self,
        source: RecordSource,
        collection: str,
        record_filter: RecordFilter,
        *,
        realtime: bool = True,
        order_by: Optional[str] = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._source = source
        self._collection = collection
        self._filter = record_filter
        self._realtime = realtime
        self._order_by = order_by
        self._tz = tz

        self._snapshot = Snapshot()
        self._generation = 0
        self._in_flight: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._refresh_owed = False
        self._closed = False
        self._subscription: Optional[Hashable] = None
        self._listeners: list[SnapshotListener] = []

    @classmethod
    def open(
        cls,
        source: RecordSource,
        collection: str,
        record_filter: RecordFilter,
        **kwargs,
    ) -> "FilteredStore":
        """Subscribe to the collection and issue the initial query.

        Must be called from a running event loop.
        """

        store = cls(source, collection, record_filter, **kwargs)
        store._subscription = source.subscribe(collection, store._on_change)
        store._issue_query()
        return store

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def record_filter(self) -> RecordFilter:
        return self._filter

    @property
    def realtime(self) -> bool:
        return self._realtime

    @property
    def closed(self) -> bool:
        return self._closed

    def current_snapshot(self) -> Snapshot:
        return self._snapshot

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot; returns a remover."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def set_filter(self, record_filter: RecordFilter) -> None:
        """Replace the filter and re-query right away.

        Queries still running for the old filter keep running, but their
        results are discarded because their generation is stale.
        """

        if self._closed:
            return
        self._filter = record_filter
        self._refresh_owed = False
        self._issue_query()

    def set_realtime(self, enabled: bool) -> None:
        """Toggle change signals; re-enabling catches up with one refresh."""

        was_enabled = self._realtime
        self._realtime = enabled
        if enabled and not was_enabled:
            self._request_refresh()

    def refresh(self) -> None:
        """Manual pull-to-refresh, coalesced like change signals."""

        self._request_refresh()

    async def wait_until_idle(self) -> None:
        """Return once no current-generation query is in flight."""

        while self._in_flight is not None and not self._closed:
            await asyncio.wait({self._in_flight})

    def close(self) -> None:
        """Release the subscription; no query or snapshot change follows."""

        if self._closed:
            return
        self._closed = True
        self._refresh_owed = False
        if self._subscription is not None:
            self._source.unsubscribe(self._subscription)
            self._subscription = None
        for task in list(self._tasks):
            task.cancel()
        self._in_flight = None
        self._listeners.clear()

    def _on_change(self) -> None:
        if not self._realtime or self._closed:
            return
        self._request_refresh()

    def _request_refresh(self) -> None:
        if self._closed:
            return
        if self._in_flight is not None:
            self._refresh_owed = True
            return
        self._issue_query()

    def _issue_query(self) -> None:
        self._generation += 1
        generation = self._generation
        task = asyncio.get_running_loop().create_task(
            self._run_query(generation, self._filter)
        )
        self._in_flight = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._publish(
            Snapshot(
                records=self._snapshot.records,
                is_loading=True,
                last_error=self._snapshot.last_error,
                generation=self._snapshot.generation,
            )
        )
        LOGGER.debug("Issued query generation %s on %s", generation, self._collection)

    async def _run_query(self, generation: int, record_filter: RecordFilter) -> None:
        records: Optional[list[Record]] = None
        error: Optional[RemoteError] = None
        try:
            records = await self._source.query(
                self._collection,
                record_filter.predicates(self._tz),
                order_by=self._order_by,
            )
        except RemoteError as exc:
            error = exc
        except Exception as exc:
            LOGGER.exception("Unexpected failure querying %s", self._collection)
            error = RemoteError(f"Query failed: {exc}")
        self._complete(generation, records, error)

    def _complete(
        self,
        generation: int,
        records: Optional[list[Record]],
        error: Optional[RemoteError],
    ) -> None:
        if self._closed:
            return
        if generation != self._generation:
            LOGGER.debug("%s", StaleResultDiscarded(generation, self._generation))
            return

        self._in_flight = None
        if error is not None:
            LOGGER.warning("Query on %s failed: %s", self._collection, error)
            snapshot = Snapshot(
                records=self._snapshot.records,
                is_loading=False,
                last_error=error,
                generation=self._snapshot.generation,
            )
        else:
            snapshot = Snapshot(
                records=tuple(records or ()),
                is_loading=False,
                last_error=None,
                generation=generation,
            )

        self._publish(snapshot)
        if self._refresh_owed:
            self._refresh_owed = False
            self._issue_query()

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Snapshot listener failed")
