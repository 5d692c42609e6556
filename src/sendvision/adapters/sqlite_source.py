"""SQLite record source adapter.

Implements the core RecordSource port on top of a single SQLite database in
which every collection is one table. The classification pipeline writes to the
same file from its own process; those commits are picked up by polling
``PRAGMA data_version`` and turned into change signals.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import timezone
from typing import Any, Iterator, Mapping, Optional, Sequence

from sendvision.adapters.subscriptions import Subscription, SubscriptionRegistry
from sendvision.core.errors import RemoteError
from sendvision.core.filters import OP_EQ, OP_GTE, OP_IS, OP_LTE, Predicate
from sendvision.core.models import CREATED_AT_FIELD, ID_FIELD, Record, parse_timestamp
from sendvision.core.ports import ChangeCallback

LOGGER = logging.getLogger(__name__)

BOOLEAN_COLUMNS = ("escalation", "cancel", "important", "bookcall", "removed")
TEXT_COLUMNS = (
    "permission",
    "Previous_Emails_Summary",
    "reasoning",
    "Customer_Email",
    "CRM_notes",
    "feedback",
    "Availabilities",
    "draft_reply",
    "Escalated_reply",
    "human_reply",
    "human_name",
)
COLUMNS = (ID_FIELD, CREATED_AT_FIELD, *BOOLEAN_COLUMNS, *TEXT_COLUMNS)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SQL_OPERATORS = {OP_EQ: "=", OP_GTE: ">=", OP_LTE: "<="}


def _sql_operand(column: str, name: str) -> str:
    # created_at may be any ISO-8601 spelling or offset; compare instants.
    if name == CREATED_AT_FIELD:
        return f"julianday({column})"
    return column


def _format_timestamp(value: Any) -> str:
    # Rows written here are normalized to UTC with microsecond precision.
    return parse_timestamp(value).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _to_sql_value(column: str, value: Any) -> Any:
    if column == CREATED_AT_FIELD:
        return _format_timestamp(value)
    if column in BOOLEAN_COLUMNS:
        return int(bool(value))
    return value


def _row_to_record(row: sqlite3.Row) -> Record:
    data = dict(row)
    for column in BOOLEAN_COLUMNS:
        if data.get(column) is not None:
            data[column] = bool(data[column])
    return Record.from_row(data)


class SQLiteRecordSource:
    """Thin SQLite wrapper that satisfies the RecordSource contract."""

    def __init__(self, db_path: str, poll_interval: float = 1.0) -> None:
        self._db_path = db_path
        self._poll_interval = poll_interval
        self._subscriptions = SubscriptionRegistry()

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @staticmethod
    def _table(collection: str) -> str:
        if not _IDENTIFIER.match(collection):
            raise RemoteError(f"Invalid collection name: {collection!r}")
        return collection

    @staticmethod
    def _column(name: str) -> str:
        if name not in COLUMNS:
            raise RemoteError(f"Unknown column: {name!r}")
        return f'"{name}"'

    def init_db(self, collection: str) -> None:
        """Create the collection table if it does not exist.

        Fields:
        - id: opaque record id assigned by the pipeline (PRIMARY KEY)
        - created_at: UTC ISO-8601 timestamp, used for windows and ordering
        - permission: workflow status, NULL until the pipeline decides
        - escalation/cancel/important/bookcall: classification flags (0/1)
        - removed: soft-delete marker used by the content approval queue
        - the remaining TEXT columns are context and reply fields shown to
          operators; the core never interprets them
        """

        table = self._table(collection)
        text_columns = ",\n".join(f'    "{name}" TEXT' for name in TEXT_COLUMNS)
        flag_columns = ",\n".join(
            f'    "{name}" INTEGER NOT NULL DEFAULT 0' for name in BOOLEAN_COLUMNS
        )
        with self._connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS "{table}" (
                    "id" TEXT PRIMARY KEY,
                    "created_at" TEXT NOT NULL,
                {flag_columns},
                {text_columns}
                )
                """
            )
            conn.execute(
                f'CREATE INDEX IF NOT EXISTS "idx_{table}_created_at" ON "{table}" ("created_at")'
            )

    def insert(self, collection: str, row: Mapping[str, Any]) -> str:
        """Insert or replace one record and signal subscribers."""

        table = self._table(collection)
        columns = [self._column(name) for name in row]
        values = [_to_sql_value(name, value) for name, value in row.items()]
        placeholders = ", ".join("?" for _ in columns)
        try:
            with self._connect() as conn:
                conn.execute(
                    f'INSERT OR REPLACE INTO "{table}" ({", ".join(columns)}) VALUES ({placeholders})',
                    values,
                )
        except sqlite3.Error as exc:
            raise RemoteError(f"Insert into {collection} failed: {exc}") from exc
        self._subscriptions.notify(collection)
        return str(row[ID_FIELD])

    def _build_query(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str],
    ) -> tuple[str, list[Any]]:
        table = self._table(collection)
        clauses: list[str] = []
        params: list[Any] = []
        for predicate in predicates:
            column = self._column(predicate.field)
            if predicate.op == OP_IS:
                clauses.append(f"{column} IS NULL")
                continue
            operand = _sql_operand(column, predicate.field)
            placeholder = _sql_operand("?", predicate.field)
            clauses.append(f"{operand} {_SQL_OPERATORS[predicate.op]} {placeholder}")
            params.append(_to_sql_value(predicate.field, predicate.value))

        sql = f'SELECT * FROM "{table}"'
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_by:
            sql += f" ORDER BY {_sql_operand(self._column(order_by), order_by)} ASC"
        return sql, params

    def _query_sync(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str],
    ) -> list[Record]:
        sql, params = self._build_query(collection, predicates, order_by)
        try:
            with self._connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise RemoteError(f"Query on {collection} failed: {exc}") from exc
        return [_row_to_record(row) for row in rows]

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate],
        order_by: Optional[str] = None,
    ) -> list[Record]:
        return await asyncio.to_thread(self._query_sync, collection, predicates, order_by)

    def _mutate_sync(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        table = self._table(collection)
        if not fields:
            raise RemoteError("Mutation has no fields to set")
        assignments = ", ".join(f"{self._column(name)} = ?" for name in fields)
        values = [_to_sql_value(name, value) for name, value in fields.items()]
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    f'UPDATE "{table}" SET {assignments} WHERE "id" = ?',
                    (*values, record_id),
                )
                updated = cur.rowcount
        except sqlite3.Error as exc:
            raise RemoteError(f"Update of {record_id} failed: {exc}") from exc
        if updated == 0:
            raise RemoteError(f"Record {record_id} not found in {collection}")

    async def mutate(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._mutate_sync, collection, record_id, fields)
        self._subscriptions.notify(collection)

    def subscribe(self, collection: str, on_change: ChangeCallback) -> Subscription:
        return self._subscriptions.add(collection, on_change)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.remove(subscription)

    @staticmethod
    def _data_version(conn: sqlite3.Connection) -> int:
        return int(conn.execute("PRAGMA data_version").fetchone()[0])

    async def watch_changes(self) -> None:
        """Signal every subscribed collection when another connection commits.

        ``data_version`` is database-wide, so an external write to any table
        wakes all subscribers; stores treat it as a plain refresh trigger.
        Runs until cancelled.
        """

        conn = sqlite3.connect(self._db_path)
        try:
            last_version = self._data_version(conn)
            LOGGER.info("Watching %s for external changes", self._db_path)
            while True:
                await asyncio.sleep(self._poll_interval)
                try:
                    version = self._data_version(conn)
                except sqlite3.Error:
                    LOGGER.exception("Failed to poll %s for changes", self._db_path)
                    continue
                if version == last_version:
                    continue
                last_version = version
                LOGGER.debug("External change detected in %s", self._db_path)
                for collection in sorted(self._subscriptions.collections()):
                    self._subscriptions.notify(collection)
        finally:
            conn.close()
