"""
SQLiteStorage - durable task store on SQLite via aiosqlite.

Schema
------
    queue(id INTEGER PRIMARY KEY ASC AUTOINCREMENT, payload BLOB)
    queue_count(counter BIGINT)          -- exactly one row

Two triggers keep queue_count in step with queue on every INSERT and DELETE,
including rows inserted or deleted out of band through the raw connection.
AUTOINCREMENT guarantees ids are never reused, even after the newest row is
deleted. open() also resets the counter to the real row count, repairing a
file whose aggregate drifted.

Concurrency
-----------
aiosqlite runs every statement on one background thread per connection, so
statements issued by a single PersistentQueue execute strictly in order.
Each write is committed before the awaiting caller resumes.

Errors
------
Every sqlite3.Error or OSError is wrapped as StorageError with the original
exception attached as .cause.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite

from pqueue.domain.errors import NotOpenError, StorageError

logger = logging.getLogger(__name__)

TABLE = "queue"
TABLE_COUNT = "queue_count"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id INTEGER PRIMARY KEY ASC AUTOINCREMENT,
    payload BLOB
);

CREATE TABLE IF NOT EXISTS {TABLE_COUNT} (counter BIGINT);

INSERT INTO {TABLE_COUNT}
    SELECT 0 AS counter WHERE NOT EXISTS (SELECT * FROM {TABLE_COUNT});

UPDATE {TABLE_COUNT} SET counter = (SELECT count(*) FROM {TABLE});

CREATE TRIGGER IF NOT EXISTS queue_insert
AFTER INSERT ON {TABLE}
BEGIN
    UPDATE {TABLE_COUNT} SET counter = counter + 1;
END;

CREATE TRIGGER IF NOT EXISTS queue_delete
AFTER DELETE ON {TABLE}
BEGIN
    UPDATE {TABLE_COUNT} SET counter = counter - 1;
END;
"""

MEMORY = ":memory:"


class SQLiteStorage:
    """
    Stores tasks in a SQLite database file.

    Parameters
    ----------
    path : database file, or "" / ":memory:" for a private in-memory database
    """

    def __init__(self, path: str | Path) -> None:
        self.path = MEMORY if path in ("", MEMORY) else str(path)
        self._conn: aiosqlite.Connection | None = None

    def __repr__(self) -> str:
        return f"SQLiteStorage(path={self.path!r})"

    @property
    def handle(self) -> aiosqlite.Connection | None:
        """The open aiosqlite connection; None while closed."""
        return self._conn

    def _connection(self, operation: str) -> aiosqlite.Connection:
        if self._conn is None:
            raise NotOpenError(operation)
        return self._conn

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def open(self) -> None:
        conn: aiosqlite.Connection | None = None
        try:
            conn = await aiosqlite.connect(self.path)
            await conn.executescript(_SCHEMA)
            await conn.commit()
        except (sqlite3.Error, OSError) as exc:
            if conn is not None:
                await conn.close()
            raise StorageError(f"SQLite open failed for {self.path!r}", exc) from exc
        self._conn = conn
        logger.debug("opened %s", self.path)

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"SQLite close failed for {self.path!r}", exc) from exc
        logger.debug("closed %s", self.path)

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    async def insert(self, payload: bytes) -> int:
        conn = self._connection("insert")
        try:
            cursor = await conn.execute(
                f"INSERT INTO {TABLE} (payload) VALUES (?)", (payload,)
            )
            await conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError("SQLite insert failed", exc) from exc
        return cursor.lastrowid  # type: ignore[return-value]

    async def delete(self, task_id: int) -> int:
        conn = self._connection("delete")
        try:
            cursor = await conn.execute(f"DELETE FROM {TABLE} WHERE id = ?", (task_id,))
            await conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"SQLite delete failed for task {task_id}", exc) from exc
        return cursor.rowcount

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    async def head(self, limit: int) -> list[tuple[int, bytes]]:
        rows = await self._fetchall(
            f"SELECT id, payload FROM {TABLE} ORDER BY id ASC LIMIT ?", (limit,)
        )
        return [(row[0], _as_bytes(row[1])) for row in rows]

    async def count(self) -> int:
        rows = await self._fetchall(f"SELECT counter FROM {TABLE_COUNT} LIMIT 1")
        return int(rows[0][0]) if rows else 0

    async def contains(self, task_id: int) -> bool:
        rows = await self._fetchall(f"SELECT id FROM {TABLE} WHERE id = ?", (task_id,))
        return bool(rows)

    async def find(self, payload: bytes) -> list[int]:
        rows = await self._fetchall(
            f"SELECT id FROM {TABLE} WHERE payload = ? ORDER BY id ASC", (payload,)
        )
        return [row[0] for row in rows]

    async def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        conn = self._connection("query")
        try:
            async with conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except (sqlite3.Error, OSError) as exc:
            raise StorageError("SQLite query failed", exc) from exc


def _as_bytes(value: bytes | str) -> bytes:
    """Rows written out of band as TEXT come back as str."""
    return value.encode("utf-8") if isinstance(value, str) else value
