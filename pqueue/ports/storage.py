"""
TaskStoragePort - the durable store behind a PersistentQueue.

Any object satisfying this structural Protocol can act as the storage backend.
No base class or registration is required - Python's structural subtyping
(duck typing + Protocol) is sufficient.

Store contract
--------------
  - ids are assigned by insert(), ascend monotonically and are never reused
  - a running count aggregate is maintained by the store itself on every
    insert/delete, so count() is a single read rather than a table scan
  - delete() reports the number of affected rows; the queue treats 0 as a
    desync, never as success
  - payloads are opaque bytes; find() compares them byte for byte
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TaskStoragePort(Protocol):
    """
    Minimal interface required by the pqueue engine.

    Implementing adapters (built-in):
      - SQLiteStorage   - aiosqlite, count table maintained by triggers
      - InMemoryStorage - asyncio.Lock-based, for testing
    """

    @property
    def handle(self) -> Any:
        """Raw underlying handle, or None while the store is closed."""
        ...

    async def open(self) -> None:
        """
        Open or create the store and ensure its schema.

        Also resynchronises the count aggregate with the real row count.

        Raises
        ------
        StorageError  if the store is unavailable (permissions, corruption, ...)
        """
        ...

    async def close(self) -> None:
        """Release the handle. Raises StorageError on failure."""
        ...

    async def insert(self, payload: bytes) -> int:
        """Append one row and return its newly assigned id."""
        ...

    async def delete(self, task_id: int) -> int:
        """Delete one row by id. Returns the number of rows affected (0 or 1)."""
        ...

    async def head(self, limit: int) -> list[tuple[int, bytes]]:
        """Return up to `limit` of the oldest rows as (id, payload), ascending id."""
        ...

    async def count(self) -> int:
        """Read the persisted count aggregate."""
        ...

    async def contains(self, task_id: int) -> bool:
        """Point lookup by id."""
        ...

    async def find(self, payload: bytes) -> list[int]:
        """Ids of all rows whose payload equals `payload`, ascending."""
        ...
