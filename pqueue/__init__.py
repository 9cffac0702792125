"""
pqueue - durable single-consumer FIFO job queue for asyncio.

Tasks are written to SQLite the moment they are added and removed only once
the consumer acknowledges them, so pending work survives process restarts.
A small in-memory window over the oldest tasks keeps delivery cheap while
bounding memory use, however large the on-disk backlog grows.

Quick start
-----------
    import asyncio
    from pqueue import PersistentQueue, QueueEvent, Task

    async def main():
        async with PersistentQueue("jobs.db", batch_size=10) as q:
            drained = asyncio.Event()

            async def handle(task: Task) -> None:
                print(f"Processing task {task.id}: {task.payload}")
                await q.done()          # or q.abort() to retry after restart

            q.on(QueueEvent.NEXT, handle)
            q.on(QueueEvent.EMPTY, drained.set)

            await q.add({"to": "user@example.com"})
            q.start()
            await drained.wait()

    asyncio.run(main())

Events
------
    open(handle)  close()  start()  stop()
    add(task)     delete(ref)   next(task)   empty()

add and next carry a Task; delete carries a TaskRef (id only).

Storage adapters
----------------
  - SQLiteStorage    - aiosqlite; the default for PersistentQueue(path)
  - InMemoryStorage  - for tests and examples

Custom adapters implement the TaskStoragePort Protocol:
  open, close, insert, delete, head, count, contains, find, handle

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   - pure value types (Task, QueueEvent) and errors
  ports/    - Protocol interfaces (TaskStoragePort)
  core/     - business logic (PersistentQueue, EventChannel, JsonCodec)
  adapters/ - concrete storage implementations
"""
from __future__ import annotations

from pqueue.adapters.storage.memory import InMemoryStorage
from pqueue.adapters.storage.sqlite import SQLiteStorage
from pqueue.core.codec import JsonCodec, PayloadCodec
from pqueue.core.events import EventChannel
from pqueue.core.queue import PersistentQueue
from pqueue.domain.errors import (
    ConfigurationError,
    DecodeError,
    DesyncError,
    EncodeError,
    NoCurrentTaskError,
    NotOpenError,
    PQueueError,
    StorageError,
)
from pqueue.domain.models import QueueEvent, Task, TaskRef
from pqueue.ports.storage import TaskStoragePort

__all__ = [
    # Domain models
    "Task",
    "TaskRef",
    "QueueEvent",
    # Errors
    "PQueueError",
    "ConfigurationError",
    "NotOpenError",
    "NoCurrentTaskError",
    "StorageError",
    "EncodeError",
    "DecodeError",
    "DesyncError",
    # Port (for typing custom adapters)
    "TaskStoragePort",
    # High-level queue API
    "PersistentQueue",
    "EventChannel",
    "PayloadCodec",
    "JsonCodec",
    # Built-in storage adapters
    "InMemoryStorage",
    "SQLiteStorage",
]
