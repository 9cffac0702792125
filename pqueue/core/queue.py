"""
PersistentQueue - durable single-consumer FIFO queue with paced delivery.

Tasks are persisted on add() and removed only when the consumer
acknowledges them, so the queue survives process restarts. Delivery is
event driven: while started, the head task is announced on the "next"
event; the consumer answers with done() (remove it, deliver the next one)
or abort() (keep it, stop delivering).

Usage
-----
    async with PersistentQueue("jobs.db", batch_size=10) as q:

        @q.on(QueueEvent.NEXT)
        async def handle(task: Task) -> None:
            await send_email(task.payload)
            await q.done()

        await q.add({"to": "user@example.com"})
        q.start()

Memory model
------------
Only a window of the `batch_size` oldest tasks is held in memory (the
cache). When the window drains and the mirrored count says work remains,
the window is rehydrated from the store. The cache is a read-through view:
a task is never in the cache without also being in the store.

The length is loaded once from the store's count aggregate on open() and
mirrored in memory afterwards: +1 after each committed insert, -1 after each
committed delete.

Delivery pacing
---------------
Every delivery is posted to the event loop with call_soon(), never made
inline. A caller therefore sees the synchronous effects of start()/add()
before any "next" listener runs, and a long backlog cannot starve the
loop's other callbacks and I/O.

Failure policy
--------------
Errors from caller-invoked operations propagate to the caller. Errors in the
autonomous trigger loop (rehydration) have no caller; they go to
fatal_handler, which by default logs and raises SystemExit so asyncio stops
the running loop rather than continue with an inconsistent queue.
"""
from __future__ import annotations

import asyncio
import bisect
import dataclasses
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from pathlib import Path
from types import TracebackType
from typing import Any

from pqueue.adapters.storage.sqlite import SQLiteStorage
from pqueue.core.codec import JsonCodec, PayloadCodec
from pqueue.core.events import EventChannel, Listener
from pqueue.domain.errors import (
    ConfigurationError,
    DecodeError,
    DesyncError,
    NoCurrentTaskError,
    NotOpenError,
    PQueueError,
)
from pqueue.domain.models import QueueEvent, Task, TaskRef
from pqueue.ports.storage import TaskStoragePort

logger = logging.getLogger(__name__)

FatalHandler = Callable[[BaseException], None]


def _escalate(exc: BaseException) -> None:
    """Default fatal handler: log, then stop the process."""
    logger.critical("Unrecoverable error in queue trigger loop", exc_info=exc)
    raise SystemExit(1) from exc


@dataclasses.dataclass
class PersistentQueue:
    """
    SQLite-backed FIFO queue delivering one task at a time.

    Parameters
    ----------
    path          : database file; "" for an in-memory database. Required
                    unless `storage` is given.
    batch_size    : number of tasks rehydrated into memory at a time (>= 1)
    storage       : any TaskStoragePort; defaults to SQLiteStorage(path)
    codec         : payload codec (default: JsonCodec over Any)
    fatal_handler : called with errors raised inside the trigger loop
    """

    path: str | Path | None = None
    batch_size: int = 10
    storage: TaskStoragePort | None = None
    codec: PayloadCodec[Any] = dataclasses.field(default_factory=JsonCodec)
    fatal_handler: FatalHandler = _escalate

    events: EventChannel = dataclasses.field(
        default_factory=EventChannel, init=False, repr=False
    )
    _cache: deque[Task[Any]] = dataclasses.field(
        default_factory=deque, init=False, repr=False
    )
    _length: int | None = dataclasses.field(default=None, init=False, repr=False)
    _empty: bool | None = dataclasses.field(default=None, init=False, repr=False)
    _opened: bool = dataclasses.field(default=False, init=False, repr=False)
    _running: bool = dataclasses.field(default=False, init=False, repr=False)
    _current: int | None = dataclasses.field(default=None, init=False, repr=False)
    _delivery_pending: bool = dataclasses.field(
        default=False, init=False, repr=False
    )
    _tasks: set[asyncio.Task[None]] = dataclasses.field(
        default_factory=set, init=False, repr=False
    )
    _store: TaskStoragePort = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ConfigurationError(
                f"Invalid batch_size {self.batch_size!r}. Must be an integer > 0"
            )
        if self.batch_size < 1:
            raise ConfigurationError(
                f"Invalid batch_size {self.batch_size}. Must be an integer > 0"
            )
        if self.storage is None:
            if self.path is None:
                raise ConfigurationError("No path provided")
            self.storage = SQLiteStorage(self.path)
        self._store = self.storage

    async def __aenter__(self) -> "PersistentQueue":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._opened:
            await self.close()

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    def on(
        self, event: QueueEvent | str, listener: Listener | None = None
    ) -> Any:
        """
        Register a listener. Usable directly or as a decorator:

            q.on(QueueEvent.EMPTY, handler)

            @q.on(QueueEvent.NEXT)
            def handler(task): ...
        """
        if listener is None:
            return lambda fn: self.events.on(event, fn)
        return self.events.on(event, listener)

    def once(self, event: QueueEvent | str, listener: Listener) -> Listener:
        return self.events.once(event, listener)

    def off(self, event: QueueEvent | str, listener: Listener) -> None:
        self.events.off(event, listener)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def open(self) -> None:
        """
        Open the store, load the count and hydrate the first batch.

        On failure the store is closed again and the queue stays unopened.
        """
        if self._opened:
            raise PQueueError("Queue is already open")
        store = self._store
        await store.open()
        try:
            self._length = await store.count()
            await self._hydrate()
        except BaseException:
            self._reset()
            await store.close()
            raise
        self._empty = self._length == 0
        self._opened = True
        logger.debug(
            "opened %r: length=%d cached=%d", store, self._length, len(self._cache)
        )
        self.events.emit(QueueEvent.OPEN, store.handle)

    async def close(self) -> None:
        """Close the store and reset all in-memory state."""
        if not self._opened:
            raise NotOpenError("close")
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        try:
            await self._store.close()
        finally:
            self._reset()
            logger.debug("closed %r", self._store)
            self.events.emit(QueueEvent.CLOSE)

    def _reset(self) -> None:
        self._opened = False
        self._running = False
        self._empty = None
        self._length = None
        self._current = None
        self._delivery_pending = False
        self._cache.clear()

    def start(self) -> None:
        """Begin delivering tasks on the "next" event."""
        if not self._opened:
            raise NotOpenError("start")
        if self._running:
            return
        self._running = True
        self.events.emit(QueueEvent.START)
        self._trigger_next()

    def stop(self) -> None:
        """Stop scheduling deliveries. A task already announced is not retracted."""
        self._running = False
        self.events.emit(QueueEvent.STOP)

    def abort(self) -> None:
        """Stop delivery, leaving the current task at the head for redelivery."""
        logger.debug("abort: task %s stays at head", self._current)
        self.stop()

    # ------------------------------------------------------------------ #
    # Mutations                                                            #
    # ------------------------------------------------------------------ #

    async def add(self, payload: Any) -> int:
        """Persist a new task and return its id."""
        if not self._opened:
            raise NotOpenError("add")
        data = self.codec.encode(payload)
        task_id = await self._store.insert(data)
        self._length = (self._length or 0) + 1
        logger.debug("added task %d (length=%d)", task_id, self._length)
        self.events.emit(QueueEvent.ADD, Task(id=task_id, payload=payload))
        if self._empty:
            self._empty = False
            if self._running:
                self._trigger_next()
        return task_id

    async def done(self) -> None:
        """
        Acknowledge the task last delivered on "next": remove it from the
        store and trigger delivery of the following one.

        Raises DesyncError if the task was already removed, e.g. by delete().
        If the store delete itself fails, the task stays current and at the
        head, so done() can be retried (or abort() called).
        """
        if not self._opened:
            raise NotOpenError("done")
        task_id = self._current
        if task_id is None:
            raise NoCurrentTaskError("done() called but no task has been delivered")
        self._current = None
        try:
            await self._remove(task_id)
        except DesyncError:
            self._trigger_next()
            raise
        except BaseException:
            self._current = task_id
            raise
        self._trigger_next()

    async def delete(self, task_id: int) -> None:
        """Remove a task by id, whether or not it is at the head."""
        if not self._opened:
            raise NotOpenError("delete")
        await self._remove(task_id)
        self.events.emit(QueueEvent.DELETE, TaskRef(id=task_id))

    def _evict(self, task_id: int) -> Task[Any] | None:
        for task in self._cache:
            if task.id == task_id:
                self._cache.remove(task)
                return task
        return None

    def _restore(self, task: Task[Any]) -> None:
        """Put back a task whose store delete failed, keeping the cache a prefix of the store."""
        ids = [cached.id for cached in self._cache]
        if not ids or task.id > ids[-1] or task.id in ids:
            return
        self._cache.insert(bisect.bisect(ids, task.id), task)
        if len(self._cache) > self.batch_size:
            self._cache.pop()

    async def _remove(self, task_id: int) -> None:
        evicted = self._evict(task_id)
        try:
            affected = await self._store.delete(task_id)
        except BaseException:
            if evicted is not None:
                self._restore(evicted)
            raise
        if not affected:
            raise DesyncError(task_id)
        self._length = (self._length or 0) - 1
        logger.debug("removed task %d (length=%d)", task_id, self._length)

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    async def has(self, task_id: int) -> bool:
        """True if a task with this id is still queued."""
        if not self._opened:
            raise NotOpenError("has")
        if any(task.id == task_id for task in self._cache):
            return True
        return await self._store.contains(task_id)

    async def get_job_ids(self, payload: Any) -> list[int]:
        """Ids of every queued task whose payload equals `payload`, in delivery order."""
        if not self._opened:
            raise NotOpenError("get_job_ids")
        return await self._store.find(self.codec.encode(payload))

    async def get_first_job_id(self, payload: Any) -> int | None:
        """Id of the first queued task matching `payload`, or None."""
        if not self._opened:
            raise NotOpenError("get_first_job_id")
        data = self.codec.encode(payload)
        for task in self._cache:
            if self.codec.encode(task.payload) == data:
                return task.id
        ids = await self._store.find(data)
        return ids[0] if ids else None

    def get_length(self) -> int | None:
        """Number of queued tasks; None until the queue has been opened."""
        return self._length

    def is_empty(self) -> bool:
        if self._empty is None:
            raise NotOpenError("is_empty")
        return self._empty

    def is_started(self) -> bool:
        return self._running

    def is_open(self) -> bool:
        return self._opened

    def connection(self) -> Any:
        """Raw store handle for out-of-band queries. Keep the queue's invariants intact."""
        if not self._opened:
            raise NotOpenError("connection")
        return self._store.handle

    # ------------------------------------------------------------------ #
    # Trigger loop                                                         #
    # ------------------------------------------------------------------ #

    def _trigger_next(self) -> None:
        """Decide whether to deliver, rehydrate or declare the queue empty."""
        if not self._running or self._empty or self._delivery_pending:
            logger.debug(
                "trigger_next: idle (running=%s empty=%s pending=%s)",
                self._running,
                self._empty,
                self._delivery_pending,
            )
            return
        if not self._cache and self._length:
            self._delivery_pending = True
            self._spawn(self._rehydrate_then_deliver())
        elif self._cache:
            self._delivery_pending = True
            asyncio.get_running_loop().call_soon(self._deliver)
        else:
            self._empty = True
            logger.debug("trigger_next: queue drained")
            self.events.emit(QueueEvent.EMPTY)

    async def _rehydrate_then_deliver(self) -> None:
        try:
            await self._hydrate()
            if not self._cache:
                raise DesyncError(
                    None, f"Store returned no tasks but length is {self._length}"
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._delivery_pending = False
            self._running = False
            self.fatal_handler(exc)
            return
        asyncio.get_running_loop().call_soon(self._deliver)

    def _deliver(self) -> None:
        self._delivery_pending = False
        if not self._running:
            return
        if not self._cache:
            self._trigger_next()
            return
        task = self._cache[0]
        self._current = task.id
        logger.debug("delivering task %d", task.id)
        self.events.emit(QueueEvent.NEXT, task)

    async def _hydrate(self) -> None:
        """Replace the cache with the `batch_size` oldest tasks in the store."""
        rows = await self._store.head(self.batch_size)
        hydrated: list[Task[Any]] = []
        for task_id, data in rows:
            try:
                payload = self.codec.decode(data)
            except DecodeError as exc:
                raise DecodeError(exc.cause, task_id) from exc
            hydrated.append(Task.from_row(task_id, payload))
        self._cache = deque(hydrated)
        logger.debug("hydrated %d task(s)", len(hydrated))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro, name="pqueue-rehydrate")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
