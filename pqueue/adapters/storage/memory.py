"""
InMemoryStorage - asyncio.Lock-based task store for testing and development.

Rows live in an insertion-ordered dict keyed by id. Ids come from a
monotonic counter that is never rewound, so a deleted id is never reused.
The count aggregate is updated inside insert/delete under the same lock,
the way the SQLite adapter's triggers maintain it.

Contents survive close()/open() cycles, which makes restart scenarios
testable without touching the filesystem.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses

from pqueue.domain.errors import NotOpenError


@dataclasses.dataclass
class InMemoryStorage:
    """
    In-process task store.

    Parameters
    ----------
    initial_rows : optional pre-populated payloads (useful for test setup);
                   they receive ids 1..n in order
    """

    initial_rows: list[bytes] = dataclasses.field(default_factory=list)

    def __post_init__(self) -> None:
        self._rows: dict[int, bytes] = {}
        self._last_id: int = 0
        self._counter: int = 0
        self._opened: bool = False
        self._lock: asyncio.Lock = asyncio.Lock()
        for payload in self.initial_rows:
            self._last_id += 1
            self._rows[self._last_id] = payload
        self._counter = len(self._rows)

    @property
    def handle(self) -> dict[int, bytes] | None:
        """The live row mapping (the raw handle for this adapter); None while closed."""
        return self._rows if self._opened else None

    @property
    def counter(self) -> int:
        """Current value of the count aggregate."""
        return self._counter

    async def open(self) -> None:
        async with self._lock:
            self._counter = len(self._rows)
            self._opened = True

    async def close(self) -> None:
        async with self._lock:
            self._opened = False

    async def insert(self, payload: bytes) -> int:
        async with self._lock:
            self._require_open("insert")
            self._last_id += 1
            self._rows[self._last_id] = payload
            self._counter += 1
            return self._last_id

    async def delete(self, task_id: int) -> int:
        async with self._lock:
            self._require_open("delete")
            if self._rows.pop(task_id, None) is None:
                return 0
            self._counter -= 1
            return 1

    async def head(self, limit: int) -> list[tuple[int, bytes]]:
        async with self._lock:
            self._require_open("head")
            return sorted(self._rows.items())[:limit]

    async def count(self) -> int:
        async with self._lock:
            self._require_open("count")
            return self._counter

    async def contains(self, task_id: int) -> bool:
        async with self._lock:
            self._require_open("contains")
            return task_id in self._rows

    async def find(self, payload: bytes) -> list[int]:
        async with self._lock:
            self._require_open("find")
            return sorted(i for i, p in self._rows.items() if p == payload)

    def _require_open(self, operation: str) -> None:
        if not self._opened:
            raise NotOpenError(operation)
