import asyncio

import pytest

from pqueue.adapters.storage.memory import InMemoryStorage
from pqueue.domain.errors import NotOpenError
from pqueue.ports.storage import TaskStoragePort


@pytest.fixture
async def storage() -> InMemoryStorage:
    s = InMemoryStorage()
    await s.open()
    return s


def test_satisfies_port():
    assert isinstance(InMemoryStorage(), TaskStoragePort)


async def test_satisfies_port_while_open(storage: InMemoryStorage):
    assert isinstance(storage, TaskStoragePort)


async def test_insert_assigns_ascending_ids(storage: InMemoryStorage):
    assert await storage.insert(b"a") == 1
    assert await storage.insert(b"b") == 2


async def test_ids_never_reused(storage: InMemoryStorage):
    await storage.insert(b"a")
    last = await storage.insert(b"b")
    await storage.delete(last)
    assert await storage.insert(b"c") == last + 1


async def test_delete_reports_affected_rows(storage: InMemoryStorage):
    task_id = await storage.insert(b"a")
    assert await storage.delete(task_id) == 1
    assert await storage.delete(task_id) == 0


async def test_count_tracks_insert_and_delete(storage: InMemoryStorage):
    first = await storage.insert(b"a")
    await storage.insert(b"b")
    assert await storage.count() == 2
    await storage.delete(first)
    assert await storage.count() == 1


async def test_head_returns_oldest_rows_in_order(storage: InMemoryStorage):
    for payload in (b"a", b"b", b"c"):
        await storage.insert(payload)
    assert await storage.head(2) == [(1, b"a"), (2, b"b")]


async def test_contains(storage: InMemoryStorage):
    task_id = await storage.insert(b"a")
    assert await storage.contains(task_id)
    assert not await storage.contains(task_id + 1)


async def test_find_matches_exact_bytes(storage: InMemoryStorage):
    await storage.insert(b"x")
    await storage.insert(b"y")
    await storage.insert(b"x")
    assert await storage.find(b"x") == [1, 3]
    assert await storage.find(b"z") == []


async def test_initial_rows_constructor():
    s = InMemoryStorage(initial_rows=[b"a", b"b"])
    await s.open()
    assert await s.count() == 2
    assert await s.head(10) == [(1, b"a"), (2, b"b")]


async def test_contents_survive_reopen(storage: InMemoryStorage):
    await storage.insert(b"a")
    await storage.close()
    await storage.open()
    assert await storage.head(10) == [(1, b"a")]


async def test_open_resyncs_counter():
    s = InMemoryStorage(initial_rows=[b"a"])
    s._counter = 99
    await s.open()
    assert await s.count() == 1


async def test_operations_require_open():
    s = InMemoryStorage()
    with pytest.raises(NotOpenError):
        await s.insert(b"a")
    assert s.handle is None


async def test_handle_exposes_rows(storage: InMemoryStorage):
    await storage.insert(b"a")
    assert storage.handle == {1: b"a"}


async def test_concurrent_inserts_get_distinct_ids(storage: InMemoryStorage):
    ids = await asyncio.gather(*(storage.insert(b"x") for _ in range(10)))
    assert sorted(ids) == list(range(1, 11))
    assert storage.counter == 10
