import asyncio

from pqueue.core.events import EventChannel
from pqueue.domain.models import QueueEvent


def test_emit_calls_listener_with_args():
    channel = EventChannel()
    calls = []
    channel.on(QueueEvent.ADD, lambda *args: calls.append(args))
    channel.emit(QueueEvent.ADD, 1, "x")
    assert calls == [(1, "x")]


def test_emit_returns_whether_anyone_listened():
    channel = EventChannel()
    assert channel.emit(QueueEvent.EMPTY) is False
    channel.on(QueueEvent.EMPTY, lambda: None)
    assert channel.emit(QueueEvent.EMPTY) is True


def test_enum_and_string_names_are_interchangeable():
    channel = EventChannel()
    calls = []
    channel.on("next", lambda task: calls.append(task))
    channel.emit(QueueEvent.NEXT, "t1")
    assert calls == ["t1"]


def test_listeners_called_in_registration_order():
    channel = EventChannel()
    order = []
    channel.on(QueueEvent.START, lambda: order.append(1))
    channel.on(QueueEvent.START, lambda: order.append(2))
    channel.emit(QueueEvent.START)
    assert order == [1, 2]


def test_on_works_as_decorator_return_value():
    channel = EventChannel()

    def listener() -> None:
        pass

    assert channel.on(QueueEvent.STOP, listener) is listener


def test_off_removes_listener():
    channel = EventChannel()
    calls = []

    def listener() -> None:
        calls.append(1)

    channel.on(QueueEvent.STOP, listener)
    channel.off(QueueEvent.STOP, listener)
    channel.emit(QueueEvent.STOP)
    assert calls == []


def test_off_unknown_listener_is_noop():
    EventChannel().off(QueueEvent.STOP, lambda: None)


def test_once_fires_a_single_time():
    channel = EventChannel()
    calls = []
    channel.once(QueueEvent.EMPTY, lambda: calls.append(1))
    channel.emit(QueueEvent.EMPTY)
    channel.emit(QueueEvent.EMPTY)
    assert calls == [1]
    assert channel.listeners(QueueEvent.EMPTY) == []


def test_listener_exception_propagates_to_emitter():
    channel = EventChannel()

    def boom() -> None:
        raise ValueError("boom")

    channel.on(QueueEvent.OPEN, boom)
    try:
        channel.emit(QueueEvent.OPEN)
    except ValueError as exc:
        assert str(exc) == "boom"
    else:
        raise AssertionError("listener exception was swallowed")


async def test_coroutine_listener_is_scheduled():
    channel = EventChannel()
    calls = []

    async def listener(value: int) -> None:
        await asyncio.sleep(0)
        calls.append(value)

    channel.on(QueueEvent.ADD, listener)
    channel.emit(QueueEvent.ADD, 5)
    assert calls == []
    await channel.wait_idle()
    assert calls == [5]


async def test_coroutine_listener_failure_goes_to_loop_handler():
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _loop, ctx: reported.append(ctx))
    channel = EventChannel()

    async def listener() -> None:
        raise RuntimeError("listener failed")

    channel.on(QueueEvent.NEXT, listener)
    channel.emit(QueueEvent.NEXT)
    await channel.wait_idle()
    await asyncio.sleep(0)

    assert len(reported) == 1
    assert isinstance(reported[0]["exception"], RuntimeError)
    assert "'next'" in reported[0]["message"]
