"""
EventChannel - explicit observer registry for queue notifications.

Listeners are plain callables registered per event name. emit() calls them
synchronously, in registration order, with the event's payload arguments.

A listener may also be a coroutine function: the coroutine it returns is
scheduled on the running loop as a task and kept referenced until it
finishes. If such a task fails, the failure is handed to the loop's
exception handler, the same place asyncio reports errors from callbacks.

    channel = EventChannel()
    channel.on(QueueEvent.NEXT, handle_task)
    channel.emit(QueueEvent.NEXT, task)
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from pqueue.domain.models import QueueEvent

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


def _key(event: QueueEvent | str) -> str:
    return event.value if isinstance(event, QueueEvent) else event


class EventChannel:
    """Publish/subscribe registry keyed by event name."""

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[tuple[Listener, bool]]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: QueueEvent | str, listener: Listener) -> Listener:
        """Register `listener` for `event`. Returns it so on() works as a decorator."""
        self._listeners[_key(event)].append((listener, False))
        return listener

    def once(self, event: QueueEvent | str, listener: Listener) -> Listener:
        """Register `listener` to be called on the next emit of `event` only."""
        self._listeners[_key(event)].append((listener, True))
        return listener

    def off(self, event: QueueEvent | str, listener: Listener) -> None:
        """Remove a previously registered listener (no-op when absent)."""
        registered = self._listeners.get(_key(event), [])
        for entry in registered:
            if entry[0] == listener:
                registered.remove(entry)
                return

    def listeners(self, event: QueueEvent | str) -> list[Listener]:
        """Snapshot of the listeners currently registered for `event`."""
        return [listener for listener, _ in self._listeners.get(_key(event), [])]

    def emit(self, event: QueueEvent | str, *args: Any) -> bool:
        """
        Call every listener of `event` with `args`.

        Returns True if at least one listener was registered. Exceptions
        raised synchronously by a listener propagate to the emitter.
        """
        name = _key(event)
        registered = list(self._listeners.get(name, []))
        logger.debug("emit %s to %d listener(s)", name, len(registered))
        for entry in registered:
            listener, once = entry
            if once and entry in self._listeners[name]:
                self._listeners[name].remove(entry)
            result = listener(*args)
            if inspect.isawaitable(result):
                self._track(name, result)
        return bool(registered)

    async def wait_idle(self) -> None:
        """Wait until every task spawned by a coroutine listener has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    def _track(self, name: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(name, t))

    def _finished(self, name: str, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        task.get_loop().call_exception_handler(
            {
                "message": f"Unhandled exception in {name!r} listener",
                "exception": task.exception(),
                "task": task,
            }
        )
