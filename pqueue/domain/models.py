"""
Domain models for pqueue - backed by Pydantic v2.

Task is frozen (immutable); the id is assigned by the store at insert time
and never changes. The payload is whatever the configured codec decodes,
so Task is generic over the payload type.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

PayloadT = TypeVar("PayloadT")


class QueueEvent(str, Enum):
    """Names of the notifications published on a queue's event channel."""

    OPEN = "open"
    CLOSE = "close"
    START = "start"
    STOP = "stop"
    ADD = "add"
    DELETE = "delete"
    NEXT = "next"
    EMPTY = "empty"


class Task(BaseModel, Generic[PayloadT]):
    """
    A single unit of work held in the queue.

    id      - store-assigned, monotonically increasing, never reused
    payload - caller-supplied data (decoded by the queue's codec)
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: int = Field(ge=1)
    payload: PayloadT

    @classmethod
    def from_row(cls, task_id: int, payload: Any) -> "Task[Any]":
        """Factory used when rehydrating from the store."""
        return cls(id=task_id, payload=payload)


class TaskRef(BaseModel):
    """A task identified by id alone; carried by the "delete" event."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
