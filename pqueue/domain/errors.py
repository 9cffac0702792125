"""
Exception hierarchy for pqueue.

PQueueError
├── ConfigurationError  - invalid constructor arguments
├── NotOpenError        - operation needs an open storage handle
├── NoCurrentTaskError  - done() called with no delivered task
├── StorageError        - underlying I/O failure (wraps original exception)
├── EncodeError         - payload cannot be serialised
├── DecodeError         - stored bytes do not decode to a payload
└── DesyncError         - a delete affected zero rows
"""

from __future__ import annotations


class PQueueError(Exception):
    """Base class for all pqueue exceptions."""


class ConfigurationError(PQueueError):
    """Raised at construction time for a missing path or a bad batch size."""


class NotOpenError(PQueueError):
    """Raised when an operation is attempted before open() has completed."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Call open() before calling {operation}()")


class NoCurrentTaskError(PQueueError):
    """Raised when done() is called but no task has been delivered."""


class StorageError(PQueueError):
    """
    Wraps an underlying I/O failure from a storage adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class EncodeError(PQueueError):
    """Raised when a payload cannot be represented by the codec."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Payload could not be encoded: {cause}")


class DecodeError(PQueueError):
    """
    Raised when stored bytes cannot be decoded back into a payload.

    A malformed row is never skipped: dropping it would leave the mirrored
    count out of step with the store.
    """

    def __init__(self, cause: Exception, task_id: int | None = None) -> None:
        self.cause = cause
        self.task_id = task_id
        where = f" (task {task_id})" if task_id is not None else ""
        super().__init__(f"Payload could not be decoded{where}: {cause}")


class DesyncError(PQueueError):
    """
    Raised when the store and the in-memory view disagree.

    Either a delete affected zero rows (task_id is set), or the mirrored
    length says work remains while the store head is empty (task_id is None).
    """

    def __init__(self, task_id: int | None, message: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message or f"Task {task_id} was not removed from queue")
