import pytest

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


def test_pqueue_error_is_exception():
    err = PQueueError("test message")
    assert isinstance(err, Exception)
    assert str(err) == "test message"


def test_not_open_error_names_operation():
    err = NotOpenError("start")
    assert err.operation == "start"
    assert str(err) == "Call open() before calling start()"


def test_storage_error_stores_cause_and_message():
    cause = RuntimeError("disk full")
    err = StorageError("insert failed", cause)
    assert isinstance(err, PQueueError)
    assert err.cause is cause
    assert "insert failed" in str(err)
    assert "disk full" in str(err)


def test_desync_error_stores_task_id():
    err = DesyncError(42)
    assert err.task_id == 42
    assert "42" in str(err)


def test_desync_error_custom_message():
    err = DesyncError(None, "store is empty")
    assert err.task_id is None
    assert str(err) == "store is empty"


def test_decode_error_mentions_task_id():
    cause = ValueError("bad json")
    err = DecodeError(cause, task_id=7)
    assert err.cause is cause
    assert err.task_id == 7
    assert "task 7" in str(err)
    assert "bad json" in str(err)


def test_decode_error_without_task_id():
    err = DecodeError(ValueError("bad json"))
    assert err.task_id is None
    assert "task" not in str(err)


def test_encode_error_stores_cause():
    cause = TypeError("not serialisable")
    err = EncodeError(cause)
    assert err.cause is cause
    assert "not serialisable" in str(err)


def test_error_hierarchy():
    for cls in (
        ConfigurationError,
        NotOpenError,
        NoCurrentTaskError,
        StorageError,
        EncodeError,
        DecodeError,
        DesyncError,
    ):
        assert issubclass(cls, PQueueError)
    assert issubclass(PQueueError, Exception)


def test_can_catch_subclass_as_base():
    with pytest.raises(PQueueError):
        raise DesyncError(1)
