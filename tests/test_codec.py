import json

import pytest
from pydantic import BaseModel

from pqueue.core.codec import JsonCodec, PayloadCodec
from pqueue.domain.errors import DecodeError, EncodeError


class Email(BaseModel):
    to: str
    retries: int = 0


def test_encode_produces_compact_json_bytes():
    data = JsonCodec().encode({"a": 1, "b": [1, 2]})
    assert isinstance(data, bytes)
    assert data == b'{"a":1,"b":[1,2]}'


def test_encode_preserves_key_order():
    codec = JsonCodec()
    assert codec.encode({"a": 1, "b": 2}) != codec.encode({"b": 2, "a": 1})


def test_encode_is_valid_json():
    data = JsonCodec().encode({"nested": {"x": None}})
    assert json.loads(data) == {"nested": {"x": None}}


def test_decode_returns_structured_data():
    assert JsonCodec().decode(b'{"to":"user@example.com"}') == {"to": "user@example.com"}


def test_decode_scalar_payloads():
    codec = JsonCodec()
    assert codec.decode(b"42") == 42
    assert codec.decode(b'"text"') == "text"
    assert codec.decode(b"null") is None


def test_decode_malformed_raises_decode_error():
    with pytest.raises(DecodeError) as exc_info:
        JsonCodec().decode(b"{not json")
    assert exc_info.value.cause is not None


def test_encode_unrepresentable_raises_encode_error():
    with pytest.raises(EncodeError):
        JsonCodec().encode(object())


def test_encode_nested_unrepresentable_value_raises_encode_error():
    with pytest.raises(EncodeError) as exc_info:
        JsonCodec().encode({"when": object()})
    assert exc_info.value.cause is not None


def test_typed_codec_validates_on_decode():
    codec = JsonCodec(Email)
    email = codec.decode(b'{"to":"a@b.c","retries":2}')
    assert isinstance(email, Email)
    assert email.retries == 2


def test_typed_codec_rejects_wrong_shape():
    with pytest.raises(DecodeError):
        JsonCodec(Email).decode(b'{"retries":2}')


def test_typed_codec_encodes_model():
    assert JsonCodec(Email).encode(Email(to="a@b.c")) == b'{"to":"a@b.c","retries":0}'


def test_json_codec_satisfies_protocol():
    assert isinstance(JsonCodec(), PayloadCodec)


def test_repr_names_payload_type():
    assert "Email" in repr(JsonCodec(Email))
