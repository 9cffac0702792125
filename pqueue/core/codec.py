"""
Codec - serialize and deserialize task payloads to/from bytes using Pydantic v2.

The queue is generic over its payload type. A codec supplies the two-way
mapping between payloads and the bytes the store persists:

    encode(payload) -> bytes
    decode(data)    -> payload

JsonCodec is backed by pydantic.TypeAdapter, so any type pydantic can
validate works as a payload type - plain JSON-like data (the default, Any),
dataclasses, TypedDicts or BaseModel subclasses.

Wire format
-----------
Compact UTF-8 JSON, exactly as produced by TypeAdapter.dump_json:

    {"to":"user@example.com","retries":3}

The encoded bytes double as the equality key for payload searches, so two
payloads match when they encode identically (key order included).
"""
from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from pqueue.domain.errors import DecodeError, EncodeError

PayloadT = TypeVar("PayloadT")


@runtime_checkable
class PayloadCodec(Protocol[PayloadT]):
    """Structural Protocol - bidirectional payload serialisation."""

    def encode(self, payload: PayloadT) -> bytes: ...

    def decode(self, data: bytes) -> PayloadT: ...


class JsonCodec(Generic[PayloadT]):
    """
    JSON codec built on pydantic.TypeAdapter.

    Parameters
    ----------
    payload_type : type used to validate decoded payloads (default Any)
    """

    def __init__(self, payload_type: Any = Any) -> None:
        self.payload_type = payload_type
        self._adapter: TypeAdapter[PayloadT] = TypeAdapter(payload_type)

    def __repr__(self) -> str:
        return f"JsonCodec({self.payload_type!r})"

    def encode(self, payload: PayloadT) -> bytes:
        """Serialize a payload to compact UTF-8 JSON bytes."""
        try:
            return self._adapter.dump_json(payload)
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            raise EncodeError(exc) from exc

    def decode(self, data: bytes) -> PayloadT:
        """Deserialize UTF-8 JSON bytes. Malformed input raises DecodeError."""
        try:
            return self._adapter.validate_json(data)
        except ValidationError as exc:
            raise DecodeError(exc) from exc
