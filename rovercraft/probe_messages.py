"""Wire messages of the probe synchronisation service.

Messages are dataclasses whose fields carry their protocol-buffers field
number and type; :class:`Message` encodes and decodes them in the proto3
wire format.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Optional, TypeVar

_VARINT = 0
_FIXED64 = 1
_LENGTH = 2
_FIXED32 = 5

_MASK64 = (1 << 64) - 1
_LIMITS = {"uint64": 1 << 64, "uint32": 1 << 32}
_DEFAULTS: dict[str, Any] = {"string": "", "uint64": 0, "uint32": 0, "bool": False}

M = TypeVar("M", bound="Message")


class DecodeError(ValueError):
    """Raised when bytes are not a valid encoding of a message."""


class _Spec(NamedTuple):
    number: int
    kind: str
    repeated: bool
    message: Optional[type]


def _proto_field(number: int, kind: str, *, repeated: bool = False, message: Optional[type] = None):
    metadata = {"proto": _Spec(number, kind, repeated, message)}
    if repeated:
        return field(default_factory=list, metadata=metadata)
    if kind == "message":
        return field(default=None, metadata=metadata)
    return field(default=_DEFAULTS[kind], metadata=metadata)


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _key(number: int, wire: int) -> bytes:
    return _encode_varint((number << 3) | wire)


def _delimited(payload: bytes) -> bytes:
    return _encode_varint(len(payload)) + payload


def _scalar_to_int(kind: str, value: Any) -> int:
    if kind == "bool":
        return 1 if value else 0
    if not isinstance(value, int) or not 0 <= value < _LIMITS[kind]:
        raise ValueError(f"{value!r} is out of range for {kind}")
    return value


def _int_to_scalar(kind: str, raw: int) -> Any:
    if kind == "bool":
        return raw != 0
    if kind == "uint32":
        return raw & 0xFFFFFFFF
    return raw


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def varint(self) -> int:
        result = 0
        for shift in range(0, 70, 7):
            if self._pos >= len(self._data):
                raise DecodeError("truncated varint")
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & _MASK64
        raise DecodeError("varint is too long")

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise DecodeError("truncated field")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def delimited(self) -> bytes:
        return self.take(self.varint())

    def skip(self, wire: int) -> None:
        if wire == _VARINT:
            self.varint()
        elif wire == _FIXED64:
            self.take(8)
        elif wire == _LENGTH:
            self.delimited()
        elif wire == _FIXED32:
            self.take(4)
        else:
            raise DecodeError(f"unsupported wire type {wire}")


def _expect_wire(actual: int, expected: int, spec: _Spec) -> None:
    if actual != expected:
        raise DecodeError(
            f"field {spec.number} of type {spec.kind} has wire type {actual}, expected {expected}"
        )


def _encode_field(spec: _Spec, value: Any) -> bytes:
    if spec.repeated:
        if not value:
            return b""
        if spec.kind == "message":
            return b"".join(_key(spec.number, _LENGTH) + _delimited(item.to_bytes()) for item in value)
        packed = b"".join(_encode_varint(_scalar_to_int(spec.kind, item)) for item in value)
        return _key(spec.number, _LENGTH) + _delimited(packed)
    if spec.kind == "message":
        if value is None:
            return b""
        return _key(spec.number, _LENGTH) + _delimited(value.to_bytes())
    if spec.kind == "string":
        if not value:
            return b""
        return _key(spec.number, _LENGTH) + _delimited(value.encode("utf-8"))
    number = _scalar_to_int(spec.kind, value)
    if not number:
        return b""
    return _key(spec.number, _VARINT) + _encode_varint(number)


def _decode_field(spec: _Spec, wire: int, reader: _Reader, values: dict[str, Any], name: str) -> None:
    if spec.kind == "message":
        _expect_wire(wire, _LENGTH, spec)
        item = spec.message.from_bytes(reader.delimited())
        if spec.repeated:
            values.setdefault(name, []).append(item)
        else:
            values[name] = item
    elif spec.kind == "string":
        _expect_wire(wire, _LENGTH, spec)
        try:
            values[name] = reader.delimited().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"field {spec.number} is not valid UTF-8") from exc
    elif spec.repeated:
        items = values.setdefault(name, [])
        if wire == _LENGTH:
            packed = _Reader(reader.delimited())
            while not packed.exhausted:
                items.append(_int_to_scalar(spec.kind, packed.varint()))
        else:
            _expect_wire(wire, _VARINT, spec)
            items.append(_int_to_scalar(spec.kind, reader.varint()))
    else:
        _expect_wire(wire, _VARINT, spec)
        values[name] = _int_to_scalar(spec.kind, reader.varint())


class Message:
    """Base for dataclass messages with a proto3 wire encoding."""

    def to_bytes(self) -> bytes:
        """Encode the message; fields holding default values are omitted."""
        return b"".join(
            _encode_field(f.metadata["proto"], getattr(self, f.name)) for f in dataclasses.fields(self)
        )

    @classmethod
    def from_bytes(cls: type[M], data: bytes) -> M:
        """Decode a message, skipping unknown fields."""
        specs = {f.metadata["proto"].number: (f.name, f.metadata["proto"]) for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        reader = _Reader(bytes(data))
        while not reader.exhausted:
            key = reader.varint()
            number, wire = key >> 3, key & 0x7
            if number == 0:
                raise DecodeError("field number 0 is invalid")
            entry = specs.get(number)
            if entry is None:
                reader.skip(wire)
                continue
            name, spec = entry
            _decode_field(spec, wire, reader, values, name)
        return cls(**values)


@dataclass
class ProbeProto(Message):
    """A probe as carried between nodes."""

    probe_id: str = _proto_field(1, "string")
    event_id: str = _proto_field(2, "string")
    event_date_time: int = _proto_field(3, "uint64")
    data: str = _proto_field(4, "string")


@dataclass
class ReadProbeRequest(Message):
    """Request to read one probe from a partition."""

    probe_id: str = _proto_field(1, "string")
    partition_id: int = _proto_field(2, "uint64")
    is_leader: bool = _proto_field(3, "bool")


@dataclass
class WriteProbeRequest(Message):
    """Request to write one probe into a partition."""

    probe: Optional[ProbeProto] = _proto_field(1, "message", message=ProbeProto)
    partition_id: int = _proto_field(2, "uint64")
    is_leader: bool = _proto_field(3, "bool")


@dataclass
class PartitionRequest(Message):
    """Request for the delta data of a partition."""

    partition_id: int = _proto_field(1, "uint64")


@dataclass
class WriteProbeResponse(Message):
    """Acknowledgement of a probe write."""

    confirmation: bool = _proto_field(1, "bool")


@dataclass
class ProbePartition(Message):
    """All probes held for one partition."""

    probe_array: list[ProbeProto] = _proto_field(1, "message", repeated=True, message=ProbeProto)