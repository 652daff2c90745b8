"""The wire protocol spoken between the client and the network server.

Every message is one length-prefixed frame::

    [ tag: u8 ] [ length: u32 big-endian ] [ payload: length bytes ]

The client sends a request; the server answers with one response, or with a
streamed result set (``RowsBegin``, a ``Row`` per row, then ``RowsEnd`` or an
``ErrorReply`` if the query faults partway through). All multi-byte integers
on the wire are big-endian.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Union

from prehnite.errors import ProtocolError, StorageIOError
from prehnite.values import Value

TAG_QUERY = 0x01
TAG_PREPARE = 0x02
TAG_EXECUTE = 0x03
TAG_DEALLOCATE = 0x04
TAG_ACK = 0x10
TAG_ROWS_BEGIN = 0x11
TAG_ERROR = 0x12
TAG_ROW = 0x13
TAG_ROWS_END = 0x14
TAG_PREPARED = 0x15

_VAL_NULL = 0
_VAL_INT = 1
_VAL_REAL = 2
_VAL_TEXT = 3
_VAL_BOOL = 4

MAX_FRAME = 64 * 1024 * 1024
"""Upper bound on a single frame's payload, in bytes."""

_HEADER = struct.Struct(">BI")
_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_I64 = struct.Struct(">q")
_F64 = struct.Struct(">d")


@dataclass
class Query:
    """Execute this SQL text."""

    sql: str


@dataclass
class Prepare:
    """Parse and plan this SQL on the server and return a handle for it."""

    sql: str


@dataclass
class Execute:
    """Run the prepared plan named by ``handle``, binding ``params``."""

    handle: int
    params: list[Value] = field(default_factory=list)


@dataclass
class Deallocate:
    """Drop the prepared plan named by ``handle``; unknown handles are benign."""

    handle: int


@dataclass
class Ack:
    """A statement succeeded; carries a human-readable summary."""

    message: str


@dataclass
class ErrorReply:
    """A statement failed; carries the error message."""

    message: str


@dataclass
class RowsBegin:
    """The header of a result set: its column names."""

    columns: list[str] = field(default_factory=list)


@dataclass
class Row:
    """One row of a result set."""

    values: list[Value] = field(default_factory=list)


@dataclass
class RowsEnd:
    """The end of a result set."""


@dataclass
class Prepared:
    """Reply to ``Prepare``: the handle to echo back with every ``Execute``."""

    handle: int


Request = Union[Query, Prepare, Execute, Deallocate]
Response = Union[Ack, ErrorReply, RowsBegin, Row, RowsEnd, Prepared]


def write_request(stream: BinaryIO, request: Request) -> None:
    """Frame and send one request."""
    match request:
        case Query(sql=sql):
            _write_frame(stream, TAG_QUERY, sql.encode("utf-8"))
        case Prepare(sql=sql):
            _write_frame(stream, TAG_PREPARE, sql.encode("utf-8"))
        case Execute(handle=handle, params=params):
            _write_frame(stream, TAG_EXECUTE, _encode_execute(handle, params))
        case Deallocate(handle=handle):
            _write_frame(stream, TAG_DEALLOCATE, _pack(_U64, handle, "handle"))
        case _:
            raise TypeError(f"not a request: {request!r}")


def read_request(stream: BinaryIO) -> Optional[Request]:
    """Read one request; ``None`` means the peer closed cleanly between messages."""
    frame = _read_frame(stream)
    if frame is None:
        return None
    tag, payload = frame
    if tag == TAG_QUERY:
        return Query(_utf8(payload))
    if tag == TAG_PREPARE:
        return Prepare(_utf8(payload))
    if tag == TAG_EXECUTE:
        reader = _FrameReader(payload)
        handle = reader.u64()
        count = reader.u16()
        return Execute(handle, [reader.value() for _ in range(count)])
    if tag == TAG_DEALLOCATE:
        return Deallocate(_FrameReader(payload).u64())
    raise ProtocolError(f"unknown request tag {tag:#04x}")


def write_response(stream: BinaryIO, response: Response) -> None:
    """Frame and send one response message."""
    match response:
        case Ack(message=message):
            _write_frame(stream, TAG_ACK, message.encode("utf-8"))
        case ErrorReply(message=message):
            _write_frame(stream, TAG_ERROR, message.encode("utf-8"))
        case RowsBegin(columns=columns):
            _write_frame(stream, TAG_ROWS_BEGIN, _encode_columns(columns))
        case Row(values=values):
            _write_frame(stream, TAG_ROW, _encode_row(values))
        case RowsEnd():
            _write_frame(stream, TAG_ROWS_END, b"")
        case Prepared(handle=handle):
            _write_frame(stream, TAG_PREPARED, _pack(_U64, handle, "handle"))
        case _:
            raise TypeError(f"not a response: {response!r}")


def read_response(stream: BinaryIO) -> Response:
    """Read one response message; end of stream here is a protocol error."""
    frame = _read_frame(stream)
    if frame is None:
        raise ProtocolError("server closed the connection without replying")
    tag, payload = frame
    if tag == TAG_ACK:
        return Ack(_utf8(payload))
    if tag == TAG_ERROR:
        return ErrorReply(_utf8(payload))
    if tag == TAG_ROWS_BEGIN:
        reader = _FrameReader(payload)
        count = reader.u16()
        return RowsBegin([_utf8(reader.take(reader.u16())) for _ in range(count)])
    if tag == TAG_ROW:
        reader = _FrameReader(payload)
        count = reader.u16()
        return Row([reader.value() for _ in range(count)])
    if tag == TAG_ROWS_END:
        return RowsEnd()
    if tag == TAG_PREPARED:
        return Prepared(_FrameReader(payload).u64())
    raise ProtocolError(f"unknown response tag {tag:#04x}")


def _pack(fmt: struct.Struct, number: int, what: str) -> bytes:
    try:
        return fmt.pack(number)
    except struct.error as exc:
        raise ProtocolError(f"{what} {number} does not fit on the wire") from exc


def _encode_columns(columns: list[str]) -> bytes:
    out = bytearray(_pack(_U16, len(columns), "column count"))
    for name in columns:
        encoded = name.encode("utf-8")
        out += _pack(_U16, len(encoded), "column name length")
        out += encoded
    return bytes(out)


def _encode_row(values: list[Value]) -> bytes:
    out = bytearray(_pack(_U16, len(values), "value count"))
    for value in values:
        _encode_value(out, value)
    return bytes(out)


def _encode_execute(handle: int, params: list[Value]) -> bytes:
    out = bytearray(_pack(_U64, handle, "handle"))
    out += _pack(_U16, len(params), "parameter count")
    for param in params:
        _encode_value(out, param)
    return bytes(out)


def _encode_value(out: bytearray, value: Value) -> None:
    if value is None:
        out.append(_VAL_NULL)
    elif isinstance(value, bool):
        out.append(_VAL_BOOL)
        out.append(1 if value else 0)
    elif isinstance(value, int):
        out.append(_VAL_INT)
        out += _pack(_I64, value, "integer")
    elif isinstance(value, float):
        out.append(_VAL_REAL)
        out += _F64.pack(value)
    elif isinstance(value, str):
        encoded = value.encode("utf-8")
        out.append(_VAL_TEXT)
        out += _pack(_U32, len(encoded), "text length")
        out += encoded
    else:
        raise TypeError(f"not a SQL value: {value!r}")


def _write_frame(stream: BinaryIO, tag: int, payload: bytes) -> None:
    if len(payload) > MAX_FRAME:
        raise ProtocolError(
            f"message of {len(payload)} bytes exceeds the {MAX_FRAME}-byte frame limit"
        )
    try:
        stream.write(_HEADER.pack(tag, len(payload)))
        stream.write(payload)
        stream.flush()
    except OSError as exc:
        raise StorageIOError(exc) from exc


def _read_frame(stream: BinaryIO) -> Optional[tuple[int, bytes]]:
    header = _fill(stream, _HEADER.size)
    if header is None:
        return None
    tag, length = _HEADER.unpack(header)
    if length > MAX_FRAME:
        raise ProtocolError(f"frame of {length} bytes exceeds the {MAX_FRAME}-byte limit")
    if length == 0:
        return tag, b""
    payload = _fill(stream, length)
    if payload is None:
        raise ProtocolError("connection closed in the middle of a frame")
    return tag, payload


def _fill(stream: BinaryIO, size: int) -> Optional[bytes]:
    """Read exactly ``size`` bytes; ``None`` if the stream ended before any."""
    buffer = bytearray()
    while len(buffer) < size:
        try:
            chunk = stream.read(size - len(buffer))
        except OSError as exc:
            raise StorageIOError(exc) from exc
        if not chunk:
            if not buffer:
                return None
            raise ProtocolError("connection closed mid-frame")
        buffer += chunk
    return bytes(buffer)


def _utf8(data: bytes) -> str:
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError("message was not valid UTF-8") from exc


class _FrameReader:
    """A bounds-checked, big-endian cursor over a frame payload."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ProtocolError("frame payload ended unexpectedly")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def _unpack(self, fmt: struct.Struct):
        return fmt.unpack(self.take(fmt.size))[0]

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return self._unpack(_U16)

    def u32(self) -> int:
        return self._unpack(_U32)

    def u64(self) -> int:
        return self._unpack(_U64)

    def i64(self) -> int:
        return self._unpack(_I64)

    def f64(self) -> float:
        return self._unpack(_F64)

    def value(self) -> Value:
        kind = self.u8()
        if kind == _VAL_NULL:
            return None
        if kind == _VAL_INT:
            return self.i64()
        if kind == _VAL_REAL:
            return self.f64()
        if kind == _VAL_TEXT:
            return _utf8(self.take(self.u32()))
        if kind == _VAL_BOOL:
            return self.u8() != 0
        raise ProtocolError(f"unknown value tag {kind}")