import io
import math
import struct

import pytest

from prehnite.errors import ProtocolError, StorageIOError
from prehnite.protocol import (
    MAX_FRAME,
    Ack,
    Deallocate,
    ErrorReply,
    Execute,
    Prepare,
    Prepared,
    Query,
    Row,
    RowsBegin,
    RowsEnd,
    read_request,
    read_response,
    write_request,
    write_response,
)


def round_trip_response(response):
    buffer = io.BytesIO()
    write_response(buffer, response)
    return read_response(io.BytesIO(buffer.getvalue()))


def round_trip_request(request):
    buffer = io.BytesIO()
    write_request(buffer, request)
    return read_request(io.BytesIO(buffer.getvalue()))


def test_request_round_trip_then_clean_eof():
    buffer = io.BytesIO()
    write_request(buffer, Query("SELECT 1"))
    cursor = io.BytesIO(buffer.getvalue())
    assert read_request(cursor) == Query("SELECT 1")
    assert read_request(cursor) is None


def test_ack_and_error_round_trip():
    assert round_trip_response(Ack("1 row inserted")) == Ack("1 row inserted")
    assert round_trip_response(ErrorReply("no such table")) == ErrorReply("no such table")


def test_streamed_result_set_round_trips_every_value_kind():
    begin = RowsBegin(["i", "r", "t", "b", "n"])
    assert round_trip_response(begin) == begin

    row = Row([-9, 3.5, "hello", True, None])
    decoded = round_trip_response(row)
    assert decoded == row
    assert [type(v) for v in decoded.values] == [int, float, str, bool, type(None)]

    assert round_trip_response(Row([])) == Row([])
    assert round_trip_response(RowsEnd()) == RowsEnd()


def test_empty_stream_is_clean_eof_for_request():
    assert read_request(io.BytesIO(b"")) is None


def test_truncated_frame_is_an_error():
    data = bytes([0x01]) + struct.pack(">I", 100)
    with pytest.raises(ProtocolError):
        read_request(io.BytesIO(data))


def test_prepare_request_round_trips():
    sql = "SELECT name FROM t WHERE id = ? AND active = ?"
    assert round_trip_request(Prepare(sql)) == Prepare(sql)


def test_execute_request_round_trips_every_value_kind():
    execute = Execute(0xDEADBEEFFEEDCAFE, [-9, 3.5, "hello", True, None])
    assert round_trip_request(execute) == execute
    assert round_trip_request(Execute(42, [])) == Execute(42, [])


def test_deallocate_request_round_trips():
    assert round_trip_request(Deallocate(17)) == Deallocate(17)


def test_prepared_response_round_trips():
    prepared = Prepared(0x0123456789ABCDEF)
    assert round_trip_response(prepared) == prepared


def test_query_wire_bytes():
    buffer = io.BytesIO()
    write_request(buffer, Query("SELECT 1"))
    assert buffer.getvalue() == b"\x01\x00\x00\x00\x08SELECT 1"


def test_rows_end_wire_bytes():
    buffer = io.BytesIO()
    write_response(buffer, RowsEnd())
    assert buffer.getvalue() == b"\x14\x00\x00\x00\x00"


def test_row_value_wire_bytes():
    buffer = io.BytesIO()
    write_response(buffer, Row([None, True, 1, "a"]))
    payload = (
        b"\x00\x04"
        + b"\x00"
        + b"\x04\x01"
        + b"\x01" + struct.pack(">q", 1)
        + b"\x03\x00\x00\x00\x01a"
    )
    assert buffer.getvalue() == b"\x13" + struct.pack(">I", len(payload)) + payload


def test_real_bits_are_preserved():
    decoded = round_trip_response(Row([-0.0, float("inf")]))
    assert math.copysign(1.0, decoded.values[0]) == -1.0
    assert decoded.values[1] == float("inf")


def test_unicode_text_round_trips():
    row = Row(["héllo wörld ✓"])
    assert round_trip_response(row) == row
    assert round_trip_response(RowsBegin(["naïve"])) == RowsBegin(["naïve"])


def test_extreme_integers_round_trip():
    row = Row([-(2**63), 2**63 - 1])
    assert round_trip_response(row) == row


def test_integer_out_of_range_is_rejected():
    with pytest.raises(ProtocolError):
        write_response(io.BytesIO(), Row([2**63]))


def test_several_messages_in_one_stream():
    buffer = io.BytesIO()
    for message in (RowsBegin(["n"]), Row([1]), Row([2]), RowsEnd()):
        write_response(buffer, message)
    cursor = io.BytesIO(buffer.getvalue())
    assert [read_response(cursor) for _ in range(4)] == [
        RowsBegin(["n"]),
        Row([1]),
        Row([2]),
        RowsEnd(),
    ]


def test_read_response_on_eof_is_an_error():
    with pytest.raises(ProtocolError, match="without replying"):
        read_response(io.BytesIO(b""))


def test_partial_header_is_an_error():
    with pytest.raises(ProtocolError, match="mid-frame"):
        read_request(io.BytesIO(b"\x01\x00"))


def test_unknown_request_tag():
    with pytest.raises(ProtocolError, match="unknown request tag 0x7f"):
        read_request(io.BytesIO(b"\x7f\x00\x00\x00\x00"))


def test_unknown_response_tag():
    with pytest.raises(ProtocolError, match="unknown response tag 0x01"):
        read_response(io.BytesIO(b"\x01\x00\x00\x00\x00"))


def test_oversized_frame_header_is_rejected():
    data = b"\x01" + struct.pack(">I", MAX_FRAME + 1)
    with pytest.raises(ProtocolError, match="exceeds"):
        read_request(io.BytesIO(data))


def test_invalid_utf8_is_rejected():
    with pytest.raises(ProtocolError, match="UTF-8"):
        read_request(io.BytesIO(b"\x01\x00\x00\x00\x02\xff\xfe"))


def test_unknown_value_tag():
    payload = b"\x00\x01\x09"
    data = b"\x13" + struct.pack(">I", len(payload)) + payload
    with pytest.raises(ProtocolError, match="unknown value tag 9"):
        read_response(io.BytesIO(data))


def test_short_payload_is_rejected():
    payload = b"\x00\x02\x00"
    data = b"\x13" + struct.pack(">I", len(payload)) + payload
    with pytest.raises(ProtocolError, match="ended unexpectedly"):
        read_response(io.BytesIO(data))


def test_short_prepared_payload_is_rejected():
    data = b"\x15\x00\x00\x00\x03abc"
    with pytest.raises(ProtocolError):
        read_response(io.BytesIO(data))


class _Trickle(io.RawIOBase):
    """A stream that hands back one byte per read."""

    def __init__(self, data):
        self._data = data

    def readable(self):
        return True

    def read(self, size=-1):
        if not self._data:
            return b""
        chunk, self._data = self._data[:1], self._data[1:]
        return chunk


def test_short_reads_are_reassembled():
    buffer = io.BytesIO()
    write_request(buffer, Execute(7, ["abc", 2.25]))
    assert read_request(_Trickle(buffer.getvalue())) == Execute(7, ["abc", 2.25])


class _Broken(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError("connection reset")


def test_os_errors_are_wrapped():
    with pytest.raises(StorageIOError, match="connection reset"):
        read_request(_Broken())