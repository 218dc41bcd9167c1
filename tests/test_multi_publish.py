"""Tests for the multi-message publish envelopes."""

import io
import struct

import pytest

from nsq_wire_mcp.errors import ArgumentError
from nsq_wire_mcp.models.ext import MsgExt
from nsq_wire_mcp.protocol.commands import (
    build_multi_publish,
    build_multi_publish_buffers,
    build_multi_publish_trace,
    build_multi_publish_with_json_ext,
)
from nsq_wire_mcp.protocol.parser import (
    parse_multi_publish_body,
    parse_multi_publish_ext_body,
    parse_multi_publish_trace_body,
)

BODIES = [b"first", b"", b"third message"]


def test_mpub_envelope_layout():
    cmd = build_multi_publish("events", [b"ab", b"cde"])
    assert cmd.name == b"MPUB"
    assert cmd.params == (b"events",)
    assert cmd.body == (
        b"\x00\x00\x00\x02"
        b"\x00\x00\x00\x02ab"
        b"\x00\x00\x00\x03cde"
    )


def test_mpub_with_partition():
    cmd = build_multi_publish("events", [b"x"], partition="4")
    assert cmd.params == (b"events", b"4")


def test_mpub_empty_list():
    cmd = build_multi_publish("events", [])
    assert cmd.body == b"\x00\x00\x00\x00"


def test_mpub_roundtrip():
    cmd = build_multi_publish("events", BODIES)
    assert parse_multi_publish_body(cmd.body) == BODIES


def test_mpub_buffer_inputs_match_bytes():
    """Buffer inputs and byte inputs produce byte-identical commands."""
    from_bytes = build_multi_publish("events", BODIES, partition="1")
    buffers = [bytearray(BODIES[0]), io.BytesIO(BODIES[1]), memoryview(BODIES[2])]
    from_buffers = build_multi_publish_buffers("events", buffers, partition="1")
    assert from_buffers.to_bytes() == from_bytes.to_bytes()


def test_mpub_trace_record_layout():
    cmd = build_multi_publish_trace("events", "0", [9], [b"abc"])
    assert cmd.name == b"MPUB_TRACE"
    assert cmd.params == (b"events", b"0")
    assert cmd.body == (
        b"\x00\x00\x00\x01"
        + struct.pack(">I", 3 + 8)
        + struct.pack(">Q", 9)
        + b"abc"
    )


def test_mpub_trace_roundtrip():
    trace_ids = [1, 2**64 - 1, 42]
    cmd = build_multi_publish_trace("events", "0", trace_ids, BODIES)
    records = parse_multi_publish_trace_body(cmd.body)
    assert [r.trace_id for r in records] == trace_ids
    assert [r.body for r in records] == BODIES


def test_mpub_trace_length_mismatch():
    """3 trace ids for 2 bodies is rejected before any encoding."""
    with pytest.raises(ArgumentError):
        build_multi_publish_trace("events", "0", [1, 2, 3], [b"a", b"b"])


def test_mpub_trace_bad_id():
    with pytest.raises(ArgumentError):
        build_multi_publish_trace("events", "0", [1, -5], [b"a", b"b"])


def test_mpub_ext_record_layout():
    ext = b'{"k":"v"}'
    cmd = build_multi_publish_with_json_ext("events", "2", [ext], [b"msg"])
    assert cmd.name == b"MPUB_EXT"
    assert cmd.body == (
        b"\x00\x00\x00\x01"
        + struct.pack(">I", 3 + 2 + len(ext))
        + struct.pack(">H", len(ext))
        + ext
        + b"msg"
    )


def test_mpub_ext_roundtrip():
    exts = [MsgExt(trace_id=5), MsgExt(dispatch_tag="red"), MsgExt(custom={"a": "1"})]
    cmd = build_multi_publish_with_json_ext("events", "0", exts, BODIES)
    records = parse_multi_publish_ext_body(cmd.body)
    assert [r.body for r in records] == BODIES
    assert [MsgExt.from_json(r.ext) for r in records] == exts


def test_mpub_ext_length_mismatch():
    with pytest.raises(ArgumentError):
        build_multi_publish_with_json_ext("events", "0", [b"{}"], [b"a", b"b"])


def test_mpub_ext_block_too_long():
    """Any oversized extension fails the whole command."""
    exts = [b"{}", b"x" * 65536]
    with pytest.raises(ArgumentError):
        build_multi_publish_with_json_ext("events", "0", exts, [b"a", b"b"])


def test_mpub_ext_large_block_length_field():
    """Extension lengths above 32767 still fit the unsigned 2-byte field."""
    ext = b"x" * 40000
    cmd = build_multi_publish_with_json_ext("events", "0", [ext], [b"m"])
    records = parse_multi_publish_ext_body(cmd.body)
    assert records[0].ext == ext
    assert records[0].body == b"m"
