"""Tests for message extension blocks."""

import pytest

from nsq_wire_mcp.errors import ArgumentError
from nsq_wire_mcp.models.ext import DISPATCH_TAG_KEY, TRACE_ID_KEY, MsgExt


def test_empty_ext_is_empty_object():
    assert MsgExt().to_json() == b"{}"


def test_reserved_keys_only_when_set():
    ext = MsgExt(trace_id=123, dispatch_tag="tag-a")
    assert ext.to_json() == b'{"##client_dispatch_tag":"tag-a","##trace_id":"123"}'


def test_custom_pairs_merged_sorted():
    ext = MsgExt(trace_id=1, custom={"zone": "eu", "app": "billing"})
    assert ext.to_json() == b'{"##trace_id":"1","app":"billing","zone":"eu"}'


def test_reserved_key_in_custom_rejected():
    with pytest.raises(ArgumentError):
        MsgExt(custom={TRACE_ID_KEY: "9"})
    with pytest.raises(ArgumentError):
        MsgExt(custom={DISPATCH_TAG_KEY: "x"})


def test_non_ascii_is_utf8():
    ext = MsgExt(custom={"k": "é"})
    assert ext.to_json() == '{"k":"é"}'.encode("utf-8")


def test_from_json_roundtrip():
    ext = MsgExt(trace_id=77, dispatch_tag="d", custom={"x": "y"})
    assert MsgExt.from_json(ext.to_json()) == ext


def test_from_json_empty():
    assert MsgExt.from_json(b"") == MsgExt()


def test_from_json_invalid():
    with pytest.raises(ArgumentError):
        MsgExt.from_json(b"not json")
    with pytest.raises(ArgumentError):
        MsgExt.from_json(b"[1, 2]")
    with pytest.raises(ArgumentError):
        MsgExt.from_json(b'{"##trace_id": "abc"}')
