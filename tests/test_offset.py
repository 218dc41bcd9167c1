"""Tests for consume offsets."""

import pytest

from nsq_wire_mcp.errors import ArgumentError
from nsq_wire_mcp.models.offset import ConsumeOffset, OffsetType


def test_unset_offset():
    offset = ConsumeOffset()
    assert not offset.is_set
    assert offset.to_string() == ""
    assert str(offset) == ""


def test_set_to_end():
    offset = ConsumeOffset()
    offset.set_to_end()
    assert offset.is_set
    assert offset.to_string() == "special:-1"


def test_set_time():
    offset = ConsumeOffset()
    offset.set_time(1700000000)
    assert offset.offset_type is OffsetType.TIMESTAMP
    assert str(offset) == "timestamp:1700000000"


def test_set_virtual_queue_offset():
    offset = ConsumeOffset()
    offset.set_virtual_queue_offset(4096)
    assert str(offset) == "virtual_queue:4096"


def test_reset_changes_type():
    """Re-setting an offset replaces both the type and the value."""
    offset = ConsumeOffset.at_time(10)
    offset.set_to_end()
    assert str(offset) == "special:-1"


def test_alternate_constructors():
    assert str(ConsumeOffset.to_end()) == "special:-1"
    assert str(ConsumeOffset.at_time(5)) == "timestamp:5"
    assert str(ConsumeOffset.at_virtual_queue(-3)) == "virtual_queue:-3"


def test_type_from_string():
    offset = ConsumeOffset("virtual_queue", 12)
    assert offset.offset_type is OffsetType.VIRTUAL_QUEUE


def test_unknown_type_rejected():
    with pytest.raises(ArgumentError):
        ConsumeOffset("count", 1)


def test_int64_bounds():
    assert str(ConsumeOffset.at_time(2**63 - 1)) == f"timestamp:{2**63 - 1}"
    assert str(ConsumeOffset.at_time(-(2**63))) == f"timestamp:{-(2**63)}"
    with pytest.raises(ArgumentError):
        ConsumeOffset.at_time(2**63)
    with pytest.raises(ArgumentError):
        ConsumeOffset(OffsetType.SPECIAL, -(2**63) - 1)


def test_failed_set_leaves_offset_unchanged():
    offset = ConsumeOffset.to_end()
    with pytest.raises(ArgumentError):
        offset.set_virtual_queue_offset(2**64)
    assert str(offset) == "special:-1"
