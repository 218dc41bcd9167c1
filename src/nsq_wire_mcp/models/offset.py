"""Consume offsets for SUB_ADVANCED subscriptions.

An offset is rendered as a single command parameter of the form
``<type>:<signed decimal>``, e.g. ``timestamp:1700000000`` or
``special:-1``. An unset offset renders as the empty string.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import ArgumentError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# special:-1 starts consumption at the end of the queue
OFFSET_END = -1


class OffsetType(str, Enum):
    """Where an offset value is measured from."""

    TIMESTAMP = "timestamp"
    VIRTUAL_QUEUE = "virtual_queue"
    SPECIAL = "special"


def _check_int64(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ArgumentError(f"Offset value must be an int, got {value!r}")
    if not INT64_MIN <= value <= INT64_MAX:
        raise ArgumentError(f"Offset value out of int64 range: {value}")
    return value


@dataclass
class ConsumeOffset:
    """Starting position for ordered consumption.

    ``offset_type`` of ``None`` means no offset was specified.
    """

    offset_type: OffsetType | None = None
    offset_value: int = 0

    def __post_init__(self) -> None:
        if self.offset_type is not None:
            try:
                self.offset_type = OffsetType(self.offset_type)
            except ValueError as e:
                raise ArgumentError(f"Unknown offset type: {self.offset_type!r}") from e
        _check_int64(self.offset_value)

    @classmethod
    def to_end(cls) -> ConsumeOffset:
        offset = cls()
        offset.set_to_end()
        return offset

    @classmethod
    def at_time(cls, seconds: int) -> ConsumeOffset:
        offset = cls()
        offset.set_time(seconds)
        return offset

    @classmethod
    def at_virtual_queue(cls, position: int) -> ConsumeOffset:
        offset = cls()
        offset.set_virtual_queue_offset(position)
        return offset

    @property
    def is_set(self) -> bool:
        return self.offset_type is not None

    def set_to_end(self) -> None:
        self.offset_type = OffsetType.SPECIAL
        self.offset_value = OFFSET_END

    def set_virtual_queue_offset(self, position: int) -> None:
        self.offset_value = _check_int64(position)
        self.offset_type = OffsetType.VIRTUAL_QUEUE

    def set_time(self, seconds: int) -> None:
        """Start from ``seconds`` since the epoch."""
        self.offset_value = _check_int64(seconds)
        self.offset_type = OffsetType.TIMESTAMP

    def to_string(self) -> str:
        if self.offset_type is None:
            return ""
        return f"{self.offset_type.value}:{self.offset_value}"

    def __str__(self) -> str:
        return self.to_string()
