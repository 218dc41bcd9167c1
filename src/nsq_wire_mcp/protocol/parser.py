"""Decoders for command bodies.

These invert the publish builders so a serialized command can be
inspected. They read commands, not daemon responses.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..errors import ArgumentError
from .commands import BODY_VERBS, Verb
from .framing import Command, parse_command


@dataclass
class TracedMessage:
    """One message from a PUB_TRACE or MPUB_TRACE body."""

    trace_id: int
    body: bytes


@dataclass
class ExtMessage:
    """One message from a PUB_EXT or MPUB_EXT body."""

    ext: bytes  # raw extension JSON
    body: bytes

    def __repr__(self) -> str:
        return f"ExtMessage(ext={self.ext!r}, body_len={len(self.body)})"


def _unpack(fmt: str, data: bytes, offset: int, what: str) -> tuple:
    try:
        return struct.unpack_from(fmt, data, offset)
    except struct.error as e:
        raise ArgumentError(f"Truncated {what} at offset {offset}") from e


def _split_records(body: bytes) -> list[bytes]:
    """Split a count-prefixed multi-publish envelope into raw records."""
    (count,) = _unpack(">I", body, 0, "message count")
    offset = 4
    records = []
    for _ in range(count):
        (size,) = _unpack(">I", body, offset, "record length")
        offset += 4
        record = body[offset : offset + size]
        if len(record) != size:
            raise ArgumentError(
                f"Truncated record: expected {size} bytes, got {len(record)}"
            )
        records.append(record)
        offset += size
    if offset != len(body):
        raise ArgumentError(f"{len(body) - offset} trailing bytes after records")
    return records


def parse_publish_trace_body(body: bytes) -> TracedMessage:
    (trace_id,) = _unpack(">Q", body, 0, "trace id")
    return TracedMessage(trace_id=trace_id, body=body[8:])


def parse_publish_ext_body(body: bytes) -> ExtMessage:
    (ext_len,) = _unpack(">H", body, 0, "extension length")
    ext = body[2 : 2 + ext_len]
    if len(ext) != ext_len:
        raise ArgumentError(
            f"Truncated extension: expected {ext_len} bytes, got {len(ext)}"
        )
    return ExtMessage(ext=ext, body=body[2 + ext_len :])


def parse_multi_publish_body(body: bytes) -> list[bytes]:
    """Decode an MPUB body into its messages, in order."""
    return _split_records(body)


def parse_multi_publish_trace_body(body: bytes) -> list[TracedMessage]:
    """Decode an MPUB_TRACE body."""
    return [parse_publish_trace_body(r) for r in _split_records(body)]


def parse_multi_publish_ext_body(body: bytes) -> list[ExtMessage]:
    """Decode an MPUB_EXT body."""
    return [parse_publish_ext_body(r) for r in _split_records(body)]


def has_body(name: bytes) -> bool:
    """Whether commands with this verb carry a length-prefixed body."""
    try:
        verb = Verb(name.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        return False
    return verb in BODY_VERBS


def decode_command(data: bytes) -> tuple[Command, bytes]:
    """Parse one command from ``data``, working out from the verb whether
    a body follows.

    Returns:
        The command and any bytes remaining after it.
    """
    end = data.find(b"\n")
    name = data[: end if end >= 0 else len(data)].split(b" ", 1)[0]
    return parse_command(data, has_body=has_body(name))


def decode_body(command: Command):
    """Decode a command body according to its verb.

    Returns a list of records for multi-publish verbs, a single record for
    PUB_TRACE and PUB_EXT, and the raw body otherwise.
    """
    if command.body is None:
        return None
    parsers = {
        Verb.PUB_TRACE: parse_publish_trace_body,
        Verb.PUB_EXT: parse_publish_ext_body,
        Verb.MPUB: parse_multi_publish_body,
        Verb.MPUB_TRACE: parse_multi_publish_trace_body,
        Verb.MPUB_EXT: parse_multi_publish_ext_body,
    }
    try:
        verb = Verb(command.name.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        return command.body
    parser = parsers.get(verb)
    if parser:
        return parser(command.body)
    return command.body
