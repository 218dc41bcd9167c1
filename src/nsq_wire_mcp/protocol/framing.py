"""Command entity and its wire serializer.

Frame layout::

    +------+---------------------+---------+-----------------------------+
    | Name | " " Param (repeated)| "\\n"    | Body length | Body          |
    | verb | ASCII space + bytes | 1 byte  | 4 bytes BE  | (optional)    |
    +------+---------------------+---------+-----------------------------+

- Name: the verb, e.g. ``PUB`` or ``MPUB_EXT``
- Params: zero or more byte strings, each preceded by one space
- Body length / Body: only present when the command carries a body
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Protocol

from ..errors import ArgumentError, CommandWriteError

SPACE = b" "
NEWLINE = b"\n"
BODY_LENGTH_SIZE = 4


class Sink(Protocol):
    """Anything with a file-like ``write``."""

    def write(self, data: bytes, /) -> int | None: ...


@dataclass(frozen=True)
class Command:
    """A single protocol command: verb, ordered params, optional body."""

    name: bytes
    params: tuple[bytes, ...] = ()
    body: bytes | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ArgumentError("Command name must not be empty")
        object.__setattr__(self, "params", tuple(self.params))

    def __str__(self) -> str:
        return b" ".join((self.name, *self.params)).decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        body = "None" if self.body is None else f"<{len(self.body)} bytes>"
        return f"Command({str(self)!r}, body={body})"

    def chunks(self) -> list[bytes]:
        """The byte pieces written to the sink, in order."""
        pieces = [self.name]
        for param in self.params:
            pieces.append(SPACE)
            pieces.append(param)
        pieces.append(NEWLINE)
        if self.body is not None:
            pieces.append(struct.pack(">I", len(self.body)))
            pieces.append(self.body)
        return pieces

    def wire_size(self) -> int:
        size = len(self.name) + sum(1 + len(p) for p in self.params) + 1
        if self.body is not None:
            size += BODY_LENGTH_SIZE + len(self.body)
        return size

    def to_bytes(self) -> bytes:
        return b"".join(self.chunks())

    def write_to(self, sink: Sink) -> int:
        return write_command(self, sink)


def write_command(command: Command, sink: Sink) -> int:
    """Serialize ``command`` to ``sink``.

    Every piece of the frame is a separate ``write`` call.

    Returns:
        Total number of bytes written.

    Raises:
        CommandWriteError: If the sink raises or accepts fewer bytes than
            offered. ``bytes_written`` holds the count accepted so far.
    """
    total = 0
    for chunk in command.chunks():
        try:
            n = sink.write(chunk)
        except OSError as e:
            raise CommandWriteError(total, e) from e
        if n is None:
            n = len(chunk)
        total += n
        if n < len(chunk):
            err = OSError(f"short write: {n} of {len(chunk)} bytes")
            raise CommandWriteError(total, err) from err
    return total


def parse_command(data: bytes, has_body: bool = False) -> tuple[Command, bytes]:
    """Parse one serialized command from the front of ``data``.

    Args:
        data: Serialized bytes, possibly followed by further commands.
        has_body: Whether a length-prefixed body follows the header line.

    Returns:
        The parsed ``Command`` and whatever bytes follow it.

    Raises:
        ArgumentError: If the header line or body is truncated.
    """
    end = data.find(NEWLINE)
    if end < 0:
        raise ArgumentError("Command header is not newline terminated")
    header = data[:end]
    rest = data[end + 1 :]
    if not header:
        raise ArgumentError("Command header is empty")
    name, *params = header.split(SPACE)

    body = None
    if has_body:
        if len(rest) < BODY_LENGTH_SIZE:
            raise ArgumentError("Command body length is truncated")
        (size,) = struct.unpack_from(">I", rest)
        body = rest[BODY_LENGTH_SIZE : BODY_LENGTH_SIZE + size]
        if len(body) != size:
            raise ArgumentError(
                f"Command body is truncated: expected {size} bytes, got {len(body)}"
            )
        rest = rest[BODY_LENGTH_SIZE + size :]

    return Command(name=name, params=tuple(params), body=body), rest
