"""Exceptions raised by the command builders and the serializer."""

from __future__ import annotations


class ProtocolError(Exception):
    """Base class for every error raised by the protocol layer."""


class ArgumentError(ProtocolError, ValueError):
    """A builder argument cannot be represented on the wire."""


class EncodingError(ProtocolError, ValueError):
    """A structure could not be encoded as JSON."""


class CommandWriteError(ProtocolError, OSError):
    """The sink failed part-way through writing a command.

    ``bytes_written`` is the number of bytes the sink accepted before the
    failure. Nothing is retried or rolled back.
    """

    def __init__(self, bytes_written: int, cause: BaseException) -> None:
        super().__init__(f"write failed after {bytes_written} bytes: {cause}")
        self.bytes_written = bytes_written
        self.cause = cause
