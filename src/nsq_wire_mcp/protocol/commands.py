"""Verb constants and command builders.

Every builder validates its arguments and returns a :class:`Command`.
Builders perform no I/O; pass the result to :func:`write_command` or
:meth:`Command.write_to` to put it on the wire.
"""

from __future__ import annotations

import io
import json
import struct
from collections.abc import Iterable, Mapping, Sequence
from datetime import timedelta
from enum import Enum
from typing import Any, Protocol

from ..errors import ArgumentError, EncodingError
from ..models.message_id import message_id_bytes
from ..models.offset import ConsumeOffset
from .framing import Command

MAX_EXT_LENGTH = 0xFFFF  # fits the 2-byte extension length field
MAX_TRACE_ID = 0xFFFFFFFFFFFFFFFF


class Verb(str, Enum):
    """Command verbs as they appear at the start of the header line."""

    IDENTIFY = "IDENTIFY"
    AUTH = "AUTH"
    REGISTER = "REGISTER"
    UNREGISTER = "UNREGISTER"
    PING = "PING"
    NOP = "NOP"
    CLS = "CLS"
    READY = "RDY"
    FINISH = "FIN"
    REQUEUE = "REQ"
    TOUCH = "TOUCH"
    PUB = "PUB"
    PUB_TRACE = "PUB_TRACE"
    PUB_EXT = "PUB_EXT"
    MPUB = "MPUB"
    MPUB_TRACE = "MPUB_TRACE"
    MPUB_EXT = "MPUB_EXT"
    SUB = "SUB"
    SUB_ADVANCED = "SUB_ADVANCED"
    SUB_ORDERED = "SUB_ORDERED"
    CREATE_TOPIC = "INTERNAL_CREATE_TOPIC"


# Verbs whose header line is followed by a length-prefixed body
BODY_VERBS: frozenset[Verb] = frozenset({
    Verb.IDENTIFY,
    Verb.AUTH,
    Verb.PUB,
    Verb.PUB_TRACE,
    Verb.PUB_EXT,
    Verb.MPUB,
    Verb.MPUB_TRACE,
    Verb.MPUB_EXT,
})


class JsonExt(Protocol):
    def to_json(self) -> bytes: ...


def _param(value: str | bytes | int) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, bool):
        raise ArgumentError(f"Unexpected boolean parameter: {value!r}")
    if isinstance(value, int):
        return str(value).encode("ascii")
    return value.encode("utf-8")


def _data(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def _command(
    verb: Verb,
    params: Iterable[str | bytes | int] = (),
    body: bytes | None = None,
) -> Command:
    return Command(verb.value.encode("ascii"), tuple(_param(p) for p in params), body)


def _topic_params(topic: str, partition: str | int | None) -> list[str | int]:
    params: list[str | int] = [topic]
    if partition is not None:
        params.append(partition)
    return params


def _ext_bytes(ext: JsonExt | bytes) -> bytes:
    data = bytes(ext) if isinstance(ext, (bytes, bytearray)) else ext.to_json()
    if len(data) > MAX_EXT_LENGTH:
        raise ArgumentError(
            f"Extension block must be at most {MAX_EXT_LENGTH} bytes, got {len(data)}"
        )
    return data


def _pack_trace_id(trace_id: int) -> bytes:
    if isinstance(trace_id, bool) or not isinstance(trace_id, int):
        raise ArgumentError(f"Trace id must be an int, got {trace_id!r}")
    if not 0 <= trace_id <= MAX_TRACE_ID:
        raise ArgumentError(f"Trace id out of uint64 range: {trace_id}")
    return struct.pack(">Q", trace_id)


# ─── LIFECYCLE & CONTROL ──────────────────────────────────────────────

def build_identify(config: Mapping[str, Any]) -> Command:
    """Build an IDENTIFY command describing the client.

    The mapping is sent as JSON so the set of supported keys can evolve
    without changing the command.

    Raises:
        EncodingError: If ``config`` cannot be encoded as a JSON object.
    """
    if not isinstance(config, Mapping):
        raise EncodingError(
            f"Identify data must be a mapping, got {type(config).__name__}"
        )
    try:
        body = json.dumps(
            dict(config),
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Cannot encode identify data: {e}") from e
    return _command(Verb.IDENTIFY, body=body)


def build_auth(secret: str | bytes) -> Command:
    """Build an AUTH command carrying the raw secret."""
    return _command(Verb.AUTH, body=_data(secret))


def build_register(topic: str, partition: str | int, channel: str = "") -> Command:
    """Build a REGISTER command. An empty channel is left off entirely."""
    params: list[str | int] = [topic, partition]
    if channel:
        params.append(channel)
    return _command(Verb.REGISTER, params)


def build_unregister(topic: str, partition: str | int, channel: str = "") -> Command:
    """Build an UNREGISTER command. An empty channel is left off entirely."""
    params: list[str | int] = [topic, partition]
    if channel:
        params.append(channel)
    return _command(Verb.UNREGISTER, params)


def build_ping() -> Command:
    return _command(Verb.PING)


def build_nop() -> Command:
    """Build a NOP, the usual reply to a heartbeat."""
    return _command(Verb.NOP)


def build_start_close() -> Command:
    """Build a CLS command asking the daemon to stop sending messages."""
    return _command(Verb.CLS)


def build_ready(count: int) -> Command:
    """Build an RDY command advertising how many messages the client accepts."""
    if isinstance(count, bool) or not isinstance(count, int):
        raise ArgumentError(f"Ready count must be an int, got {count!r}")
    return _command(Verb.READY, [count])


def build_finish(msg_id: bytes | str) -> Command:
    return _command(Verb.FINISH, [message_id_bytes(msg_id)])


def build_touch(msg_id: bytes | str) -> Command:
    """Build a TOUCH command resetting the message's timeout."""
    return _command(Verb.TOUCH, [message_id_bytes(msg_id)])


def build_requeue(msg_id: bytes | str, delay: timedelta) -> Command:
    """Build a REQ command.

    Args:
        msg_id: The 16-byte message id.
        delay: Redelivery delay, truncated to whole milliseconds.
            ``timedelta(0)`` requeues immediately.
    """
    if not isinstance(delay, timedelta):
        raise ArgumentError(f"Requeue delay must be a timedelta, got {delay!r}")
    micros = delay // timedelta(microseconds=1)
    millis = abs(micros) // 1000
    if micros < 0:
        millis = -millis
    return _command(Verb.REQUEUE, [message_id_bytes(msg_id), millis])


def build_create_topic(topic: str, partition: int, with_ext: bool = False) -> Command:
    """Build an INTERNAL_CREATE_TOPIC command."""
    if isinstance(partition, bool) or not isinstance(partition, int):
        raise ArgumentError(f"Partition must be an int, got {partition!r}")
    return _command(
        Verb.CREATE_TOPIC, [topic, partition, "true" if with_ext else "false"]
    )


# ─── SINGLE PUBLISH ──────────────────────────────────────────────────

def build_publish(
    topic: str, body: bytes, partition: str | int | None = None
) -> Command:
    """Build a PUB command with the message as the body, unmodified."""
    return _command(Verb.PUB, _topic_params(topic, partition), _data(body))


def build_publish_trace(
    topic: str, partition: str | int, trace_id: int, body: bytes
) -> Command:
    """Build a PUB_TRACE command.

    Body: 8-byte big-endian trace id followed by the message.
    """
    payload = _pack_trace_id(trace_id) + _data(body)
    return _command(Verb.PUB_TRACE, [topic, partition], payload)


def build_publish_with_json_ext(
    topic: str, partition: str | int, body: bytes, json_ext: JsonExt | bytes
) -> Command:
    """Build a PUB_EXT command.

    Body: 2-byte big-endian extension length, the extension JSON, then
    the message.

    Raises:
        ArgumentError: If the extension block exceeds 65535 bytes.
    """
    ext = _ext_bytes(json_ext)
    payload = struct.pack(">H", len(ext)) + ext + _data(body)
    return _command(Verb.PUB_EXT, [topic, partition], payload)


# ─── MULTI PUBLISH ───────────────────────────────────────────────────

def _buffer_bytes(buf: bytearray | memoryview | io.BytesIO | bytes) -> bytes:
    if isinstance(buf, io.BytesIO):
        return buf.getvalue()
    return bytes(buf)


def _mpub_body(records: Sequence[bytes]) -> bytes:
    """Count-prefixed envelope of already framed records."""
    parts = [struct.pack(">I", len(records))]
    parts.extend(records)
    return b"".join(parts)


def _mpub_records(bodies: Sequence[bytes]) -> list[bytes]:
    return [struct.pack(">I", len(b)) + b for b in bodies]


def build_multi_publish(
    topic: str, bodies: Sequence[bytes], partition: str | int | None = None
) -> Command:
    """Build an MPUB command carrying several messages at once.

    Each record is a 4-byte big-endian length followed by the message.
    """
    records = _mpub_records([_data(b) for b in bodies])
    return _command(Verb.MPUB, _topic_params(topic, partition), _mpub_body(records))


def build_multi_publish_buffers(
    topic: str,
    buffers: Sequence[bytearray | memoryview | io.BytesIO],
    partition: str | int | None = None,
) -> Command:
    """Same as :func:`build_multi_publish` for messages held in buffers."""
    return build_multi_publish(topic, [_buffer_bytes(b) for b in buffers], partition)


def build_multi_publish_trace(
    topic: str,
    partition: str | int,
    trace_ids: Sequence[int],
    bodies: Sequence[bytes],
) -> Command:
    """Build an MPUB_TRACE command.

    Each record: 4-byte length of (trace id + message), 8-byte trace id,
    then the message.

    Raises:
        ArgumentError: If ``trace_ids`` and ``bodies`` differ in length.
    """
    if len(trace_ids) != len(bodies):
        raise ArgumentError(
            f"Got {len(trace_ids)} trace ids for {len(bodies)} messages"
        )
    records = []
    for trace_id, body in zip(trace_ids, bodies):
        data = _data(body)
        records.append(
            struct.pack(">I", len(data) + 8) + _pack_trace_id(trace_id) + data
        )
    return _command(Verb.MPUB_TRACE, [topic, partition], _mpub_body(records))


def build_multi_publish_with_json_ext(
    topic: str,
    partition: str | int,
    ext_list: Sequence[JsonExt | bytes],
    bodies: Sequence[bytes],
) -> Command:
    """Build an MPUB_EXT command.

    Each record: 4-byte length of (2 + ext + message), 2-byte ext length,
    the extension JSON, then the message.

    Raises:
        ArgumentError: If ``ext_list`` and ``bodies`` differ in length, or
            any extension block exceeds 65535 bytes.
    """
    if len(ext_list) != len(bodies):
        raise ArgumentError(
            f"Got {len(ext_list)} extensions for {len(bodies)} messages"
        )
    exts = [_ext_bytes(ext) for ext in ext_list]
    records = []
    for ext, body in zip(exts, bodies):
        data = _data(body)
        records.append(
            struct.pack(">IH", len(data) + 2 + len(ext), len(ext)) + ext + data
        )
    return _command(Verb.MPUB_EXT, [topic, partition], _mpub_body(records))


# ─── SUBSCRIBE ───────────────────────────────────────────────────────

def build_subscribe(
    topic: str, channel: str, partition: str | int | None = None
) -> Command:
    params: list[str | int] = [topic, channel]
    if partition is not None:
        params.append(partition)
    return _command(Verb.SUB, params)


def build_subscribe_advanced(
    topic: str,
    channel: str,
    partition: str | int | None = None,
    offset: ConsumeOffset | None = None,
) -> Command:
    """Build a SUB_ADVANCED command.

    Without an offset (or with an unset one) this is a plain subscription
    that also asks for trace data. The offset string is always the fourth
    param, so it requires a partition.
    """
    params: list[str | int] = [topic, channel]
    if partition is not None:
        params.append(partition)
    if offset is not None and offset.is_set:
        if partition is None:
            raise ArgumentError("A consume offset requires a partition")
        params.append(offset.to_string())
    return _command(Verb.SUB_ADVANCED, params)


def build_subscribe_ordered(topic: str, channel: str, partition: str | int) -> Command:
    """Build a SUB_ORDERED command for ordered consumption of one partition."""
    return _command(Verb.SUB_ORDERED, [topic, channel, partition])
