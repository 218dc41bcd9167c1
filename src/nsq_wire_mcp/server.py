"""MCP server entry point for building and sending NSQ commands.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import ProtocolError
from .models.ext import MsgExt
from .models.offset import ConsumeOffset, OffsetType
from .protocol.commands import (
    BODY_VERBS,
    Verb,
    build_auth,
    build_create_topic,
    build_finish,
    build_identify,
    build_multi_publish,
    build_multi_publish_trace,
    build_multi_publish_with_json_ext,
    build_nop,
    build_ping,
    build_publish,
    build_publish_trace,
    build_publish_with_json_ext,
    build_ready,
    build_register,
    build_requeue,
    build_start_close,
    build_subscribe,
    build_subscribe_advanced,
    build_subscribe_ordered,
    build_touch,
    build_unregister,
)
from .protocol.framing import Command
from .protocol.parser import ExtMessage, TracedMessage, decode_body, decode_command
from .transport.tcp_connection import DEFAULT_HOST, DEFAULT_PORT, TCPConnection

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "nsq-wire",
    instructions="Build, inspect and send NSQ protocol commands",
)

# Global connection state
_connection: TCPConnection | None = None


def _get_connection() -> TCPConnection:
    """Get the active connection, raising if not connected."""
    if _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to nsqd. Use the 'connect' tool first."
        )
    return _connection


def _describe(command: Command) -> dict[str, Any]:
    return {
        "command": str(command),
        "size": command.wire_size(),
        "hex": command.to_bytes().hex(),
    }


def _emit(command: Command, send: bool) -> dict[str, Any]:
    """Describe the command and optionally write it to the open connection."""
    result = _describe(command)
    if send:
        conn = _get_connection()
        try:
            result["bytes_written"] = conn.send(command)
        except OSError as e:
            logger.warning("Send failed: %s", e)
            result["error"] = str(e)
            result["bytes_written"] = getattr(e, "bytes_written", 0)
    return result


def _record_to_dict(record: Any) -> Any:
    if isinstance(record, TracedMessage):
        return {"trace_id": record.trace_id, "body": record.body.decode("utf-8", "replace")}
    if isinstance(record, ExtMessage):
        return {
            "ext": record.ext.decode("utf-8", "replace"),
            "body": record.body.decode("utf-8", "replace"),
        }
    if isinstance(record, bytes):
        return record.decode("utf-8", "replace")
    return record


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> dict[str, Any]:
    """Open a TCP connection to nsqd and send the protocol magic.

    Args:
        host: Daemon host name or address.
        port: Daemon TCP port (default 4150).
    """
    global _connection
    if _connection is not None and _connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "host": _connection.info.host,
            "port": _connection.info.port,
        }

    _connection = TCPConnection(host, port)
    info = _connection.open()
    return {
        "connected": True,
        "host": info.host,
        "port": info.port,
        "local_address": info.local_address,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection to nsqd."""
    global _connection
    if _connection is None:
        return {"disconnected": True}
    _connection.close()
    _connection = None
    return {"disconnected": True}


@mcp.tool()
def read_reply(timeout: float = 1.0) -> dict[str, Any]:
    """Read raw bytes sent by the daemon, returned undecoded as hex.

    Args:
        timeout: Seconds to wait for data.
    """
    data = _get_connection().read(timeout=timeout)
    if data is None:
        return {"hex": "", "timed_out": True}
    return {"hex": data.hex(), "size": len(data)}


# ─── ENCODING TOOLS ──────────────────────────────────────────────────

@mcp.tool()
def encode_identify(config: dict[str, Any], send: bool = False) -> dict[str, Any]:
    """Build an IDENTIFY command from client settings.

    Args:
        config: Settings sent as the JSON body, e.g.
                {"client_id": "worker-1", "heartbeat_interval": 30000}.
        send: Also write the command to the open connection.
    """
    try:
        command = build_identify(config)
    except ProtocolError as e:
        return {"error": str(e)}
    return _emit(command, send)


@mcp.tool()
def encode_publish(
    topic: str,
    message: str,
    partition: str | None = None,
    trace_id: int | None = None,
    ext: dict[str, str] | None = None,
    send: bool = False,
) -> dict[str, Any]:
    """Build a PUB, PUB_TRACE or PUB_EXT command for one message.

    PUB_TRACE is used when trace_id is given, PUB_EXT when ext is given.
    Both need a partition.

    Args:
        topic: Topic name.
        message: Message text, sent UTF-8 encoded.
        partition: Optional partition id.
        trace_id: Optional unsigned 64-bit trace id.
        ext: Optional extension pairs sent as the JSON extension block.
        send: Also write the command to the open connection.
    """
    if (trace_id is not None or ext is not None) and partition is None:
        return {"error": "PUB_TRACE and PUB_EXT require a partition"}
    if trace_id is not None and ext is not None:
        return {"error": "Give either trace_id or ext, not both"}

    body = message.encode("utf-8")
    try:
        if trace_id is not None:
            command = build_publish_trace(topic, partition, trace_id, body)
        elif ext is not None:
            command = build_publish_with_json_ext(topic, partition, body, MsgExt(custom=ext))
        else:
            command = build_publish(topic, body, partition)
    except ProtocolError as e:
        return {"error": str(e)}
    return _emit(command, send)


@mcp.tool()
def encode_multi_publish(
    topic: str,
    messages: list[str],
    partition: str | None = None,
    trace_ids: list[int] | None = None,
    exts: list[dict[str, str]] | None = None,
    send: bool = False,
) -> dict[str, Any]:
    """Build an MPUB, MPUB_TRACE or MPUB_EXT command for several messages.

    Args:
        topic: Topic name.
        messages: Message texts, sent UTF-8 encoded.
        partition: Partition id (required with trace_ids or exts).
        trace_ids: One trace id per message.
        exts: One extension dict per message.
        send: Also write the command to the open connection.
    """
    if (trace_ids is not None or exts is not None) and partition is None:
        return {"error": "MPUB_TRACE and MPUB_EXT require a partition"}
    if trace_ids is not None and exts is not None:
        return {"error": "Give either trace_ids or exts, not both"}

    bodies = [m.encode("utf-8") for m in messages]
    try:
        if trace_ids is not None:
            command = build_multi_publish_trace(topic, partition, trace_ids, bodies)
        elif exts is not None:
            ext_list = [MsgExt(custom=e) for e in exts]
            command = build_multi_publish_with_json_ext(topic, partition, ext_list, bodies)
        else:
            command = build_multi_publish(topic, bodies, partition)
    except ProtocolError as e:
        return {"error": str(e)}
    result = _emit(command, send)
    result["message_count"] = len(bodies)
    return result


@mcp.tool()
def encode_subscribe(
    topic: str,
    channel: str,
    partition: str | None = None,
    mode: str = "plain",
    offset_type: str | None = None,
    offset_value: int = 0,
    send: bool = False,
) -> dict[str, Any]:
    """Build a SUB, SUB_ADVANCED or SUB_ORDERED command.

    Args:
        topic: Topic name.
        channel: Channel name.
        partition: Partition id (required for ordered mode and offsets).
        mode: "plain", "advanced" or "ordered".
        offset_type: For advanced mode: timestamp, virtual_queue or special.
        offset_value: Offset value for offset_type.
        send: Also write the command to the open connection.
    """
    try:
        if mode == "plain":
            command = build_subscribe(topic, channel, partition)
        elif mode == "advanced":
            offset = None
            if offset_type is not None:
                offset = ConsumeOffset(OffsetType(offset_type), offset_value)
            command = build_subscribe_advanced(topic, channel, partition, offset)
        elif mode == "ordered":
            if partition is None:
                return {"error": "Ordered subscriptions require a partition"}
            command = build_subscribe_ordered(topic, channel, partition)
        else:
            return {"error": f"Unknown mode '{mode}'. Valid: plain, advanced, ordered"}
    except ValueError as e:
        return {"error": str(e)}
    return _emit(command, send)


@mcp.tool()
def encode_control(
    verb: str,
    topic: str = "",
    partition: str = "",
    channel: str = "",
    count: int = 1,
    message_id: str = "",
    delay_ms: int = 0,
    secret: str = "",
    with_ext: bool = False,
    send: bool = False,
) -> dict[str, Any]:
    """Build a lifecycle or flow-control command.

    Args:
        verb: One of PING, NOP, CLS, RDY, FIN, REQ, TOUCH, REGISTER,
              UNREGISTER, AUTH, INTERNAL_CREATE_TOPIC.
        topic: Topic for REGISTER, UNREGISTER and INTERNAL_CREATE_TOPIC.
        partition: Partition for REGISTER, UNREGISTER and
                   INTERNAL_CREATE_TOPIC (numeric for the latter).
        channel: Optional channel for REGISTER and UNREGISTER.
        count: Ready count for RDY.
        message_id: 16-character message id for FIN, REQ and TOUCH.
        delay_ms: Requeue delay for REQ in milliseconds.
        secret: Secret for AUTH.
        with_ext: INTERNAL_CREATE_TOPIC with extension support.
        send: Also write the command to the open connection.
    """
    builders = {
        Verb.PING: build_ping,
        Verb.NOP: build_nop,
        Verb.CLS: build_start_close,
        Verb.READY: lambda: build_ready(count),
        Verb.FINISH: lambda: build_finish(message_id),
        Verb.TOUCH: lambda: build_touch(message_id),
        Verb.REQUEUE: lambda: build_requeue(message_id, timedelta(milliseconds=delay_ms)),
        Verb.REGISTER: lambda: build_register(topic, partition, channel),
        Verb.UNREGISTER: lambda: build_unregister(topic, partition, channel),
        Verb.AUTH: lambda: build_auth(secret),
        Verb.CREATE_TOPIC: lambda: build_create_topic(topic, int(partition), with_ext),
    }
    name = verb.upper()
    selected = Verb.__members__.get(name) or next(
        (v for v in Verb if v.value == name), None
    )
    builder = builders.get(selected)
    if builder is None:
        valid = [v.value for v in builders]
        return {"error": f"Unknown control verb '{verb}'. Valid: {valid}"}

    if selected in (Verb.REGISTER, Verb.UNREGISTER, Verb.CREATE_TOPIC):
        if not topic or not partition:
            return {"error": f"{selected.value} requires a topic and a partition"}

    try:
        command = builder()
    except ValueError as e:
        return {"error": str(e)}
    return _emit(command, send)


@mcp.tool()
def decode_command_hex(data: str) -> dict[str, Any]:
    """Decode a serialized command back into verb, params and body records.

    Args:
        data: The serialized command as a hex string.
    """
    try:
        raw = bytes.fromhex(data)
        command, rest = decode_command(raw)
        records = decode_body(command)
    except ValueError as e:
        return {"error": str(e)}

    result: dict[str, Any] = {
        "verb": command.name.decode("ascii", "replace"),
        "params": [p.decode("utf-8", "replace") for p in command.params],
        "has_body": command.body is not None,
        "trailing_bytes": len(rest),
    }
    if isinstance(records, list):
        result["messages"] = [_record_to_dict(r) for r in records]
    elif records is not None:
        result["body"] = _record_to_dict(records)
    return result


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("nsq://verbs")
def resource_verbs() -> str:
    """Every command verb and whether it carries a body."""
    return json.dumps({
        "verbs": [
            {"name": v.value, "body": v in BODY_VERBS} for v in Verb
        ]
    })


@mcp.resource("nsq://offset-types")
def resource_offset_types() -> str:
    """Consume offset types accepted by SUB_ADVANCED."""
    return json.dumps({"offset_types": [t.value for t in OffsetType]})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def inspect_frame(data: str) -> str:
    """Walk through a captured command frame.

    Args:
        data: The frame as a hex string.
    """
    return f"""Decode this NSQ command frame with the decode_command_hex tool:

{data}

Explain:
- The verb and each parameter
- Whether the body length prefix matches the body
- For multi-publish verbs, each message with its trace id or extension

Point out anything that would be rejected by nsqd."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
