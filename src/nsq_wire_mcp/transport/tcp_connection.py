"""TCP connection to an nsqd daemon.

Opens the socket, sends the protocol magic and writes serialized
commands. Replies are returned as raw bytes; interpreting them, retrying
and reconnecting are left to the caller.
"""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass

from ..errors import CommandWriteError
from ..protocol.framing import Command, write_command

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4150
MAGIC_V2 = b"  V2"
CONNECT_TIMEOUT = 5.0
READ_TIMEOUT = 1.0
READ_SIZE = 4096


class _SocketSink:
    """Writes each chunk straight to the socket with ``sendall``."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)


@dataclass
class ConnectionInfo:
    """Endpoints of an open connection."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    local_address: str = ""


class TCPConnection:
    """Manages one TCP connection to the daemon.

    Writes from several threads are serialized so that a command's header
    line and body are never interleaved with another command.

    Usage::

        conn = TCPConnection("127.0.0.1", 4150)
        conn.open()
        conn.send(build_publish("events", b"hello"))
        reply = conn.read()
        conn.close()
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._sink: _SocketSink | None = None
        self._write_lock = threading.Lock()
        self._connected = False
        self._info = ConnectionInfo(host=host, port=port)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def info(self) -> ConnectionInfo:
        return self._info

    def open(self) -> ConnectionInfo:
        """Connect and send the protocol magic.

        Raises:
            ConnectionError: If the daemon cannot be reached.
        """
        if self._connected:
            return self._info
        try:
            sock = socket.create_connection(
                (self._host, self._port), timeout=self._connect_timeout
            )
        except OSError as e:
            raise ConnectionError(
                f"Could not connect to nsqd at {self._host}:{self._port}. "
                f"Last error: {e}"
            ) from e

        self._attach(sock)
        try:
            self._sink.write(MAGIC_V2)
        except OSError as e:
            self.close()
            raise ConnectionError(f"Failed to send protocol magic: {e}") from e

        logger.info("Connected to nsqd at %s:%d", self._host, self._port)
        return self._info

    def _attach(self, sock: socket.socket) -> None:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._sock = sock
        self._sink = _SocketSink(sock)
        self._connected = True
        host, port = sock.getsockname()[:2]
        self._info = ConnectionInfo(
            host=self._host, port=self._port, local_address=f"{host}:{port}"
        )

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._write_lock:
            self._teardown()

    def _teardown(self) -> None:
        # Caller holds _write_lock.
        if not self._connected:
            return

        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing connection: %s", e)
        finally:
            self._sock = None
            self._sink = None
            self._connected = False
            logger.info("Disconnected")

    def send(self, command: Command) -> int:
        """Write one command to the socket.

        A failed write closes the connection, since the daemon has seen a
        partial frame.

        Returns:
            Number of bytes written.

        Raises:
            ConnectionError: If not connected.
            CommandWriteError: If the write fails part-way.
        """
        with self._write_lock:
            if not self._connected:
                raise ConnectionError("Not connected to nsqd")
            try:
                written = write_command(command, self._sink)
            except CommandWriteError:
                self._teardown()
                raise
        logger.debug("Sent %s (%d bytes)", command, written)
        return written

    def send_many(self, commands: list[Command]) -> int:
        """Write several commands back to back under one lock."""
        total = 0
        with self._write_lock:
            if not self._connected:
                raise ConnectionError("Not connected to nsqd")
            for command in commands:
                try:
                    total += write_command(command, self._sink)
                except CommandWriteError as e:
                    self._teardown()
                    raise CommandWriteError(total + e.bytes_written, e.cause) from e.cause
        return total

    def read(self, size: int = READ_SIZE, timeout: float = READ_TIMEOUT) -> bytes | None:
        """Read whatever raw bytes the daemon has sent.

        Returns:
            Up to ``size`` bytes, or None if the read timed out.

        Raises:
            ConnectionError: If not connected or the peer closed the socket.
        """
        sock = self._sock
        if not self._connected or sock is None:
            raise ConnectionError("Not connected to nsqd")

        try:
            sock.settimeout(timeout)
            data = sock.recv(size)
        except socket.timeout:
            return None
        except OSError as e:
            self.close()
            raise ConnectionError(f"Read failed: {e}") from e
        if not data:
            self.close()
            raise ConnectionError("Connection closed by nsqd")
        return data
