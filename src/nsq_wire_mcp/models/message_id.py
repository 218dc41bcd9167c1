"""Fixed-width message identifiers.

The daemon assigns every delivered message a 16-byte identifier which is
echoed back verbatim in FIN, REQ and TOUCH commands.
"""

from __future__ import annotations

from ..errors import ArgumentError

MESSAGE_ID_LENGTH = 16


def message_id_bytes(value: bytes | bytearray | str) -> bytes:
    """Return the 16 raw bytes of a message identifier.

    Args:
        value: The identifier as raw bytes, or its 16-character ASCII form.

    Raises:
        ArgumentError: If the identifier is not exactly 16 bytes.
    """
    if isinstance(value, str):
        try:
            value = value.encode("ascii")
        except UnicodeEncodeError as e:
            raise ArgumentError(f"Message id must be ASCII, got {value!r}") from e
    if not isinstance(value, (bytes, bytearray)):
        raise ArgumentError(
            f"Message id must be bytes or str, got {type(value).__name__}"
        )
    if len(value) != MESSAGE_ID_LENGTH:
        raise ArgumentError(
            f"Message id must be {MESSAGE_ID_LENGTH} bytes, got {len(value)}"
        )
    return bytes(value)
