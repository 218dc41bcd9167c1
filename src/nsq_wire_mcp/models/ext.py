"""Per-message JSON extension blocks carried by PUB_EXT and MPUB_EXT."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from ..errors import ArgumentError, EncodingError

TRACE_ID_KEY = "##trace_id"
DISPATCH_TAG_KEY = "##client_dispatch_tag"
RESERVED_KEYS = (TRACE_ID_KEY, DISPATCH_TAG_KEY)


@dataclass
class MsgExt:
    """Extension metadata attached to a single message.

    The reserved keys are only emitted when set; ``custom`` pairs are
    copied into the same JSON object.
    """

    trace_id: int = 0
    dispatch_tag: str = ""
    custom: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key in RESERVED_KEYS:
            if key in self.custom:
                raise ArgumentError(f"Custom extension key {key!r} is reserved")

    def to_dict(self) -> dict[str, str]:
        d: dict[str, str] = {}
        if self.trace_id:
            d[TRACE_ID_KEY] = str(self.trace_id)
        if self.dispatch_tag:
            d[DISPATCH_TAG_KEY] = self.dispatch_tag
        d.update(self.custom)
        return d

    def to_json(self) -> bytes:
        """Encode as a compact JSON object with sorted keys."""
        try:
            text = json.dumps(
                self.to_dict(),
                separators=(",", ":"),
                sort_keys=True,
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode message extension: {e}") from e
        return text.encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> MsgExt:
        try:
            obj = json.loads(data) if data else {}
        except ValueError as e:
            raise ArgumentError(f"Invalid extension JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ArgumentError("Extension JSON must be an object")
        trace = obj.pop(TRACE_ID_KEY, "0")
        try:
            trace_id = int(trace)
        except (TypeError, ValueError) as e:
            raise ArgumentError(f"Invalid trace id in extension: {trace!r}") from e
        return cls(
            trace_id=trace_id,
            dispatch_tag=str(obj.pop(DISPATCH_TAG_KEY, "")),
            custom={str(k): str(v) for k, v in obj.items()},
        )
