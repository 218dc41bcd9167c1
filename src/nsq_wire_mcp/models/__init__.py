"""Value types embedded in commands: offsets, extensions, message ids."""

from .ext import MsgExt
from .message_id import MESSAGE_ID_LENGTH, message_id_bytes
from .offset import ConsumeOffset, OffsetType
