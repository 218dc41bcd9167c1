"""Protocol layer: command entity, serializer, builders, and body decoders."""

from .framing import Command, write_command, parse_command
from .commands import Verb, BODY_VERBS
from .parser import decode_command, decode_body
