"""Event Socket protocol layer.

Defines the wire units exchanged with the server:
- Commands: single text lines sent by the client, fire-and-forget
- Events: frames (headers, blank line, optional Content-Length body) sent by the server

The frame reader assembles Events from an arbitrarily chunked byte stream.
"""

from .commands import Command, CommandVerb, EventFormat
from .decoding import expand_event
from .events import ContentType, Event
from .framing import FrameReader, parse_next

__all__ = [
    "Command",
    "CommandVerb",
    "EventFormat",
    "ContentType",
    "Event",
    "FrameReader",
    "parse_next",
    "expand_event",
]
