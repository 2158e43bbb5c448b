"""Event Socket session client.

Authenticates against a telephony switch's Event Socket, sends commands,
and consumes the asynchronous event stream until a completion condition.

Layers:
- transport: connected byte stream (TCP, forwarded tunnel port, or mock)
- protocol: commands, events, and the frame reader
- session: authentication handshake plus send/read_event/close
- driver: subscribe, act, and wait for the completing event
"""

from .config import ClientConfig, CompletionRule, load_config
from .driver import (
    DriverConfig,
    DriverResult,
    DriverState,
    EventLoopDriver,
    header_equals,
)
from .errors import (
    AuthenticationFailed,
    EventSocketError,
    InvalidCommand,
    MalformedFrame,
    ReadFailed,
    SessionClosed,
    StreamClosed,
    TransportError,
    WriteFailed,
)
from .protocol import Command, ContentType, Event, EventFormat, FrameReader, parse_next
from .session import Session, SessionState
from .transport import MockTransportStream, StreamTransport, TransportStream, open_tcp_transport

__version__ = "0.1.0"

__all__ = [
    # Session
    "Session",
    "SessionState",
    # Driver
    "EventLoopDriver",
    "DriverConfig",
    "DriverResult",
    "DriverState",
    "header_equals",
    # Protocol
    "Command",
    "ContentType",
    "Event",
    "EventFormat",
    "FrameReader",
    "parse_next",
    # Transport
    "TransportStream",
    "StreamTransport",
    "MockTransportStream",
    "open_tcp_transport",
    # Configuration
    "ClientConfig",
    "CompletionRule",
    "load_config",
    # Errors
    "EventSocketError",
    "MalformedFrame",
    "AuthenticationFailed",
    "TransportError",
    "ReadFailed",
    "WriteFailed",
    "StreamClosed",
    "SessionClosed",
    "InvalidCommand",
]
