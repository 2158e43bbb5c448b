"""Error hierarchy for the Event Socket client.

Every failure the protocol engine surfaces derives from EventSocketError.
Nothing is retried internally; fatal errors tear the session down and
propagate to the caller.
"""

from __future__ import annotations


class EventSocketError(Exception):
    """Base class for all Event Socket errors.

    Attributes:
        stage: Driver state in which the error surfaced, if it passed
            through the EventLoopDriver. None otherwise.
    """

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage


class MalformedFrame(EventSocketError):
    """Protocol framing was violated. The session cannot recover."""


class AuthenticationFailed(EventSocketError):
    """The auth challenge/response was rejected or could not complete."""


class TransportError(EventSocketError):
    """The underlying byte stream failed."""


class ReadFailed(TransportError):
    """Reading from the stream failed (including read deadlines)."""


class WriteFailed(TransportError):
    """Writing to the stream failed."""


class StreamClosed(EventSocketError):
    """The stream reached end-of-input before a complete frame arrived."""


class SessionClosed(EventSocketError):
    """An operation was attempted on a session that is already closed."""


class InvalidCommand(EventSocketError, ValueError):
    """Command text cannot be framed as a single protocol line.

    Also a ValueError, so pydantic validators report it as a validation error.
    """
