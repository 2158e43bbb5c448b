"""Event Socket session client.

Owns one transport stream for its whole lifetime:
- connect: read the server greeting, answer an auth challenge if one is sent
- send: write a single command line (fire-and-forget)
- read_event: next frame from the server, in arrival order
- close: release the stream exactly once

Every read/write/framing failure is fatal: the stream is closed and the
error propagates. Nothing is retried here.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from .errors import (
    AuthenticationFailed,
    EventSocketError,
    ReadFailed,
    SessionClosed,
    TransportError,
    WriteFailed,
)
from .protocol.commands import DEFAULT_TERMINATOR, Command
from .protocol.decoding import expand_event
from .protocol.events import ContentType, Event
from .protocol.framing import DEFAULT_CHUNK_SIZE, FrameReader
from .transport.base import TransportStream

logger = logging.getLogger(__name__)

AUTH_ACCEPTED_PREFIX = "+OK"


class SessionState(str, Enum):
    """Session lifecycle."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class Session:
    """A single Event Socket session over one transport stream.

    Not safe for concurrent use: one task should own reads, and writes must
    be interleaved between reads by that same owner.

    Usage:
        async with await Session.connect(stream, "ClueCon") as session:
            await session.send(Command.events(event_format="json"))
            event = await session.read_event()
    """

    def __init__(
        self,
        stream: TransportStream,
        command_terminator: str = DEFAULT_TERMINATOR,
        expand_event_bodies: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._stream = stream
        self._reader = FrameReader(stream, chunk_size=chunk_size)
        self._terminator = command_terminator
        self._expand = expand_event_bodies
        self._state = SessionState.UNAUTHENTICATED
        # Greeting consumed by connect() when the server did not challenge.
        self._pending: Event | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == SessionState.CLOSED

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    @classmethod
    async def connect(
        cls,
        stream: TransportStream,
        credential: str,
        **options: Any,
    ) -> Session:
        """Create a session and run the authentication handshake.

        Args:
            stream: Connected transport stream; owned by the session from here on
            credential: Shared secret sent verbatim in the `auth` command
            **options: Passed to the Session constructor

        Raises:
            AuthenticationFailed: Challenge rejected, or any failure during the
                handshake. The stream is closed before this is raised.
        """
        session = cls(stream, **options)
        try:
            await session._handshake(credential)
        except AuthenticationFailed:
            await session.abort()
            raise
        except Exception as e:
            await session.abort()
            raise AuthenticationFailed(f"Authentication handshake failed: {e}") from e
        return session

    async def _handshake(self, credential: str) -> None:
        greeting = await self.read_event()

        if greeting.content_type == ContentType.RUDE_REJECTION.value:
            raise AuthenticationFailed(
                f"Connection rejected by server: {greeting.body_text.strip() or 'no reason given'}"
            )

        if not greeting.is_auth_request():
            logger.info("Server sent no auth challenge, session is authenticated")
            self._pending = greeting
            self._state = SessionState.AUTHENTICATED
            return

        await self.send(Command.auth(credential))
        reply = await self.read_event()
        reply_text = reply.reply_text
        if not reply_text.startswith(AUTH_ACCEPTED_PREFIX):
            raise AuthenticationFailed(
                f"Authentication rejected: {reply_text or reply.content_type or 'empty reply'}"
            )

        self._state = SessionState.AUTHENTICATED
        logger.info("Session authenticated")

    async def send(self, command: Command | str) -> None:
        """Write one command line.

        Raises:
            SessionClosed: The session is closed
            WriteFailed: The stream write failed (session is closed)
        """
        self._ensure_open()
        if isinstance(command, str):
            command = Command(text=command)

        try:
            await self._stream.write(command.encode(self._terminator))
        except Exception as e:
            await self.abort()
            raise WriteFailed(f"Failed to send {command.verb!r}: {e}") from e

        logger.debug(f"Sent: {command.redacted()}")

    async def read_event(self) -> Event:
        """Wait for and return the next event.

        Raises:
            SessionClosed: The session is closed
            MalformedFrame: Framing violated (session is closed)
            StreamClosed: Server ended the stream (session is closed)
            ReadFailed: The stream read failed or timed out (session is closed)
        """
        self._ensure_open()
        if self._pending is not None:
            event, self._pending = self._pending, None
            return event

        try:
            event = await self._reader.read_frame()
            if self._expand:
                event = expand_event(event)
        except EventSocketError:
            await self.abort()
            raise
        except Exception as e:
            await self.abort()
            raise ReadFailed(f"Failed to read from stream: {e}") from e

        logger.debug(
            f"Received: {event.event_name or event.content_type or 'event'} "
            f"({len(event.headers)} headers)"
        )
        return event

    async def events(self) -> AsyncIterator[Event]:
        """Yield events until an error ends the session."""
        while True:
            yield await self.read_event()

    async def close(self) -> None:
        """Close the session and its stream. Calling again is a no-op.

        Raises:
            TransportError: The stream failed to close (the session still counts as closed)
        """
        if self._state == SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED
        self._pending = None
        try:
            await self._stream.close()
        except Exception as e:
            raise TransportError(f"Failed to close stream: {e}") from e
        logger.info("Session closed")

    async def abort(self) -> None:
        """Best-effort close used on error paths; close failures are only logged."""
        try:
            await self.close()
        except TransportError as e:
            logger.warning(f"Ignoring close failure during teardown: {e}")

    def _ensure_open(self) -> None:
        if self._state == SessionState.CLOSED:
            raise SessionClosed("Session is closed")

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
