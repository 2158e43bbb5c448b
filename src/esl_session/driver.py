"""Event loop driver.

Runs one tracked action end to end:

    STARTING -> AUTHENTICATING -> SUBSCRIBING -> AWAITING_COMPLETION -> DONE
                         (any state) -> ERRORED

The action's outcome arrives asynchronously as events, so the driver reads
events until the completion predicate matches one. There is no deadline in
the loop itself; a read timeout on the transport surfaces as ReadFailed.
The session is closed on every exit path.
"""

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from .config import ClientConfig
from .errors import EventSocketError
from .protocol.commands import DEFAULT_TERMINATOR, Command
from .protocol.events import Event
from .session import Session
from .transport.base import TransportStream, open_tcp_transport

logger = logging.getLogger(__name__)

EventPredicate = Callable[[Event], bool]
EventCallback = Callable[[Event], Awaitable[None] | None]
StreamFactory = Callable[[], Awaitable[TransportStream]]


class DriverState(str, Enum):
    """Driver state machine."""

    STARTING = "starting"
    AUTHENTICATING = "authenticating"
    SUBSCRIBING = "subscribing"
    AWAITING_COMPLETION = "awaiting_completion"
    DONE = "done"
    ERRORED = "errored"


def header_equals(name: str, value: str) -> EventPredicate:
    """Predicate matching events whose header `name` equals `value`."""

    def predicate(event: Event) -> bool:
        return event.has_header(name) and event.get(name) == value

    predicate.__name__ = f"header_equals({name}={value})"
    return predicate


@dataclass
class DriverConfig:
    """What the driver does once the stream is open.

    `completion` None means there is no completion signal: events are read
    until the server ends the stream or an error occurs.
    """

    credential: str
    subscription: Command | str | None = None
    commands: list[Command | str] = field(default_factory=list)
    completion: EventPredicate | None = None
    command_terminator: str = DEFAULT_TERMINATOR
    expand_event_bodies: bool = True


@dataclass
class DriverResult:
    """Outcome of a driver run that reached DONE."""

    state: DriverState
    completion_event: Event | None
    events_seen: int


class EventLoopDriver:
    """Authenticate, subscribe, issue commands, and wait for completion.

    Args:
        config: Commands to send and the completion predicate
        open_stream: Coroutine factory returning a connected TransportStream
    """

    def __init__(self, config: DriverConfig, open_stream: StreamFactory):
        self.config = config
        self._open_stream = open_stream
        self._state = DriverState.STARTING
        self._session: Session | None = None
        self._events_seen = 0
        self._completion_event: Event | None = None

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def events_seen(self) -> int:
        return self._events_seen

    @property
    def completion_event(self) -> Event | None:
        return self._completion_event

    def _transition(self, state: DriverState) -> None:
        logger.info(f"Driver: {self._state.value} -> {state.value}")
        self._state = state

    async def iter_events(self) -> AsyncIterator[Event]:
        """Run the state machine, yielding every event read while awaiting completion.

        The completing event is yielded before the generator finishes.
        Commands are checked before the stream is opened. Closing the
        generator early closes the session and ends in DONE with no
        completion event.

        Raises:
            EventSocketError: The original failure, with `stage` set to the
                state the driver was in when it occurred
        """
        try:
            subscription, commands = self._prepare_commands()
            stream = await self._open_stream()

            self._transition(DriverState.AUTHENTICATING)
            self._session = await Session.connect(
                stream,
                self.config.credential,
                command_terminator=self.config.command_terminator,
                expand_event_bodies=self.config.expand_event_bodies,
            )

            self._transition(DriverState.SUBSCRIBING)
            if subscription is not None:
                await self._session.send(subscription)
            for command in commands:
                await self._session.send(command)

            self._transition(DriverState.AWAITING_COMPLETION)
            completion = self.config.completion
            while True:
                event = await self._session.read_event()
                self._events_seen += 1
                yield event
                if completion is not None and completion(event):
                    self._completion_event = event
                    break

            await self._session.close()
            self._transition(DriverState.DONE)
        except GeneratorExit:
            if self._state != DriverState.ERRORED:
                self._transition(DriverState.DONE)
            raise
        except Exception as e:
            stage = self._state
            self._transition(DriverState.ERRORED)
            if isinstance(e, EventSocketError) and e.stage is None:
                e.stage = stage.value
            logger.error(f"Driver failed while {stage.value}: {e}")
            raise
        finally:
            if self._session is not None and not self._session.is_closed:
                await self._session.abort()

    def _prepare_commands(self) -> tuple[Command | None, list[Command]]:
        """Turn configured command text into Commands.

        Raises:
            InvalidCommand: A command cannot be sent as a single line
        """

        def as_command(value: Command | str) -> Command:
            return value if isinstance(value, Command) else Command(text=value)

        subscription = self.config.subscription
        return (
            as_command(subscription) if subscription else None,
            [as_command(command) for command in self.config.commands],
        )

    async def run(self, on_event: EventCallback | None = None) -> DriverResult:
        """Drive the session to completion.

        Args:
            on_event: Called with every event received (sync or async)

        Returns:
            DriverResult in state DONE
        """
        async with contextlib.aclosing(self.iter_events()) as events:
            async for event in events:
                if on_event is None:
                    continue
                try:
                    result = on_event(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    self._transition(DriverState.ERRORED)
                    logger.error(f"Event callback failed: {e}")
                    raise

        return DriverResult(
            state=self._state,
            completion_event=self._completion_event,
            events_seen=self._events_seen,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        extra_commands: list[Command | str] | None = None,
        completion: EventPredicate | None = None,
    ) -> EventLoopDriver:
        """Build a driver dialing TCP as described by a ClientConfig.

        `completion` overrides the rule in `config.completion`.
        """
        commands: list[Command | str] = []
        if config.action:
            commands.append(config.action)
        commands.extend(extra_commands or [])

        if completion is None and config.completion is not None:
            completion = config.completion.matches

        driver_config = DriverConfig(
            credential=config.password,
            subscription=config.subscription,
            commands=commands,
            completion=completion,
            command_terminator=config.command_terminator,
            expand_event_bodies=config.expand_event_bodies,
        )

        async def open_stream() -> TransportStream:
            return await open_tcp_transport(
                config.host,
                config.port,
                connect_timeout=config.connect_timeout,
                read_timeout=config.read_timeout,
            )

        return cls(driver_config, open_stream)
