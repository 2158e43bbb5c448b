"""Command definitions for the protocol layer.

A command is one line of text (verb plus arguments) written to the
stream. Commands are fire-and-forget: the client does not track them
after transmission, and any reply arrives later as an Event.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from ..errors import InvalidCommand

DEFAULT_TERMINATOR = "\n"


def check_command_text(text: str) -> str:
    """Reject text that cannot be sent as one command line."""
    if not text.strip():
        raise InvalidCommand("Command text must not be empty")
    if "\n" in text or "\r" in text:
        raise InvalidCommand(f"Command must be a single line: {text!r}")
    return text


class CommandVerb(str, Enum):
    """Protocol verbs with dedicated builders."""

    AUTH = "auth"
    EVENTS = "events"
    NOEVENTS = "noevents"
    NIXEVENT = "nixevent"
    MYEVENTS = "myevents"
    FILTER = "filter"
    API = "api"
    BGAPI = "bgapi"
    LINGER = "linger"
    NOLINGER = "nolinger"
    EXIT = "exit"


class EventFormat(str, Enum):
    """Encodings the server can use for subscribed events."""

    PLAIN = "plain"
    JSON = "json"
    XML = "xml"


class Command(BaseModel):
    """A single command line sent to the server.

    Example:
        Command(text="events json ALL").encode()  # b"events json ALL\\n"
    """

    model_config = ConfigDict(frozen=True)

    text: str

    def __init__(self, text: str, **data: Any) -> None:
        # Checked here too so direct construction raises InvalidCommand itself
        # rather than the ValidationError pydantic wraps it in.
        check_command_text(text)
        super().__init__(text=text, **data)

    @field_validator("text")
    @classmethod
    def _single_line(cls, value: str) -> str:
        return check_command_text(value)

    @property
    def verb(self) -> str:
        return self.text.split(" ", 1)[0]

    def encode(self, terminator: str = DEFAULT_TERMINATOR) -> bytes:
        """Wire bytes: UTF-8 text followed by the line terminator."""
        return (self.text + terminator).encode("utf-8")

    def redacted(self) -> str:
        """Text safe for logs (the auth credential is masked)."""
        if self.verb == CommandVerb.AUTH.value:
            return "auth ********"
        return self.text

    def __repr__(self) -> str:
        return f"Command(text={self.redacted()!r})"

    def __str__(self) -> str:
        return self.redacted()

    @classmethod
    def create(cls, verb: str | CommandVerb, *args: str) -> Command:
        """Factory method joining a verb and its arguments with spaces."""
        parts = [verb.value if isinstance(verb, CommandVerb) else verb]
        parts.extend(arg for arg in args if arg)
        return cls(text=" ".join(parts))

    # Convenience factories for the verbs in use

    @classmethod
    def auth(cls, credential: str) -> Command:
        return cls.create(CommandVerb.AUTH, credential)

    @classmethod
    def events(
        cls,
        names: str | list[str] = "ALL",
        event_format: str | EventFormat = EventFormat.PLAIN,
    ) -> Command:
        """Subscribe to events, e.g. `events json ALL`."""
        fmt = EventFormat(event_format)
        if isinstance(names, str):
            names = [names]
        return cls.create(CommandVerb.EVENTS, fmt.value, *names)

    @classmethod
    def noevents(cls) -> Command:
        return cls.create(CommandVerb.NOEVENTS)

    @classmethod
    def nixevent(cls, *names: str) -> Command:
        return cls.create(CommandVerb.NIXEVENT, *names)

    @classmethod
    def myevents(cls, uuid: str, event_format: str | EventFormat = EventFormat.PLAIN) -> Command:
        return cls.create(CommandVerb.MYEVENTS, uuid, EventFormat(event_format).value)

    @classmethod
    def filter(cls, header: str, value: str) -> Command:
        return cls.create(CommandVerb.FILTER, header, value)

    @classmethod
    def filter_delete(cls, header: str, value: str = "") -> Command:
        return cls.create(CommandVerb.FILTER, "delete", header, value)

    @classmethod
    def api(cls, command: str) -> Command:
        return cls.create(CommandVerb.API, command)

    @classmethod
    def bgapi(cls, command: str) -> Command:
        return cls.create(CommandVerb.BGAPI, command)

    @classmethod
    def originate(cls, destination: str, application: str) -> Command:
        """Background originate: the outcome arrives later as events."""
        return cls.bgapi(f"originate {destination} {application}")

    @classmethod
    def linger(cls) -> Command:
        return cls.create(CommandVerb.LINGER)

    @classmethod
    def nolinger(cls) -> Command:
        return cls.create(CommandVerb.NOLINGER)

    @classmethod
    def exit(cls) -> Command:
        return cls.create(CommandVerb.EXIT)
