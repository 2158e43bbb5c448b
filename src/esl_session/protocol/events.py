"""Event definitions for the protocol layer.

An Event is one parsed frame from the server: an ordered header mapping
plus an optional raw body. Events are built by the frame reader and are
immutable once handed to the caller.

Wire form:
    Content-Type: command/reply
    Reply-Text: +OK accepted

    (blank line ends the header block; Content-Length bytes of body follow
    when the header is present)
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

CONTENT_LENGTH = "Content-Length"
CONTENT_TYPE = "Content-Type"


class ContentType(str, Enum):
    """Content types the server puts on frames."""

    AUTH_REQUEST = "auth/request"
    COMMAND_REPLY = "command/reply"
    API_RESPONSE = "api/response"
    EVENT_PLAIN = "text/event-plain"
    EVENT_JSON = "text/event-json"
    EVENT_XML = "text/event-xml"
    DISCONNECT_NOTICE = "text/disconnect-notice"
    RUDE_REJECTION = "text/rude-rejection"


class Event(BaseModel):
    """One protocol frame: headers plus optional body.

    `body` is None when the frame carried no Content-Length header and
    b"" when it carried `Content-Length: 0`. Duplicate header names keep
    the last value seen on the wire. `headers` is a read-only mapping.

    Example:
        event = Event(headers={"Event-Name": "CHANNEL_ANSWER", "Answer-State": "answered"})
        event.get("Answer-State")  # "answered"
        event.get("Missing")       # ""
    """

    model_config = ConfigDict(frozen=True)

    headers: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    body: bytes | None = None

    @field_validator("headers", mode="after")
    @classmethod
    def _read_only_headers(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("headers")
    def _serialize_headers(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    def get(self, name: str, default: str = "") -> str:
        """Get a header value, or `default` when absent."""
        return self.headers.get(name, default)

    def has_header(self, name: str) -> bool:
        """Check whether a header is present (exact, case-sensitive name)."""
        return name in self.headers

    def get_int(self, name: str) -> int | None:
        """Get a header parsed as an integer, None if absent or not numeric."""
        value = self.headers.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def content_type(self) -> str:
        return self.get(CONTENT_TYPE)

    @property
    def event_name(self) -> str:
        return self.get("Event-Name")

    @property
    def reply_text(self) -> str:
        return self.get("Reply-Text")

    @property
    def has_body(self) -> bool:
        return self.body is not None

    @property
    def body_text(self) -> str:
        """Body decoded as UTF-8 (empty string when there is no body)."""
        if self.body is None:
            return ""
        return self.body.decode("utf-8", errors="replace")

    def is_error_reply(self) -> bool:
        """Check for a `-ERR` command reply or api response."""
        if self.reply_text.startswith("-ERR"):
            return True
        return self.content_type == ContentType.API_RESPONSE.value and (
            self.body or b""
        ).startswith(b"-ERR")

    def is_auth_request(self) -> bool:
        return self.content_type == ContentType.AUTH_REQUEST.value

    def is_disconnect_notice(self) -> bool:
        return self.content_type == ContentType.DISCONNECT_NOTICE.value

    def encode(self) -> bytes:
        """Serialize back to wire form.

        Content-Length is derived from `body`: it is written after the other
        headers when a body is present and omitted otherwise.
        """
        lines = [
            f"{name}: {value}\n" for name, value in self.headers.items() if name != CONTENT_LENGTH
        ]
        if self.body is not None:
            lines.append(f"{CONTENT_LENGTH}: {len(self.body)}\n")
        data = ("".join(lines) + "\n").encode("utf-8")
        if self.body is not None:
            data += self.body
        return data

    @classmethod
    def create(
        cls,
        headers: Mapping[str, str] | None = None,
        body: bytes | str | None = None,
    ) -> Event:
        """Factory method for creating events."""
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(headers=headers or {}, body=body)

    # =========================================================================
    # Factory methods for common server frames
    # =========================================================================

    @classmethod
    def auth_request(cls) -> Event:
        return cls.create({CONTENT_TYPE: ContentType.AUTH_REQUEST.value})

    @classmethod
    def command_reply(cls, reply_text: str, extra: dict[str, str] | None = None) -> Event:
        headers = {CONTENT_TYPE: ContentType.COMMAND_REPLY.value, "Reply-Text": reply_text}
        headers.update(extra or {})
        return cls.create(headers)

    @classmethod
    def api_response(cls, body: str) -> Event:
        return cls.create({CONTENT_TYPE: ContentType.API_RESPONSE.value}, body)
