"""Expansion of subscribed-event bodies.

Subscribed events arrive wrapped: the outer frame only says
`Content-Type: text/event-plain` (or `text/event-json`) and carries the
real event in its body. `expand_event` unwraps it into a flat Event.
"""

from __future__ import annotations

import json
import logging
from urllib.parse import unquote

from ..errors import MalformedFrame
from .events import ContentType, Event
from .framing import find_header_end, parse_content_length, parse_header_block

logger = logging.getLogger(__name__)

JSON_BODY_KEY = "_body"


def expand_event(event: Event) -> Event:
    """Return the inner event for wrapped content types, else `event` itself.

    Raises:
        MalformedFrame: The wrapped body cannot be decoded
    """
    content_type = event.content_type
    if content_type == ContentType.EVENT_PLAIN.value:
        inner = decode_plain_body(event.body or b"")
    elif content_type == ContentType.EVENT_JSON.value:
        inner = decode_json_body(event.body or b"")
    else:
        return event
    logger.debug(f"Expanded {content_type} frame into {inner.event_name or 'unnamed'} event")
    return inner


def decode_plain_body(body: bytes) -> Event:
    """Decode a `text/event-plain` body: percent-encoded headers plus optional body."""
    header_end, _ = find_header_end(body)
    if header_end < 0:
        # The server omits the trailing blank line when there is no inner body.
        header_end = len(body)
    raw_headers = parse_header_block(body[:header_end])
    headers = {name: unquote(value) for name, value in raw_headers.items()}

    length = parse_content_length(headers)
    inner_body: bytes | None = None
    if length is not None:
        inner_body = body[header_end : header_end + length]
        if len(inner_body) != length:
            raise MalformedFrame(
                f"Event body truncated: expected {length} bytes, got {len(inner_body)}"
            )
    return Event(headers=headers, body=inner_body)


def decode_json_body(body: bytes) -> Event:
    """Decode a `text/event-json` body into headers; `_body` becomes the body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedFrame(f"Invalid JSON event body: {e}") from e
    if not isinstance(data, dict):
        raise MalformedFrame(f"JSON event body must be an object, got {type(data).__name__}")

    headers: dict[str, str] = {}
    inner_body: bytes | None = None
    for name, value in data.items():
        if value is None:
            continue
        if name == JSON_BODY_KEY:
            inner_body = _as_text(value).encode("utf-8")
            continue
        headers[name] = _as_text(value)
    return Event(headers=headers, body=inner_body)


def _as_text(value: object) -> str:
    """Strings as-is; numbers, booleans and containers as JSON text."""
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
