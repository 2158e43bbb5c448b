"""Human-readable rendering of events for the CLI."""

from __future__ import annotations

import json

from .protocol.events import Event


def format_event(event: Event, index: int | None = None) -> str:
    """Render headers sorted by name, then the body if there is one."""
    title = "New event" if index is None else f"Event #{index}"
    if event.event_name:
        title = f"{title}: {event.event_name}"

    lines = [title]
    width = max((len(name) for name in event.headers), default=0)
    for name in sorted(event.headers):
        lines.append(f"  {name.ljust(width)} : {event.headers[name]}")

    if event.body is not None:
        lines.append(f"  [body, {len(event.body)} bytes]")
        lines.extend(f"  {line}" for line in event.body_text.splitlines())
    return "\n".join(lines)


def event_to_json(event: Event) -> str:
    """One JSON object per event, for piping into other tools."""
    data: dict[str, object] = {"headers": dict(event.headers)}
    if event.body is not None:
        data["body"] = event.body_text
    return json.dumps(data, ensure_ascii=False)
