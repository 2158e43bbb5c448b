"""Frame reader: turns the inbound byte stream into Events.

Frame layout:
    Name: value\\n        (zero or more header lines)
    \\n                   (blank line ends the header block)
    <body>               (exactly Content-Length bytes, only if the header is present)

The reader makes no assumption about how the transport chunks data. Bytes
that arrive past the end of a frame stay in the buffer for the next call.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import MalformedFrame, StreamClosed
from .events import CONTENT_LENGTH, Event

if TYPE_CHECKING:
    from ..transport.base import TransportStream

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


def parse_header_line(line: str) -> tuple[str, str]:
    """Split `Name: value` on the first colon, left-trimming the value."""
    name, sep, value = line.partition(":")
    if not sep:
        raise MalformedFrame(f"Header line without colon: {line!r}")
    return name, value.lstrip(" \t")


def parse_header_block(raw: bytes) -> dict[str, str]:
    """Parse header lines (without the terminating blank line).

    Duplicate names: the last occurrence wins.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFrame(f"Header block is not valid UTF-8: {e}") from e

    headers: dict[str, str] = {}
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if not line:
            continue
        name, value = parse_header_line(line)
        headers.pop(name, None)
        headers[name] = value
    return headers


def parse_content_length(headers: dict[str, str]) -> int | None:
    """Declared body length, None when the header is absent."""
    value = headers.get(CONTENT_LENGTH)
    if value is None:
        return None
    value = value.strip()
    if not value.isascii() or not value.isdigit():
        raise MalformedFrame(f"Invalid {CONTENT_LENGTH}: {value!r}")
    return int(value)


def find_header_end(buffer: bytes | bytearray, start: int = 0) -> tuple[int, int]:
    """Locate the blank line ending a header block.

    Scans complete lines beginning at `start` (which must be a line start).

    Returns:
        (end, resume): `end` is the offset just past the blank line, or -1 if
        no blank line is buffered yet; `resume` is the offset to continue
        scanning from once more data arrives.
    """
    pos = start
    while True:
        newline = buffer.find(b"\n", pos)
        if newline < 0:
            return -1, pos
        if buffer[pos:newline] in (b"", b"\r"):
            return newline + 1, pos
        pos = newline + 1


async def parse_next(
    stream: TransportStream,
    buffer: bytearray,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Event:
    """Read one complete frame from `stream`, using `buffer` for carry-over.

    Raises:
        MalformedFrame: A header line lacks a colon, or Content-Length is invalid
        StreamClosed: End of input before the frame was complete
        Exception: Whatever the transport raises on read is propagated as-is
    """
    scan_from = 0
    while True:
        header_end, scan_from = find_header_end(buffer, scan_from)
        if header_end >= 0:
            break
        await _fill(stream, buffer, chunk_size, "header block")

    headers = parse_header_block(bytes(buffer[:header_end]))
    length = parse_content_length(headers)

    body: bytes | None = None
    frame_end = header_end
    if length is not None:
        frame_end = header_end + length
        while len(buffer) < frame_end:
            await _fill(stream, buffer, chunk_size, f"body ({length} bytes)")
        body = bytes(buffer[header_end:frame_end])

    del buffer[:frame_end]
    return Event(headers=headers, body=body)


async def _fill(
    stream: TransportStream, buffer: bytearray, chunk_size: int, waiting_for: str
) -> None:
    chunk = await stream.read(chunk_size)
    if not chunk:
        raise StreamClosed(
            f"Stream ended while waiting for {waiting_for} ({len(buffer)} bytes buffered)"
        )
    buffer.extend(chunk)


class FrameReader:
    """Incremental frame reader bound to one stream.

    Owns the read buffer. Each `read_frame()` call yields the next Event in
    arrival order; frames are not replayable.
    """

    def __init__(self, stream: TransportStream, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Bytes read from the stream but not yet consumed by a frame."""
        return len(self._buffer)

    async def read_frame(self) -> Event:
        event = await parse_next(self._stream, self._buffer, self._chunk_size)
        logger.debug(
            f"Frame parsed: {len(event.headers)} headers, "
            f"body={'none' if event.body is None else len(event.body)}, "
            f"{len(self._buffer)} bytes carried over"
        )
        return event
