"""In-memory transport for tests and offline use.

Plays back scripted server bytes, records everything the client writes,
and can answer commands with canned frames.

Usage:
    stream = MockTransportStream(chunk_size=1)
    stream.feed_event(Event.auth_request())
    stream.on_command("auth", [Event.command_reply("+OK accepted")])

    session = await Session.connect(stream, "ClueCon")

    assert stream.sent_lines == ["auth ClueCon"]
"""

from __future__ import annotations

import asyncio

from ..protocol.events import Event


class MockTransportStream:
    """Scripted TransportStream.

    Args:
        chunks: Initial inbound data
        chunk_size: Largest slice returned by a single read (None = whatever is buffered)
    """

    def __init__(self, chunks: list[bytes] | None = None, chunk_size: int | None = None) -> None:
        self._inbound = bytearray()
        self._eof = False
        self._data_ready = asyncio.Event()
        self._chunk_size = chunk_size
        self._responses: dict[str, list[bytes]] = {}
        self.written: list[bytes] = []
        self.close_calls = 0
        self.read_error: BaseException | None = None
        self.write_error: BaseException | None = None
        self.close_error: BaseException | None = None
        for chunk in chunks or []:
            self.feed(chunk)

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    @property
    def sent_bytes(self) -> bytes:
        return b"".join(self.written)

    @property
    def sent_lines(self) -> list[str]:
        """Non-empty lines the client has written, decoded."""
        text = self.sent_bytes.decode("utf-8")
        return [line for line in text.split("\n") if line]

    def feed(self, data: bytes) -> None:
        self._inbound.extend(data)
        self._data_ready.set()

    def feed_event(self, event: Event) -> None:
        self.feed(event.encode())

    def feed_eof(self) -> None:
        self._eof = True
        self._data_ready.set()

    def on_command(self, verb: str, frames: list[Event | bytes]) -> None:
        """Queue `frames` as the reply whenever a command with `verb` is written."""
        self._responses[verb] = [f.encode() if isinstance(f, Event) else f for f in frames]

    async def read(self, max_bytes: int) -> bytes:
        while True:
            if self.read_error is not None:
                raise self.read_error
            if self._inbound:
                size = max_bytes if self._chunk_size is None else min(max_bytes, self._chunk_size)
                data = bytes(self._inbound[:size])
                del self._inbound[:size]
                return data
            if self._eof:
                return b""
            self._data_ready.clear()
            await self._data_ready.wait()

    async def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(data)
        verb = data.decode("utf-8").split(" ", 1)[0].strip()
        for frame in self._responses.get(verb, []):
            self.feed(frame)

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error
