"""Transport stream abstraction.

The protocol engine only needs an already-connected, ordered, bidirectional
byte stream. How it was obtained (plain TCP, a port forwarded through an
SSH tunnel, a test double) is not its concern.

Read deadlines are imposed here, at the stream boundary: a read that times
out raises TimeoutError, which the session reports like any other read
failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol, runtime_checkable

from ..errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class TransportStream(Protocol):
    """Protocol for byte streams the session runs over.

    - read: up to `max_bytes` bytes; b"" means end of input
    - write: all of `data`, or raise
    - close: release the underlying connection
    """

    async def read(self, max_bytes: int) -> bytes:
        """Read available bytes, waiting until at least one arrives or EOF."""
        ...

    async def write(self, data: bytes) -> None:
        """Write all bytes."""
        ...

    async def close(self) -> None:
        """Close the stream."""
        ...


class StreamTransport:
    """TransportStream over an asyncio StreamReader/StreamWriter pair.

    Args:
        reader: Inbound side of the connection
        writer: Outbound side of the connection
        read_timeout: Seconds to wait for data on each read; None waits forever
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_timeout: float | None = None,
    ):
        self._reader = reader
        self._writer = writer
        self._read_timeout = read_timeout

    @property
    def peer(self) -> str:
        peername = self._writer.get_extra_info("peername")
        if not peername:
            return "unknown"
        return f"{peername[0]}:{peername[1]}"

    async def read(self, max_bytes: int) -> bytes:
        if self._read_timeout is None:
            return await self._reader.read(max_bytes)
        try:
            return await asyncio.wait_for(self._reader.read(max_bytes), timeout=self._read_timeout)
        except TimeoutError as e:
            raise TimeoutError(f"No data received within {self._read_timeout}s") from e

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        # The peer may already have reset the connection.
        with contextlib.suppress(ConnectionError):
            await self._writer.wait_closed()


async def open_tcp_transport(
    host: str,
    port: int,
    connect_timeout: float = 10.0,
    read_timeout: float | None = None,
) -> StreamTransport:
    """Dial `host:port` and wrap the connection as a TransportStream.

    Raises:
        TransportError: If the connection cannot be established
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=connect_timeout,
        )
    except (OSError, TimeoutError) as e:
        raise TransportError(f"Failed to connect to {host}:{port}: {e}") from e

    transport = StreamTransport(reader, writer, read_timeout=read_timeout)
    logger.info(f"Connected to {transport.peer}")
    return transport
