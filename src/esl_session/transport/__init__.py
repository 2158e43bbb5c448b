"""Transport layer.

The session runs over any reliable, ordered, bidirectional byte stream:
- StreamTransport: asyncio streams (TCP, or a locally forwarded tunnel port)
- MockTransportStream: scripted in-memory stream for tests
"""

from .base import StreamTransport, TransportStream, open_tcp_transport
from .mock import MockTransportStream

__all__ = [
    "TransportStream",
    "StreamTransport",
    "open_tcp_transport",
    "MockTransportStream",
]
