"""Unit tests for the frame reader.

Covers:
- Header block parsing (colon split, whitespace, CRLF, duplicates)
- Content-Length bodies (binary, embedded blank lines, zero length)
- Chunk-size independence
- Malformed frames and premature end of stream
"""

import asyncio

import pytest

from esl_session.errors import MalformedFrame, StreamClosed
from esl_session.protocol.events import Event
from esl_session.protocol.framing import FrameReader, parse_header_line, parse_next
from esl_session.transport.mock import MockTransportStream

# =============================================================================
# Helpers
# =============================================================================

SAMPLE_STREAM = (
    b"Content-Type: auth/request\n\n"
    b"Content-Type: command/reply\nReply-Text: +OK accepted\n\n"
    b"Content-Type: api/response\nContent-Length: 14\n\n"
    b"+OK\n\nline two\n"
    b"Event-Name: CHANNEL_HANGUP\nAnswer-State: hangup\n\n"
)


def make_stream(data: bytes, chunk_size: int | None = None) -> MockTransportStream:
    """Stream that delivers `data` then EOF."""
    stream = MockTransportStream([data], chunk_size=chunk_size)
    stream.feed_eof()
    return stream


async def read_all(stream: MockTransportStream) -> list[Event]:
    """Read frames until the stream ends cleanly between frames."""
    reader = FrameReader(stream)
    events = []
    while True:
        try:
            events.append(await reader.read_frame())
        except StreamClosed:
            assert reader.buffered == 0
            return events


# =============================================================================
# Tests: Header Parsing
# =============================================================================


class TestHeaderLine:
    """Test splitting a single header line."""

    def test_split_on_first_colon(self):
        """Only the first colon separates name and value."""
        assert parse_header_line("Reply-Text: +OK Job-UUID: abc") == (
            "Reply-Text",
            "+OK Job-UUID: abc",
        )

    def test_value_left_trimmed(self):
        """Leading whitespace is stripped from the value, trailing kept."""
        assert parse_header_line("Name:    value  ") == ("Name", "value  ")

    def test_empty_value(self):
        """A header may have an empty value."""
        assert parse_header_line("Name:") == ("Name", "")

    def test_missing_colon_raises(self):
        """A line without a colon is malformed, not skipped."""
        with pytest.raises(MalformedFrame, match="without colon"):
            parse_header_line("garbage line")


class TestHeaderBlock:
    """Test header block parsing through parse_next."""

    @pytest.mark.anyio
    async def test_simple_frame(self):
        """Headers up to the blank line form one event without a body."""
        stream = make_stream(b"Content-Type: command/reply\nReply-Text: +OK\n\n")

        event = await parse_next(stream, bytearray())

        assert event.headers == {"Content-Type": "command/reply", "Reply-Text": "+OK"}
        assert event.body is None

    @pytest.mark.anyio
    async def test_parsed_headers_are_read_only(self):
        """Events handed out by the reader cannot be modified."""
        reader = FrameReader(make_stream(b"Answer-State: ringing\n\n"))

        event = await reader.read_frame()

        with pytest.raises(TypeError):
            event.headers["Answer-State"] = "hangup"
        assert event.get("Answer-State") == "ringing"

    @pytest.mark.anyio
    async def test_header_order_preserved(self):
        """Headers keep wire order."""
        stream = make_stream(b"B: 2\nA: 1\nC: 3\n\n")

        event = await parse_next(stream, bytearray())

        assert list(event.headers) == ["B", "A", "C"]

    @pytest.mark.anyio
    async def test_duplicate_header_last_wins(self):
        """The last occurrence of a duplicate header is kept."""
        stream = make_stream(b"Variable: first\nOther: x\nVariable: second\n\n")

        event = await parse_next(stream, bytearray())

        assert event.get("Variable") == "second"
        assert list(event.headers) == ["Other", "Variable"]

    @pytest.mark.anyio
    async def test_crlf_line_endings(self):
        """CRLF-terminated lines parse like LF-terminated ones."""
        stream = make_stream(b"Content-Type: command/reply\r\nReply-Text: +OK\r\n\r\n")

        event = await parse_next(stream, bytearray())

        assert event.headers == {"Content-Type": "command/reply", "Reply-Text": "+OK"}

    @pytest.mark.anyio
    async def test_empty_frame(self):
        """A lone blank line is a frame with no headers."""
        stream = make_stream(b"\nA: 1\n\n")
        buffer = bytearray()

        first = await parse_next(stream, buffer)
        second = await parse_next(stream, buffer)

        assert first.headers == {}
        assert second.headers == {"A": "1"}

    @pytest.mark.anyio
    async def test_missing_colon_is_malformed(self):
        """A header line without a colon fails the frame."""
        stream = make_stream(b"Content-Type: command/reply\nnot a header\n\n")

        with pytest.raises(MalformedFrame):
            await parse_next(stream, bytearray())

    @pytest.mark.anyio
    async def test_invalid_utf8_is_malformed(self):
        """Header bytes must decode as UTF-8."""
        stream = make_stream(b"Name: \xff\xfe\n\n")

        with pytest.raises(MalformedFrame, match="UTF-8"):
            await parse_next(stream, bytearray())


# =============================================================================
# Tests: Bodies
# =============================================================================


class TestBody:
    """Test Content-Length body handling."""

    @pytest.mark.anyio
    async def test_body_with_blank_lines(self):
        """Body bytes are taken by length, even when they contain blank lines."""
        body = b"first\n\nsecond\n\n"
        stream = make_stream(b"Content-Length: %d\n\n" % len(body) + body + b"Next: frame\n\n")
        buffer = bytearray()

        event = await parse_next(stream, buffer)
        following = await parse_next(stream, buffer)

        assert event.body == body
        assert following.headers == {"Next": "frame"}

    @pytest.mark.anyio
    async def test_binary_body(self):
        """Arbitrary bytes are carried through untouched."""
        body = bytes(range(256))
        stream = make_stream(b"Content-Length: 256\n\n" + body)

        event = await parse_next(stream, bytearray())

        assert event.body == body

    @pytest.mark.anyio
    async def test_zero_length_body(self):
        """Content-Length: 0 gives a present but empty body."""
        stream = make_stream(b"Content-Type: api/response\nContent-Length: 0\n\n")

        event = await parse_next(stream, bytearray())

        assert event.body == b""
        assert event.has_body is True
        assert event.has_header("Content-Length")

    @pytest.mark.anyio
    async def test_absent_length_means_no_body(self):
        """Without Content-Length there is no body at all."""
        stream = make_stream(b"Content-Type: command/reply\n\n")

        event = await parse_next(stream, bytearray())

        assert event.body is None
        assert event.has_body is False
        assert not event.has_header("Content-Length")

    @pytest.mark.anyio
    async def test_content_length_is_case_sensitive(self):
        """Only the exact `Content-Length` name declares a body."""
        stream = make_stream(b"content-length: 5\n\nA: 1\n\n")
        buffer = bytearray()

        event = await parse_next(stream, buffer)

        assert event.body is None
        assert bytes(buffer) == b"A: 1\n\n"

    @pytest.mark.anyio
    @pytest.mark.parametrize("value", ["abc", "-1", "+5", "1.5", ""])
    async def test_invalid_content_length(self, value):
        """Content-Length must be a non-negative integer."""
        stream = make_stream(f"Content-Length: {value}\n\nxxxxx".encode())

        with pytest.raises(MalformedFrame, match="Content-Length"):
            await parse_next(stream, bytearray())

    @pytest.mark.anyio
    async def test_surplus_bytes_stay_buffered(self):
        """Bytes after the frame are left in the buffer for the next call."""
        stream = make_stream(b"Content-Length: 3\n\nabcPartial: hea")
        buffer = bytearray()

        event = await parse_next(stream, buffer)

        assert event.body == b"abc"
        assert bytes(buffer) == b"Partial: hea"


# =============================================================================
# Tests: End of Stream
# =============================================================================


class TestStreamEnd:
    """Test premature end of input."""

    @pytest.mark.anyio
    async def test_eof_before_any_frame(self):
        """An empty stream raises StreamClosed."""
        with pytest.raises(StreamClosed):
            await parse_next(make_stream(b""), bytearray())

    @pytest.mark.anyio
    async def test_eof_inside_header_block(self):
        """EOF before the blank line raises StreamClosed."""
        with pytest.raises(StreamClosed, match="header block"):
            await parse_next(make_stream(b"Content-Type: command/reply\n"), bytearray())

    @pytest.mark.anyio
    async def test_eof_inside_body(self):
        """EOF before the declared body length raises StreamClosed."""
        buffer = bytearray()

        with pytest.raises(StreamClosed, match="body"):
            await parse_next(make_stream(b"Content-Length: 10\n\nshort"), buffer)

        # Partial frame is never discarded
        assert bytes(buffer) == b"Content-Length: 10\n\nshort"

    @pytest.mark.anyio
    async def test_transport_errors_propagate(self):
        """Errors raised by the stream are not swallowed by the reader."""
        stream = MockTransportStream()
        stream.read_error = ConnectionResetError("peer reset")

        with pytest.raises(ConnectionResetError):
            await parse_next(stream, bytearray())


# =============================================================================
# Tests: Chunking
# =============================================================================


class TestChunking:
    """The reader is independent of how the transport chunks data."""

    @pytest.mark.anyio
    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 16, None])
    async def test_same_events_for_any_chunk_size(self, chunk_size):
        """Fragmented delivery yields the same events as one big read."""
        expected = await read_all(make_stream(SAMPLE_STREAM))

        events = await read_all(make_stream(SAMPLE_STREAM, chunk_size=chunk_size))

        assert events == expected
        assert len(events) == 4
        assert events[2].body == b"+OK\n\nline two\n"
        assert events[3].get("Answer-State") == "hangup"

    @pytest.mark.anyio
    async def test_data_arriving_later(self):
        """A read waits for more data instead of failing."""
        stream = MockTransportStream()
        reader = FrameReader(stream)
        stream.feed(b"Content-Type: command/")

        task = asyncio.create_task(reader.read_frame())
        await asyncio.sleep(0)
        assert not task.done()

        stream.feed(b"reply\n\n")
        event = await task

        assert event.content_type == "command/reply"


# =============================================================================
# Tests: Round Trip
# =============================================================================


class TestRoundTrip:
    """Encoding an event and parsing it back preserves headers and body."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "event",
        [
            Event.create({"Content-Type": "command/reply", "Reply-Text": "+OK"}),
            Event.create({"Content-Type": "api/response"}, b"+OK\n\nmore\n"),
            Event.create({"Content-Type": "api/response"}, b""),
            Event.create({"Unicode": "grüße 世界"}),
        ],
    )
    async def test_encode_then_parse(self, event):
        """parse(encode(event)) reproduces the event."""
        parsed = await parse_next(make_stream(event.encode()), bytearray())

        assert parsed.body == event.body
        expected_headers = dict(event.headers)
        if event.body is not None:
            expected_headers["Content-Length"] = str(len(event.body))
        assert parsed.headers == expected_headers
