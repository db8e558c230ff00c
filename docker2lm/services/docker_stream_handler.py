"""
Docker Stream Handler

Demultiplexes Docker's framed stdout/stderr byte stream and turns each
payload into a timestamped log line.
"""

import struct
from datetime import timezone
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from dateutil.parser import isoparse

from docker2lm.core.exceptions import DockerStreamError, RecordParseError
from docker2lm.core.logging import logger
from docker2lm.schemas.records import isoformat_millis


STDOUT = 1
STDERR = 2
HEADER_SIZE = 8
TIMESTAMP_WIDTH = 30

_HEADER = struct.Struct(">BxxxL")


class FrameDemultiplexer:
    """
    Incremental decoder for Docker's multiplexed stream framing

    Each frame is an 8-byte header (stream type, three reserved bytes,
    big-endian u32 payload length) followed by the payload. Reads may split
    frames anywhere, so partial frames are buffered until complete.
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[Tuple[int, bytes]]:
        """Add bytes and return every frame completed by them, in order"""
        self._buffer.extend(data)
        frames = []

        while len(self._buffer) >= HEADER_SIZE:
            stream_type, length = _HEADER.unpack_from(self._buffer)
            if stream_type not in (STDOUT, STDERR):
                self._buffer.clear()
                raise DockerStreamError(f"Invalid stream type {stream_type} in frame header")

            end = HEADER_SIZE + length
            if len(self._buffer) < end:
                break

            frames.append((stream_type, bytes(self._buffer[HEADER_SIZE:end])))
            del self._buffer[:end]

        return frames

    @property
    def pending(self) -> int:
        """Bytes buffered for an incomplete frame"""
        return len(self._buffer)


class LineSplitter:
    """Splits an unframed (TTY) byte stream into newline-terminated lines"""

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[bytes]:
        self._buffer.extend(data)
        lines = []
        while True:
            end = self._buffer.find(b"\n")
            if end < 0:
                break
            lines.append(bytes(self._buffer[:end + 1]))
            del self._buffer[:end + 1]
        return lines

    def flush(self) -> bytes:
        rest = bytes(self._buffer)
        self._buffer.clear()
        return rest


def demux(data: bytes) -> bytes:
    """Concatenate the stdout and stderr payloads of a complete byte sequence"""
    demuxer = FrameDemultiplexer()
    return b"".join(payload for _, payload in demuxer.feed(data))


def parse_log_timestamp(value: str) -> str:
    """Normalize a Docker RFC3339Nano timestamp to ISO-8601 with milliseconds"""
    try:
        parsed = isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise RecordParseError("timestamp", str(e))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return isoformat_millis(parsed)


class LogStreamProcessor:
    """Process one demultiplexed log payload into (timestamp, message)"""

    def process(self, chunk: bytes) -> Optional[Tuple[str, str]]:
        if not chunk:
            return None

        line = chunk.decode("utf-8", errors="replace")
        try:
            timestamp = parse_log_timestamp(line[:TIMESTAMP_WIDTH])
        except RecordParseError as e:
            logger.debug(f"Dropped log chunk: {e.message}")
            return None

        return timestamp, line[TIMESTAMP_WIDTH + 1:].strip()


class DockerStreamHandler:
    """
    Drives a raw Docker log stream through the demultiplexer and processor

    Returns when the stream ends; errors from the stream propagate to the
    caller, which owns cleanup.
    """

    def __init__(self, processor: Optional[LogStreamProcessor] = None):
        self.processor = processor or LogStreamProcessor()

    async def process_log_stream(
        self,
        stream: AsyncIterator[bytes],
        on_log: Callable[[str, str], Awaitable[None]],
        framed: bool = True
    ) -> int:
        """
        Consume a raw log stream

        Args:
            stream: Async iterator over the raw bytes
            on_log: Callback for each parsed (timestamp, message)
            framed: False for TTY containers, whose output is not multiplexed

        Returns:
            Number of log lines delivered
        """
        if not framed:
            return await self._process_lines(stream, on_log)

        demuxer = FrameDemultiplexer()
        delivered = 0

        async for data in stream:
            for _, payload in demuxer.feed(data):
                delivered += await self._deliver(payload, on_log)

        if demuxer.pending:
            logger.debug(f"Log stream ended with {demuxer.pending} bytes of partial frame")

        return delivered

    async def _process_lines(
        self,
        stream: AsyncIterator[bytes],
        on_log: Callable[[str, str], Awaitable[None]]
    ) -> int:
        splitter = LineSplitter()
        delivered = 0

        async for data in stream:
            for line in splitter.feed(data):
                delivered += await self._deliver(line, on_log)

        delivered += await self._deliver(splitter.flush(), on_log)
        return delivered

    async def _deliver(self, chunk: bytes, on_log: Callable[[str, str], Awaitable[None]]) -> int:
        parsed = self.processor.process(chunk)
        if parsed is None:
            return 0
        await on_log(*parsed)
        return 1
