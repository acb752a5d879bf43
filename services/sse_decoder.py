"""
Server-Sent Events frame decoder for provider streams.
Turns the `data:` lines of an upstream response into parsed JSON payloads.
"""
import json
from typing import AsyncIterable, AsyncIterator, Optional
import httpx
from utils.errors import UpstreamStreamError
from utils.logger import app_logger


class SseFrameDecoder:
    """Decodes `data:` lines of an SSE stream into JSON objects.

    Line splitting and UTF-8 decoding across network reads are left to
    httpx (`Response.aiter_lines`); this class only interprets whole lines.
    `data: [DONE]` ends the stream.
    """

    DATA_PREFIX = "data:"
    DONE_SENTINEL = "[DONE]"

    def __init__(self, source: str = "upstream"):
        self.source = source
        self._done = False
        self.skipped_frames = 0

    @property
    def done(self) -> bool:
        """True once the sentinel terminator has been seen."""
        return self._done

    def parse_line(self, line: str) -> Optional[dict]:
        """Parse one SSE line. Returns None for lines that carry no payload."""
        if self._done or not line.startswith(self.DATA_PREFIX):
            return None

        data = line[len(self.DATA_PREFIX):].strip()
        if not data:
            return None

        if data == self.DONE_SENTINEL:
            self._done = True
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            self.skipped_frames += 1
            app_logger.warning(f"Failed to parse {self.source} SSE chunk: {e}. JSON: '{data[:200]}'")
            return None

        if not isinstance(payload, dict):
            self.skipped_frames += 1
            app_logger.warning(f"Skipping non-object {self.source} SSE chunk: '{data[:200]}'")
            return None

        return payload

    async def decode(self, lines: AsyncIterable[str]) -> AsyncIterator[dict]:
        """
        Lazily decode a line stream into JSON payloads.

        Raises:
            UpstreamStreamError: the network read failed mid-stream
        """
        try:
            async for line in lines:
                payload = self.parse_line(line)
                if payload is not None:
                    yield payload
                if self._done:
                    return
        except (httpx.TransportError, httpx.StreamError) as e:
            app_logger.error(f"Error reading {self.source} stream: {e}")
            raise UpstreamStreamError(f"Error reading {self.source} stream: {e}") from e


def decode_sse(lines: AsyncIterable[str], source: str = "upstream") -> AsyncIterator[dict]:
    """Decode a line stream with a fresh SseFrameDecoder."""
    return SseFrameDecoder(source).decode(lines)
