"""
Streaming service containing core streaming logic.
Fans the canonical chunk stream out to the SSE client and the message accumulator.
"""
import json
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, List, Optional, Tuple
import anyio
from models.api_models import MessageStatus
from models.chat_models import CanonicalChunk
from utils.errors import UpstreamStreamError
from utils.logger import app_logger

FinalizeCallback = Callable[["MessageAccumulator", MessageStatus, Optional[str]], None]


class MessageAccumulator:
    """Rebuilds the full assistant message from streamed deltas."""

    def __init__(self):
        self._parts: List[str] = []
        self.completion_id: Optional[str] = None
        self.model: Optional[str] = None
        self.created: Optional[int] = None
        self.finish_reason: Optional[str] = None
        self.chunk_count = 0

    def add(self, chunk: CanonicalChunk) -> None:
        self.chunk_count += 1
        if self.completion_id is None:
            self.completion_id = chunk.id
        if self.created is None:
            self.created = chunk.created
        if chunk.model:
            self.model = chunk.model

        for choice in chunk.choices:
            if choice.delta.content:
                self._parts.append(choice.delta.content)
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason

    @property
    def content(self) -> str:
        return "".join(self._parts)


class StreamTee:
    """
    Single consumption of a chunk stream with two destinations.

    Every chunk is yielded as an SSE frame and, once the writer comes back for
    more, added to the accumulator before the next chunk is pulled. Stored
    content is therefore what the client was sent. The accumulated message is handed to
    `on_finalize` exactly once: on normal end (done), on client disconnect
    (stopped) or on upstream failure (error), whichever happens first.
    """

    def __init__(
        self,
        chunks: AsyncIterator[CanonicalChunk],
        on_finalize: FinalizeCallback,
        close_upstream: Optional[Callable[[], Awaitable[None]]] = None
    ):
        self._chunks = chunks
        self._on_finalize = on_finalize
        self._close_upstream = close_upstream
        self._outbound: Optional[AsyncIterator[str]] = None
        self._finalized = False
        self._closed = False
        self.accumulator = MessageAccumulator()
        self.status: Optional[MessageStatus] = None
        self.error_text: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self._finalized

    def tee(self) -> Tuple[AsyncIterator[str], MessageAccumulator]:
        """Return the outbound SSE sequence and the accumulator handle."""
        if self._outbound is not None:
            raise RuntimeError("Chunk stream has already been teed")
        self._outbound = self._stream()
        return self._outbound, self.accumulator

    async def _stream(self) -> AsyncIterator[str]:
        status, error_text = MessageStatus.STOPPED, None
        try:
            async for chunk in self._chunks:
                yield StreamService.format_chunk(chunk)
                # resumed only after the writer took the frame
                self.accumulator.add(chunk)
            status = MessageStatus.DONE
        except UpstreamStreamError as e:
            status, error_text = MessageStatus.ERROR, e.message
            app_logger.error(f"Upstream stream failed after {self.accumulator.chunk_count} chunks: {e.message}")
            self._finalize(status, error_text)
            yield StreamService.send_sse_event("error", e.to_dict())
        except Exception as e:
            status, error_text = MessageStatus.ERROR, str(e) or type(e).__name__
            app_logger.error(f"Streaming chat error: {error_text}")
            self._finalize(status, error_text)
            yield StreamService.send_sse_event("error", {"error": {"message": error_text, "type": "stream_error"}})
        finally:
            await self._release()
            self._finalize(status, error_text)

        if status == MessageStatus.DONE:
            yield StreamService.DONE_FRAME

    async def _release(self) -> None:
        """Close the chunk pipeline and the upstream connection, even when cancelled."""
        if self._closed:
            return
        self._closed = True

        with anyio.CancelScope(shield=True):
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    app_logger.warning(f"Error closing chunk stream: {e}")

            if self._close_upstream is not None:
                try:
                    await self._close_upstream()
                except Exception as e:
                    app_logger.warning(f"Error closing upstream stream: {e}")

    def _finalize(self, status: MessageStatus, error_text: Optional[str]) -> None:
        if self._finalized:
            return
        self._finalized = True
        self.status = status
        self.error_text = error_text

        app_logger.info(
            f"Stream finalized: status={status.value}, "
            f"{self.accumulator.chunk_count} chunks, {len(self.accumulator.content)} characters"
        )
        try:
            self._on_finalize(self.accumulator, status, error_text)
        except Exception as e:
            app_logger.error(f"Failed to hand off accumulated message: {e}")

    async def aclose(self) -> None:
        """
        Stop the tee from the outside (client went away).
        Safe to call at any point, including before the first chunk.
        """
        with anyio.CancelScope(shield=True):
            if self._outbound is not None:
                await self._outbound.aclose()
            await self._release()
        self._finalize(MessageStatus.STOPPED, None)


class StreamService:
    """Service for SSE formatting and stream folding."""

    DONE_FRAME = "data: [DONE]\n\n"

    @staticmethod
    def send_sse_event(event_type: str, data: dict) -> str:
        """Format data as a named Server-Sent Event."""
        return f"event: {event_type}\ndata: {json.dumps(data, separators=(',', ':'))}\n\n"

    @staticmethod
    def format_chunk(chunk: CanonicalChunk) -> str:
        """Format a chunk as an OpenAI-compatible `data:` frame."""
        return f"data: {json.dumps(chunk.to_wire(), separators=(',', ':'))}\n\n"

    @staticmethod
    async def collect(chunks: AsyncIterable[CanonicalChunk], accumulator: Optional[MessageAccumulator] = None) -> MessageAccumulator:
        """
        Consume a chunk stream to completion.

        Args:
            chunks: Canonical chunk stream
            accumulator: Accumulator to fill (a new one by default); on failure it
                keeps the content received so far

        Raises:
            UpstreamStreamError: the stream failed mid-way
        """
        if accumulator is None:
            accumulator = MessageAccumulator()
        async for chunk in chunks:
            accumulator.add(chunk)
        return accumulator
