import json
import pytest
from unittest.mock import AsyncMock, MagicMock
from models.api_models import ChatMessage, MessageStatus, Role
from models.chat_models import CanonicalChunk, ChunkChoice
from services.stream_service import MessageAccumulator, StreamService, StreamTee
from utils.errors import UpstreamStreamError


def make_chunk(content=None, finish_reason=None, model="gpt-4o"):
    return CanonicalChunk(
        id="chatcmpl-1",
        model=model,
        created=1700000000,
        choices=(ChunkChoice(delta=ChatMessage(role=Role.ASSISTANT, content=content), finish_reason=finish_reason),)
    )


async def chunk_source(chunks, error=None):
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error


def finalize_calls(on_finalize):
    """(content, status, error_text) for each finalize call."""
    return [(acc.content, status, error_text) for acc, status, error_text in (c.args for c in on_finalize.call_args_list)]


@pytest.mark.anyio
async def test_tee_yields_frames_in_upstream_order_and_ends_with_done():
    """Given a chunk stream, when teed, it should yield one frame per chunk in order followed by [DONE]."""
    chunks = [make_chunk("Hel"), make_chunk("lo"), make_chunk(finish_reason="stop")]
    on_finalize = MagicMock()
    close_upstream = AsyncMock()

    outbound, accumulator = StreamTee(chunk_source(chunks), on_finalize, close_upstream).tee()
    frames = [frame async for frame in outbound]

    assert frames == [StreamService.format_chunk(c) for c in chunks] + [StreamService.DONE_FRAME]
    assert accumulator.content == "Hello"
    assert accumulator.finish_reason == "stop"
    assert finalize_calls(on_finalize) == [("Hello", MessageStatus.DONE, None)]
    close_upstream.assert_awaited_once()


@pytest.mark.anyio
async def test_tee_accumulates_each_frame_once_the_writer_takes_it():
    """Given a chunk stream, when the writer comes back for the next frame, the previous frame's content should be accumulated."""
    outbound, accumulator = StreamTee(chunk_source([make_chunk("a"), make_chunk("b")]), MagicMock()).tee()

    seen = []
    async for frame in outbound:
        seen.append(accumulator.content)
    assert seen == ["", "a", "ab"]
    assert accumulator.content == "ab"


@pytest.mark.anyio
async def test_client_disconnect_finalizes_once_as_stopped():
    """Given a client that leaves while the second frame is in flight, when the tee is closed, it should finalize once as stopped with the delivered content."""
    on_finalize = MagicMock()
    close_upstream = AsyncMock()
    tee = StreamTee(chunk_source([make_chunk("Hel"), make_chunk("lo"), make_chunk("!")]), on_finalize, close_upstream)
    outbound, _ = tee.tee()

    await outbound.__anext__()
    await outbound.__anext__()
    await tee.aclose()
    await tee.aclose()

    assert finalize_calls(on_finalize) == [("Hel", MessageStatus.STOPPED, None)]
    assert tee.status == MessageStatus.STOPPED
    close_upstream.assert_awaited_once()


@pytest.mark.anyio
async def test_close_before_first_chunk_still_finalizes():
    """Given a tee that is closed before streaming starts, it should still finalize once as stopped."""
    on_finalize = MagicMock()
    tee = StreamTee(chunk_source([make_chunk("x")]), on_finalize)
    tee.tee()

    await tee.aclose()
    assert finalize_calls(on_finalize) == [("", MessageStatus.STOPPED, None)]


@pytest.mark.anyio
async def test_upstream_failure_emits_error_event_and_finalizes_as_error():
    """Given a stream that fails mid-way, when teed, it should end with an error event and finalize once as error."""
    on_finalize = MagicMock()
    close_upstream = AsyncMock()
    error = UpstreamStreamError("Error reading openai stream: connection reset")
    tee = StreamTee(chunk_source([make_chunk("Hel")], error=error), on_finalize, close_upstream)
    outbound, _ = tee.tee()

    frames = [frame async for frame in outbound]

    assert frames[0] == StreamService.format_chunk(make_chunk("Hel"))
    assert frames[-1].startswith("event: error\n")
    assert json.loads(frames[-1].split("data: ", 1)[1])["error"]["type"] == "upstream_stream_error"
    assert StreamService.DONE_FRAME not in frames
    assert finalize_calls(on_finalize) == [("Hel", MessageStatus.ERROR, error.message)]
    close_upstream.assert_awaited_once()

    await tee.aclose()
    assert on_finalize.call_count == 1


@pytest.mark.anyio
async def test_unexpected_failure_is_reported_as_stream_error():
    """Given an unexpected exception mid-stream, when teed, it should emit a stream_error event and finalize as error."""
    on_finalize = MagicMock()
    tee = StreamTee(chunk_source([], error=RuntimeError("boom")), on_finalize)
    outbound, _ = tee.tee()

    frames = [frame async for frame in outbound]

    assert json.loads(frames[-1].split("data: ", 1)[1])["error"] == {"message": "boom", "type": "stream_error"}
    assert finalize_calls(on_finalize) == [("", MessageStatus.ERROR, "boom")]


@pytest.mark.anyio
async def test_finalize_callback_failure_does_not_break_stream():
    """Given a failing finalize callback, when teed, the client should still receive every frame."""
    on_finalize = MagicMock(side_effect=RuntimeError("db down"))
    outbound, _ = StreamTee(chunk_source([make_chunk("ok")]), on_finalize).tee()

    frames = [frame async for frame in outbound]
    assert frames[-1] == StreamService.DONE_FRAME


def test_tee_can_only_be_taken_once():
    """Given a tee that was already split, when tee is called again, it should raise RuntimeError."""
    tee = StreamTee(chunk_source([]), MagicMock())
    tee.tee()
    with pytest.raises(RuntimeError):
        tee.tee()


def test_send_sse_event_formats_named_event():
    """Given an event type and data, when formatted, it should produce a named SSE frame."""
    assert StreamService.send_sse_event("error", {"a": 1}) == 'event: error\ndata: {"a":1}\n\n'


@pytest.mark.anyio
async def test_collect_folds_stream_into_accumulator():
    """Given a chunk stream, when collected, it should keep the first id and the latest model and finish reason."""
    chunks = [make_chunk("Hel", model="gpt-4o"), make_chunk("lo"), make_chunk(finish_reason="length", model="gpt-4o-2024")]

    accumulator = await StreamService.collect(chunk_source(chunks))

    assert accumulator.content == "Hello"
    assert accumulator.completion_id == "chatcmpl-1"
    assert accumulator.model == "gpt-4o-2024"
    assert accumulator.finish_reason == "length"
    assert accumulator.chunk_count == 3


@pytest.mark.anyio
async def test_collect_keeps_partial_content_on_failure():
    """Given a stream failing mid-way, when collected into an accumulator, the partial content should survive."""
    accumulator = MessageAccumulator()
    with pytest.raises(UpstreamStreamError):
        await StreamService.collect(chunk_source([make_chunk("part")], error=UpstreamStreamError("reset")), accumulator)
    assert accumulator.content == "part"
