"""
Route handlers for the OpenAI-compatible chat completion proxy.
Handles /v1/chat/completions in streaming and non-streaming mode.
"""
from typing import AsyncIterator, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials
from starlette.types import Receive, Scope, Send
from auth import bearer_scheme
from models.api_models import ChatCompletionPayload, ChatCompletionRequest
from services.chat_service import ChatCompletionService
from services.stream_service import StreamService, StreamTee
from utils.constants import SSE_HEADERS
from utils.dependencies import get_chat_service
from utils.errors import UpstreamError
from utils.exception_handlers import status_for
from utils.logger import app_logger

router = APIRouter()


class ProxyStreamingResponse(StreamingResponse):
    """
    SSE response over a StreamTee.

    The tee is closed once the response is done, whether the stream ran to the
    end or the client went away, so the upstream connection never outlives it.
    """

    def __init__(self, tee: StreamTee, headers: Optional[dict] = None):
        outbound, _ = tee.tee()
        super().__init__(outbound, media_type="text/event-stream", headers=headers)
        self.tee = tee

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.tee.aclose()


async def _single_error_event(error: UpstreamError) -> AsyncIterator[str]:
    yield StreamService.send_sse_event("error", error.to_dict())


@router.post("/v1/chat/completions")
async def chat_completions(
    payload: ChatCompletionPayload,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_thread_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    chat_service: ChatCompletionService = Depends(get_chat_service)
):
    """
    OpenAI-compatible chat completion endpoint.

    The bearer token is the caller's provider key. X-Thread-ID appends the turn
    to an existing thread; X-User-ID creates a new thread for that user.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Include 'Authorization: Bearer <key>' header in your request.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request = ChatCompletionRequest.from_payload(payload, credentials.credentials)
    turn = await chat_service.start_turn(request, thread_id=x_thread_id, user_id=x_user_id)

    if not request.stream:
        completion = await chat_service.complete(turn)
        return JSONResponse(content=completion.model_dump(mode="json"), headers=turn.response_headers)

    headers = {**SSE_HEADERS, **turn.response_headers}
    try:
        tee = await chat_service.stream(turn)
    except UpstreamError as e:
        app_logger.error(f"Streaming request to {e.provider} failed before the first chunk: {e.message}")
        return StreamingResponse(
            _single_error_event(e),
            status_code=status_for(e),
            media_type="text/event-stream",
            headers=headers
        )

    return ProxyStreamingResponse(tee, headers=headers)
