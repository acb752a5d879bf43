"""
Chat service containing core chat completion orchestration.
Ties thread resolution, the provider call, stream decoding and persistence together.
"""
from typing import AsyncIterator, Optional, Tuple
from config import Config
from models.api_models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    MessageStatus,
    ResponseChoice,
    Role,
)
from models.chat_models import CanonicalChunk, ChatTurn
from services.chunk_normalizer import normalize_stream
from services.conversation_service import ConversationStateManager
from services.provider_client import ProviderClient, UpstreamStream
from services.sse_decoder import SseFrameDecoder
from services.stream_service import MessageAccumulator, StreamService, StreamTee
from utils.constants import THREAD_ID_HEADER, TITLE_QUOTES, TITLE_SYSTEM_PROMPT
from utils.errors import UpstreamStreamError
from utils.logger import app_logger


class ChatCompletionService:
    """Service for handling OpenAI-compatible chat completion requests."""

    def __init__(self, provider_client: ProviderClient, conversations: ConversationStateManager):
        self.provider_client = provider_client
        self.conversations = conversations

    async def start_turn(
        self,
        request: ChatCompletionRequest,
        thread_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> ChatTurn:
        """
        Resolve provider and thread, and save the user's message.

        Raises:
            UnsupportedProviderError: the model id names an unknown provider
            ConfigurationError: no API key is available for the provider
            PersistenceError: a new thread could not be created
        """
        provider, bare_model = self.provider_client.resolve(request.model)
        self.provider_client.select_api_key(provider, request.api_key)

        last_user = next((m.content for m in reversed(request.messages) if m.role == Role.USER), None)
        resolved_thread_id = await self.conversations.ensure_thread(thread_id, user_id, last_user)

        turn = ChatTurn(
            request=request,
            provider=provider,
            bare_model=bare_model,
            thread_id=resolved_thread_id
        )

        if turn.persists:
            turn.response_headers[THREAD_ID_HEADER] = turn.thread_id
            await self.conversations.record_user_turn(turn.thread_id, request.messages, request.model)

        app_logger.info(
            f"Chat turn: provider={provider}, model={bare_model}, "
            f"stream={request.stream}, thread={turn.thread_id or 'none'}"
        )
        return turn

    async def open_chunks(self, turn: ChatTurn) -> Tuple[AsyncIterator[CanonicalChunk], UpstreamStream]:
        """
        Issue the upstream call and build the canonical chunk pipeline over it.

        Raises:
            UpstreamError: the provider rejected the request or was unreachable
        """
        api_key = self.provider_client.select_api_key(turn.provider, turn.request.api_key)
        upstream = await self.provider_client.stream_completion(
            turn.provider,
            turn.bare_model,
            turn.request,
            api_key
        )

        payloads = SseFrameDecoder(source=turn.provider).decode(upstream.aiter_lines())
        return normalize_stream(payloads, fallback_model=turn.bare_model), upstream

    async def stream(self, turn: ChatTurn) -> StreamTee:
        """
        Open a streaming completion.

        The returned tee emits SSE frames to the client; its final state is
        written to the thread in the background.
        """
        chunks, upstream = await self.open_chunks(turn)

        def on_finalize(accumulator: MessageAccumulator, status: MessageStatus, error_text: Optional[str]) -> None:
            self.conversations.schedule_assistant_turn(
                turn.thread_id,
                accumulator.content,
                turn.request.model,
                status,
                error_text
            )

        return StreamTee(chunks, on_finalize, close_upstream=upstream.aclose)

    async def complete(self, turn: ChatTurn) -> ChatCompletionResponse:
        """
        Run a completion to the end and return it in one piece.

        Raises:
            UpstreamError: the initial provider call failed
            UpstreamStreamError: the provider stream failed part-way
        """
        chunks, upstream = await self.open_chunks(turn)
        accumulator = MessageAccumulator()

        try:
            await StreamService.collect(chunks, accumulator)
        except UpstreamStreamError as e:
            if turn.persists:
                await self.conversations.record_assistant_turn(
                    turn.thread_id, accumulator.content, turn.request.model, MessageStatus.ERROR, e.message
                )
            raise
        finally:
            await upstream.aclose()

        if turn.persists:
            await self.conversations.record_assistant_turn(
                turn.thread_id, accumulator.content, turn.request.model, MessageStatus.DONE
            )

        return self.build_response(accumulator, turn.bare_model)

    @staticmethod
    def build_response(accumulator: MessageAccumulator, fallback_model: str) -> ChatCompletionResponse:
        return ChatCompletionResponse(
            id=accumulator.completion_id or "chatcmpl-empty",
            created=accumulator.created or 0,
            model=accumulator.model or fallback_model,
            choices=[
                ResponseChoice(
                    index=0,
                    message=ChatMessage(role=Role.ASSISTANT, content=accumulator.content),
                    finish_reason=accumulator.finish_reason
                )
            ]
        )

    async def generate_title(self, user_query: str) -> str:
        """
        Ask the title model for a short thread title.

        Uses the server key of the title model's provider.
        """
        request = ChatCompletionRequest(
            model=Config.TITLE_MODEL,
            messages=(
                ChatMessage(role=Role.SYSTEM, content=TITLE_SYSTEM_PROMPT),
                ChatMessage(role=Role.USER, content=user_query),
            ),
            max_tokens=Config.TITLE_MAX_TOKENS,
            temperature=Config.TITLE_TEMPERATURE
        )
        provider, bare_model = self.provider_client.resolve(request.model)
        turn = ChatTurn(request=request, provider=provider, bare_model=bare_model)

        app_logger.info(f"Generating title with {Config.TITLE_MODEL} for prompt: {user_query[:50]}...")
        chunks, upstream = await self.open_chunks(turn)
        try:
            accumulator = await StreamService.collect(chunks)
        finally:
            await upstream.aclose()

        title = accumulator.content.strip().strip(TITLE_QUOTES)
        app_logger.info(f"Generated title: '{title}'")
        return title
