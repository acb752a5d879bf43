"""
Maps provider-specific completion chunks onto CanonicalChunk.
"""
import time
import uuid
from typing import AsyncIterable, AsyncIterator, List, Optional
from pydantic import BaseModel, ValidationError
from models.api_models import ChatMessage, Role
from models.chat_models import CanonicalChunk, ChunkChoice
from utils.errors import MalformedFrameError, UpstreamStreamError
from utils.logger import app_logger


class ProviderDelta(BaseModel):
    role: Optional[str] = None
    content: Optional[str] = None


class ProviderChoice(BaseModel):
    delta: ProviderDelta = ProviderDelta()
    index: int = 0
    finish_reason: Optional[str] = None


class ProviderChunk(BaseModel):
    """OpenAI-style streaming chunk, as sent by OpenAI, OpenRouter and Gemini."""
    id: Optional[str] = None
    model: Optional[str] = None
    created: Optional[int] = None
    choices: List[ProviderChoice] = []


class ChunkNormalizer:
    """Stateless translation from provider payloads to canonical chunks."""

    FINISH_REASONS = {
        "stop": "stop",
        "length": "length",
        "tool_calls": "tool_calls",
        "content_filter": "content_filter",
        "function_call": "function_call",
        "max_tokens": "length",
        "end_turn": "stop",
        "safety": "content_filter",
    }

    @classmethod
    def normalize_finish_reason(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return cls.FINISH_REASONS.get(value.lower())

    @staticmethod
    def normalize_role(value: Optional[str]) -> Role:
        """Providers send the role only on the first delta of a turn."""
        if not value:
            return Role.ASSISTANT
        try:
            return Role(value.lower())
        except ValueError:
            return Role.ASSISTANT

    @classmethod
    def normalize(cls, payload: dict, fallback_model: str = "") -> CanonicalChunk:
        """
        Convert one decoded SSE payload into a CanonicalChunk.

        Raises:
            UpstreamStreamError: the payload is an in-band provider error
            MalformedFrameError: the payload does not look like a chunk
        """
        error = payload.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise UpstreamStreamError(f"Provider reported an error mid-stream: {message}")

        try:
            chunk = ProviderChunk.model_validate(payload)
        except ValidationError as e:
            raise MalformedFrameError(f"Unexpected chunk shape: {e.errors()[0].get('msg', 'invalid')}") from e

        return CanonicalChunk(
            id=chunk.id or f"chatcmpl-{uuid.uuid4().hex}",
            model=chunk.model or fallback_model,
            created=chunk.created if chunk.created is not None else int(time.time()),
            choices=tuple(
                ChunkChoice(
                    delta=ChatMessage(
                        role=cls.normalize_role(choice.delta.role),
                        content=choice.delta.content
                    ),
                    index=choice.index,
                    finish_reason=cls.normalize_finish_reason(choice.finish_reason)
                )
                for choice in chunk.choices
            )
        )


async def normalize_stream(payloads: AsyncIterable[dict], fallback_model: str = "") -> AsyncIterator[CanonicalChunk]:
    """Normalize a payload stream, skipping frames that are not chunks."""
    async for payload in payloads:
        try:
            yield ChunkNormalizer.normalize(payload, fallback_model)
        except MalformedFrameError as e:
            app_logger.warning(f"Skipping malformed frame: {e}")
