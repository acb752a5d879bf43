"""
Data models for chat processing.
Contains stored records, canonical stream chunks and per-request turn state.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple
from models.api_models import ChatCompletionRequest, ChatMessage, MessageStatus, Role, Visibility


@dataclass
class Thread:
    """Conversation thread owned by one user."""
    id: str
    user_id: str
    title: str
    visibility: Visibility
    created_at: datetime
    updated_at: datetime
    origin_thread_id: Optional[str] = None


@dataclass
class Message:
    """Stored chat message. Always belongs to exactly one thread."""
    id: str
    thread_id: str
    role: Role
    content: Optional[str]
    status: MessageStatus
    created_at: datetime
    updated_at: datetime
    parts: Any = None
    model: Optional[str] = None
    is_errored: bool = False
    is_stopped: bool = False
    error_message: Optional[str] = None


@dataclass
class PartialShare:
    """Public link exposing a thread up to (and including) one message."""
    token: str
    thread_id: str
    user_id: str
    shared_up_to_message_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ChunkChoice:
    delta: ChatMessage
    index: int = 0
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class CanonicalChunk:
    """
    Provider-independent representation of one streaming completion chunk.
    Each instance stands alone; accumulation happens downstream.
    """
    id: str
    model: str
    created: int
    choices: Tuple[ChunkChoice, ...] = ()

    def to_wire(self) -> dict:
        """Render as an OpenAI `chat.completion.chunk` object."""
        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": choice.index,
                    "delta": choice.delta.model_dump(mode="json"),
                    "finish_reason": choice.finish_reason,
                }
                for choice in self.choices
            ],
        }


@dataclass
class ChatTurn:
    """
    Request-scoped state for one chat completion call.
    thread_id is None when the caller supplied neither a thread nor a user.
    """
    request: ChatCompletionRequest
    provider: str
    bare_model: str
    thread_id: Optional[str] = None
    response_headers: dict = field(default_factory=dict)

    @property
    def persists(self) -> bool:
        return self.thread_id is not None
