"""
Pydantic data models for API requests and responses.
"""
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Author of a chat message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageStatus(str, Enum):
    """Lifecycle state of a stored message."""
    PENDING = "pending"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    STOPPED = "stopped"


class Visibility(str, Enum):
    """Who can see a thread."""
    PRIVATE = "private"
    PUBLIC = "public"


class ChatMessage(BaseModel):
    """Chat message exchanged with providers and persisted per turn."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None


class ChatCompletionPayload(BaseModel):
    """OpenAI-compatible chat completion request body."""
    model: str = Field(..., min_length=1)
    messages: List[ChatMessage] = Field(..., min_length=1)
    stream: Optional[bool] = False
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, gt=0)


class ChatCompletionRequest(BaseModel):
    """Provider-agnostic chat request, built once per inbound call."""
    model_config = ConfigDict(frozen=True)

    model: str
    messages: Tuple[ChatMessage, ...]
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False

    @classmethod
    def from_payload(cls, payload: ChatCompletionPayload, api_key: Optional[str]) -> "ChatCompletionRequest":
        return cls(
            model=payload.model,
            messages=tuple(payload.messages),
            api_key=api_key or None,
            temperature=payload.temperature,
            max_tokens=payload.max_tokens,
            stream=bool(payload.stream),
        )


class ResponseChoice(BaseModel):
    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    """Non-streaming chat completion response (OpenAI format)."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[ResponseChoice]


class ThreadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    visibility: Visibility
    origin_thread_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    thread_id: str
    role: Role
    content: Optional[str] = None
    parts: Any = None
    model: Optional[str] = None
    status: MessageStatus
    is_errored: bool = False
    is_stopped: bool = False
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    thread_id: str
    user_id: str
    shared_up_to_message_id: str
    created_at: datetime


class SharedThreadDataResponse(BaseModel):
    thread: ThreadResponse
    messages: List[MessageResponse]


class CreateThreadPayload(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    visibility: Optional[Visibility] = None


class RenameThreadPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class UpdateVisibilityPayload(BaseModel):
    visibility: Visibility


class CreateMessagePayload(BaseModel):
    role: Role
    content: Optional[str] = None
    parts: Any = None
    model: Optional[str] = None
    status: Optional[MessageStatus] = None


class UpdateMessagePayload(BaseModel):
    content: Optional[str] = None
    parts: Any = None
    status: Optional[MessageStatus] = None
    error_message: Optional[str] = None


class CreateSharePayload(BaseModel):
    thread_id: str
    shared_up_to_message_id: str
    token: Optional[str] = Field(None, min_length=4, max_length=64)


class BranchThreadPayload(BaseModel):
    anchor_message_id: str
    new_thread_id: Optional[str] = Field(None, min_length=1, max_length=64)


class GenerateTitlePayload(BaseModel):
    user_query: str = Field(..., min_length=1)


class TitleResponse(BaseModel):
    title: str


class DeletedCountResponse(BaseModel):
    deleted_count: int
    message: str


class HealthStatus(BaseModel):
    status: str
    database: str
