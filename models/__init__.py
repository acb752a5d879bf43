"""
Models package exports.
"""
from models.api_models import (
    ChatMessage,
    ChatCompletionPayload,
    ChatCompletionRequest,
    ChatCompletionResponse,
    MessageStatus,
    Role,
    Visibility,
)
from models.chat_models import CanonicalChunk, ChunkChoice, ChatTurn, Message, PartialShare, Thread

__all__ = [
    'ChatMessage',
    'ChatCompletionPayload',
    'ChatCompletionRequest',
    'ChatCompletionResponse',
    'MessageStatus',
    'Role',
    'Visibility',
    'CanonicalChunk',
    'ChunkChoice',
    'ChatTurn',
    'Message',
    'PartialShare',
    'Thread',
]
