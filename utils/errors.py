"""
Error taxonomy for the chat completion proxy and the storage layer.
"""
from typing import Optional


class ChatProxyError(Exception):
    """Base class for errors raised while answering a chat request."""

    error_type = "proxy_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"message": self.message, "type": self.error_type}}


class ConfigurationError(ChatProxyError):
    """No API key is available for the requested provider."""

    error_type = "configuration_error"

    def __init__(self, provider: str, message: Optional[str] = None):
        super().__init__(message or f"API key for provider '{provider}' is not configured (server or user)")
        self.provider = provider


class UnsupportedProviderError(ChatProxyError):
    """The composite model id names a provider we cannot route to."""

    error_type = "unsupported_provider"

    def __init__(self, provider: str):
        super().__init__(f"Unsupported AI provider: {provider}")
        self.provider = provider


class UpstreamError(ChatProxyError):
    """The provider rejected the initial request (or could not be reached)."""

    error_type = "upstream_error"

    def __init__(self, provider: str, status: Optional[int], body: str):
        reason = f"{status}" if status is not None else "connection failed"
        super().__init__(f"{provider} API request failed: {reason} - {body}")
        self.provider = provider
        self.status = status
        self.body = body

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"]["provider"] = self.provider
        payload["error"]["status"] = self.status
        payload["error"]["body"] = self.body
        return payload


class UpstreamStreamError(ChatProxyError):
    """The provider stream failed after it had started."""

    error_type = "upstream_stream_error"


class MalformedFrameError(ChatProxyError):
    """A single SSE frame could not be understood."""

    error_type = "malformed_frame"


class PersistenceError(Exception):
    """A storage operation failed."""


class ThreadNotFoundError(PersistenceError):
    """A write referenced a thread that does not exist."""

    def __init__(self, thread_id: str):
        super().__init__(f"Thread {thread_id} not found")
        self.thread_id = thread_id


class DataInconsistencyError(PersistenceError):
    """A stored message points at a thread that has disappeared."""

    def __init__(self, message_id: str, thread_id: str):
        super().__init__(f"Data inconsistency: Message {message_id} exists but its thread {thread_id} not found.")
        self.message_id = message_id
        self.thread_id = thread_id


class ShareConflictError(PersistenceError):
    """A partial share with the requested token already exists."""


class ThreadConflictError(PersistenceError):
    """A thread with the requested id already exists."""

    def __init__(self, thread_id: str):
        super().__init__(f"Thread {thread_id} already exists")
        self.thread_id = thread_id


class MessageNotInThreadError(PersistenceError):
    """An anchor message is missing or belongs to another thread."""

    def __init__(self, message_id: str, thread_id: str):
        super().__init__(f"Message {message_id} does not belong to thread {thread_id}")
        self.message_id = message_id
        self.thread_id = thread_id
