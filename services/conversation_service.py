"""
Conversation state for the chat completion proxy.
Resolves the thread of a request and records the user and assistant turns.
"""
import asyncio
from typing import Optional, Sequence, Set, Tuple
from config import Config
from models.api_models import ChatMessage, MessageStatus, Role
from models.chat_models import Message, Thread
from utils.errors import DataInconsistencyError, PersistenceError
from utils.logger import app_logger
from utils.repository import ChatRepository


class ConversationStateManager:
    """
    Thread resolution and best-effort turn persistence.

    Turn writes never fail the chat request: errors are logged and dropped.
    Assistant turns coming from a stream are written by background tasks
    that are tracked until they finish, so `drain()` can wait for them.
    """

    def __init__(self, repository: ChatRepository):
        self.repository = repository
        self._background_tasks: Set[asyncio.Task] = set()

    async def ensure_thread(
        self,
        thread_id: Optional[str],
        user_id: Optional[str],
        first_message: Optional[str] = None
    ) -> Optional[str]:
        """
        Return the thread to persist this request into.

        Args:
            thread_id: Thread named by the caller, used as-is
            user_id: Owner of a new thread when none was named
            first_message: Content of the opening user message, for logging

        Returns:
            Thread id, or None when there is nothing to attach the turn to

        Raises:
            PersistenceError: a new thread could not be created
        """
        if thread_id:
            return thread_id

        if not user_id:
            app_logger.warning("No thread id and no user id on request; conversation will not be saved")
            return None

        try:
            thread = self.repository.create_thread(user_id, title=Config.PROXY_THREAD_TITLE)
        except PersistenceError as e:
            app_logger.error(f"Failed to create new thread for user {user_id}: {e}")
            raise

        preview = (first_message or "")[:50]
        app_logger.info(f"Created new thread {thread.id} for user {user_id} (first message: '{preview}')")
        return thread.id

    async def record_user_turn(self, thread_id: str, messages: Sequence[ChatMessage], model: str) -> Optional[Message]:
        """Persist the last user message of the request, if it has content."""
        last_user = next((m for m in reversed(messages) if m.role == Role.USER), None)
        if last_user is None or not last_user.content:
            app_logger.debug(f"No user content to save for thread {thread_id}")
            return None

        try:
            message = self.repository.create_message(
                thread_id,
                Role.USER,
                last_user.content,
                parts=[{"type": "text", "text": last_user.content}],
                model=model,
                status=MessageStatus.DONE
            )
        except PersistenceError as e:
            app_logger.error(f"Failed to save user message to thread {thread_id}: {e}")
            return None

        app_logger.info(f"User message saved to thread {thread_id}")
        return message

    async def record_assistant_turn(
        self,
        thread_id: str,
        content: str,
        model: str,
        status: MessageStatus,
        error_text: Optional[str] = None
    ) -> Optional[Message]:
        """Persist one assistant message with its final status."""
        try:
            message = self.repository.create_message(
                thread_id,
                Role.ASSISTANT,
                content,
                parts=[{"type": "text", "text": content}],
                model=model,
                status=status,
                error_message=error_text
            )
        except PersistenceError as e:
            app_logger.error(f"Failed to save assistant message to thread {thread_id}: {e}")
            return None

        app_logger.info(
            f"Assistant message saved to thread {thread_id} "
            f"(status={status.value}, {len(content)} characters)"
        )
        return message

    def schedule_assistant_turn(
        self,
        thread_id: Optional[str],
        content: str,
        model: str,
        status: MessageStatus,
        error_text: Optional[str] = None
    ) -> Optional[asyncio.Task]:
        """Record the assistant turn in the background."""
        if thread_id is None:
            return None

        task = asyncio.get_running_loop().create_task(
            self.record_assistant_turn(thread_id, content, model, status, error_text)
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._background_tasks)

    async def drain(self) -> None:
        """Wait for every scheduled assistant write to finish."""
        while self._background_tasks:
            tasks = list(self._background_tasks)
            app_logger.info(f"Waiting for {len(tasks)} pending message writes")
            await asyncio.gather(*tasks, return_exceptions=True)
            self._background_tasks.difference_update(tasks)

    def get_message_with_thread(self, message_id: str) -> Tuple[Optional[Message], Optional[Thread]]:
        """
        Load a message together with its thread.

        Returns:
            (None, None) when the message does not exist

        Raises:
            DataInconsistencyError: the message exists but its thread does not
        """
        message = self.repository.find_message(message_id)
        if message is None:
            return None, None

        thread = self.repository.find_thread(message.thread_id)
        if thread is None:
            error = DataInconsistencyError(message_id, message.thread_id)
            app_logger.error(str(error))
            raise error
        return message, thread
