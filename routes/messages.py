"""
Route handlers for message operations.
Handles editing, deleting and truncating the messages of a thread.
"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from auth import get_current_user_id
from models.api_models import DeletedCountResponse, MessageResponse, UpdateMessagePayload
from models.chat_models import Message
from services.conversation_service import ConversationStateManager
from utils.dependencies import get_conversations
from utils.logger import app_logger

router = APIRouter(prefix="/api/messages")


def load_owned_message(conversations: ConversationStateManager, message_id: str, user_id: str, action: str) -> Message:
    """
    Raises:
        HTTPException: 404 when the message is missing, 403 when its thread
            belongs to someone else
        DataInconsistencyError: the message's thread no longer exists
    """
    message, thread = conversations.get_message_with_thread(message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")

    if thread.user_id != user_id:
        app_logger.warning(f"User {user_id} denied {action} on message {message_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You don't have permission to {action}"
        )
    return message


@router.put("/{message_id}", response_model=MessageResponse)
async def update_message(
    message_id: str,
    payload: UpdateMessagePayload,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationStateManager = Depends(get_conversations)
):
    """Update content/parts and/or status of a message."""
    message = load_owned_message(conversations, message_id, user_id, "update this message")
    repo = conversations.repository

    if payload.content is not None or payload.parts is not None:
        message = repo.update_message_content(message_id, payload.content or "", payload.parts)
        if message is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found during content update")

    if payload.status is not None:
        message = repo.update_message_status(message_id, payload.status, payload.error_message)
        if message is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found during status update")

    return message


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationStateManager = Depends(get_conversations)
):
    load_owned_message(conversations, message_id, user_id, "delete this message")
    if not conversations.repository.delete_message(message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found for deletion")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _delete_trailing(
    conversations: ConversationStateManager,
    message_id: str,
    user_id: str,
    inclusive: bool
) -> DeletedCountResponse:
    message, thread = conversations.get_message_with_thread(message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anchor message not found")
    if thread.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You don't have permission to modify messages in this thread"
        )

    deleted = conversations.repository.delete_trailing_messages(message_id, inclusive=inclusive)
    if inclusive:
        text = f"Successfully deleted message and {max(deleted - 1, 0)} trailing messages."
    else:
        text = f"Successfully deleted {deleted} trailing messages."
    return DeletedCountResponse(deleted_count=deleted, message=text)


@router.post("/{message_id}/delete-trailing", response_model=DeletedCountResponse)
async def delete_trailing(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationStateManager = Depends(get_conversations)
):
    """Delete every message after the anchor in its thread."""
    return _delete_trailing(conversations, message_id, user_id, inclusive=False)


@router.post("/{message_id}/delete-inclusive-trailing", response_model=DeletedCountResponse)
async def delete_inclusive_trailing(
    message_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationStateManager = Depends(get_conversations)
):
    """Delete the anchor and every message after it."""
    return _delete_trailing(conversations, message_id, user_id, inclusive=True)
