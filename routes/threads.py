"""
Route handlers for thread operations.
Handles /api/threads and the messages nested under a thread.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from auth import get_current_user_id
from models.api_models import (
    BranchThreadPayload,
    CreateMessagePayload,
    CreateThreadPayload,
    GenerateTitlePayload,
    MessageResponse,
    MessageStatus,
    RenameThreadPayload,
    ThreadResponse,
    UpdateVisibilityPayload,
    Visibility,
)
from models.chat_models import Thread
from services.chat_service import ChatCompletionService
from utils.dependencies import get_chat_service, get_repo
from utils.errors import ChatProxyError, ThreadConflictError
from utils.logger import app_logger
from utils.repository import ChatRepository

router = APIRouter(prefix="/api/threads")


def load_thread(repo: ChatRepository, thread_id: str, user_id: str, action: str, allow_public: bool = False) -> Thread:
    """
    Fetch a thread the user may act on.

    Raises:
        HTTPException: 404 when missing, 403 when owned by someone else
            (public threads pass when allow_public is set)
    """
    thread = repo.find_thread(thread_id)
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")

    if thread.user_id != user_id and not (allow_public and thread.visibility == Visibility.PUBLIC):
        app_logger.warning(f"User {user_id} denied {action} on thread {thread_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You don't have permission to {action} this thread"
        )
    return thread


@router.post("", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def create_thread(
    payload: CreateThreadPayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    app_logger.info(f"Creating thread for user {user_id}")
    return repo.create_thread(user_id, title=payload.title, visibility=payload.visibility)


@router.get("", response_model=List[ThreadResponse])
async def list_threads(user_id: str = Depends(get_current_user_id), repo: ChatRepository = Depends(get_repo)):
    return repo.find_threads_by_user(user_id)


@router.get("/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    return load_thread(repo, thread_id, user_id, "access", allow_public=True)


@router.delete("/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_thread(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    """Delete a thread along with its messages and shares."""
    load_thread(repo, thread_id, user_id, "delete")
    if not repo.delete_thread(thread_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found for deletion")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{thread_id}/visibility", response_model=ThreadResponse)
async def update_visibility(
    thread_id: str,
    payload: UpdateVisibilityPayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    load_thread(repo, thread_id, user_id, "change the visibility of")
    thread = repo.update_thread_visibility(thread_id, payload.visibility)
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found during update")
    return thread


@router.put("/{thread_id}/title", response_model=ThreadResponse)
async def rename_thread(
    thread_id: str,
    payload: RenameThreadPayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    load_thread(repo, thread_id, user_id, "rename")
    thread = repo.update_thread_title(thread_id, payload.title.strip())
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found during update")
    return thread


@router.post("/{thread_id}/branch", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def branch_thread(
    thread_id: str,
    payload: BranchThreadPayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    """Start a new thread from an owned or public thread, copying it up to the anchor message."""
    load_thread(repo, thread_id, user_id, "branch from", allow_public=True)

    anchor = repo.find_message(payload.anchor_message_id)
    if anchor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anchor message not found")
    if anchor.thread_id != thread_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Anchor message does not belong to the original thread"
        )

    app_logger.info(f"User {user_id} branching from thread {thread_id} at message {anchor.id}")
    try:
        return repo.branch_thread(user_id, thread_id, anchor.id, new_thread_id=payload.new_thread_id)
    except ThreadConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/{thread_id}/generate-title", response_model=ThreadResponse)
async def generate_title(
    thread_id: str,
    payload: GenerateTitlePayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo),
    chat_service: ChatCompletionService = Depends(get_chat_service)
):
    """Generate a short title from the user's opening query and store it."""
    load_thread(repo, thread_id, user_id, "modify")

    try:
        title = await chat_service.generate_title(payload.user_query)
    except ChatProxyError as e:
        app_logger.error(f"AI title generation failed for thread {thread_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"AI title generation failed: {e.message}"
        )

    if not title:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="AI title generation failed: empty title"
        )

    thread = repo.update_thread_title(thread_id, title)
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found during title update")
    return thread


@router.post("/{thread_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_message(
    thread_id: str,
    payload: CreateMessagePayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    load_thread(repo, thread_id, user_id, "add messages to", allow_public=True)
    return repo.create_message(
        thread_id,
        payload.role,
        payload.content,
        parts=payload.parts,
        model=payload.model,
        status=payload.status or MessageStatus.DONE
    )


@router.get("/{thread_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    thread_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    load_thread(repo, thread_id, user_id, "view messages in", allow_public=True)
    return repo.find_messages_by_thread(thread_id)
