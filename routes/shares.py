"""
Route handlers for partial share links.
Owners manage their shares; anyone with a token can read the shared prefix of a thread.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from auth import get_current_user_id
from models.api_models import CreateSharePayload, ShareResponse, SharedThreadDataResponse
from utils.dependencies import get_repo
from utils.errors import ShareConflictError
from utils.logger import app_logger
from utils.repository import ChatRepository

router = APIRouter(prefix="/api/shares")


@router.post("", response_model=ShareResponse, status_code=status.HTTP_201_CREATED)
async def create_share(
    payload: CreateSharePayload,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    """Share a thread up to and including one of its messages."""
    app_logger.info(
        f"User {user_id} creating partial share for thread {payload.thread_id} "
        f"up to message {payload.shared_up_to_message_id}"
    )

    thread = repo.find_thread(payload.thread_id)
    if thread is None or thread.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Thread not found or user does not own it")

    anchor = repo.find_message(payload.shared_up_to_message_id)
    if anchor is None or anchor.thread_id != payload.thread_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Anchor message not found in thread")

    try:
        return repo.create_partial_share(
            payload.thread_id,
            user_id,
            payload.shared_up_to_message_id,
            token=payload.token
        )
    except ShareConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("", response_model=List[ShareResponse])
async def list_shares(user_id: str = Depends(get_current_user_id), repo: ChatRepository = Depends(get_repo)):
    return repo.find_partial_shares_by_user(user_id)


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_share(
    token: str,
    user_id: str = Depends(get_current_user_id),
    repo: ChatRepository = Depends(get_repo)
):
    if not repo.delete_partial_share(token, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share token not found or user does not own it")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{token}/data", response_model=SharedThreadDataResponse)
async def get_shared_thread_data(token: str, repo: ChatRepository = Depends(get_repo)):
    """Public: the shared thread and its messages up to the anchor."""
    app_logger.info(f"Fetching shared data for token {token}")

    share = repo.find_partial_share(token)
    if share is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share token not found")

    thread = repo.find_thread(share.thread_id)
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shared thread not found")

    messages = repo.find_messages_up_to(share.thread_id, share.shared_up_to_message_id)
    if not messages:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anchor message for share not found")

    return {"thread": thread, "messages": messages}
