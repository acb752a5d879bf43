"""
FastAPI dependencies exposing the collaborators built in the application lifespan.
"""
from fastapi import Request
from services.chat_service import ChatCompletionService
from services.conversation_service import ConversationStateManager
from utils.repository import ChatRepository


def get_repo(request: Request) -> ChatRepository:
    return request.app.state.repository


def get_conversations(request: Request) -> ConversationStateManager:
    return request.app.state.conversations


def get_chat_service(request: Request) -> ChatCompletionService:
    return request.app.state.chat_service
