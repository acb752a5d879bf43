import pytest
from contextlib import asynccontextmanager
from unittest.mock import MagicMock


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository(tmp_path):
    """ChatRepository on a throwaway SQLite file."""
    from utils.repository import ChatRepository
    return ChatRepository(str(tmp_path / "threadline-test.db"))


@pytest.fixture
def conversations(repository):
    from services.conversation_service import ConversationStateManager
    return ConversationStateManager(repository)


@pytest.fixture
def mock_repository():
    """MagicMock standing in for ChatRepository."""
    from utils.repository import ChatRepository
    return MagicMock(spec=ChatRepository)


@pytest.fixture
def provider_transport():
    from tests.fixtures.mock_clients import ProviderTransport
    return ProviderTransport()


@pytest.fixture
def jwt_secret(monkeypatch):
    from config import Config
    monkeypatch.setattr(Config, "JWT_SECRET", "test-secret")
    return "test-secret"


@pytest.fixture
def auth_headers(jwt_secret):
    """JWT headers for user u1 on the /api routes."""
    from auth import create_access_token
    return {"Authorization": f"Bearer {create_access_token('u1')}"}


@pytest.fixture
def other_user_headers(jwt_secret):
    from auth import create_access_token
    return {"Authorization": f"Bearer {create_access_token('u2')}"}


@pytest.fixture
def provider_headers():
    """Caller-supplied provider key for /v1/chat/completions."""
    return {"Authorization": "Bearer sk-test"}


@pytest.fixture
def test_app(repository, conversations, provider_transport, jwt_secret):
    """App wired to the test repository and the scripted provider transport."""
    from fastapi import FastAPI
    from routes import chat_completions, health, messages, shares, threads
    from services.chat_service import ChatCompletionService
    from services.provider_client import ProviderClient
    from utils.exception_handlers import register_exception_handlers

    @asynccontextmanager
    async def lifespan(app):
        http_client = provider_transport.client()
        app.state.repository = repository
        app.state.conversations = conversations
        app.state.chat_service = ChatCompletionService(ProviderClient(http_client), conversations)
        yield
        await conversations.drain()
        await http_client.aclose()

    app = FastAPI(lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(chat_completions.router)
    app.include_router(threads.router)
    app.include_router(messages.router)
    app.include_router(shares.router)
    app.include_router(health.router)
    return app


@pytest.fixture
def configured_app(test_app):
    """TestClient over the wired app, lifespan running."""
    from fastapi.testclient import TestClient

    with TestClient(test_app) as client:
        yield client
