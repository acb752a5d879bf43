"""
Threadline API - FastAPI backend for a multi-provider chat application.
Proxies OpenAI-compatible chat completions to OpenAI, OpenRouter and Gemini while
persisting threads, messages and partial shares.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from config import Config
from routes import chat_completions, health, messages, shares, threads
from services.chat_service import ChatCompletionService
from services.conversation_service import ConversationStateManager
from services.provider_client import ProviderClient
from utils.exception_handlers import register_exception_handlers
from utils.http_client import HTTPClientManager
from utils.logger import app_logger
from utils.repository import get_repository


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    repository = get_repository()
    conversations = ConversationStateManager(repository)
    provider_client = ProviderClient(HTTPClientManager.get_provider_client())

    app.state.repository = repository
    app.state.conversations = conversations
    app.state.chat_service = ChatCompletionService(provider_client, conversations)
    app_logger.info(f"{Config.APP_TITLE} started")

    yield

    await conversations.drain()
    await HTTPClientManager.close_all()
    app_logger.info(f"{Config.APP_TITLE} stopped")

app = FastAPI(title=Config.APP_TITLE, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Thread-ID"],
)

register_exception_handlers(app)

#root endpoint
@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"message": "Threadline API is running"}

app.include_router(chat_completions.router, tags=["chat"])
app.include_router(threads.router, tags=["threads"])
app.include_router(messages.router, tags=["messages"])
app.include_router(shares.router, tags=["shares"])
app.include_router(health.router, tags=["health"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
