"""
Configuration module for the Threadline API.
Handles environment variables and application settings.
"""
import os
from dotenv import load_dotenv
from utils.logger import app_logger

load_dotenv()


class Config:
    """Application configuration class."""

    # Provider API Keys (server-side fallbacks when the caller sends none)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

    # Provider endpoints
    OPENAI_CHAT_URL: str = "https://api.openai.com/v1/chat/completions"
    OPENROUTER_CHAT_URL: str = "https://openrouter.ai/api/v1/chat/completions"
    GEMINI_CHAT_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"

    # Provider used when a model id carries no "provider/" prefix
    DEFAULT_PROVIDER: str = os.getenv("DEFAULT_PROVIDER", "openai")

    # Attribution headers sent to aggregator providers
    APP_URL: str = os.getenv("NEXT_PUBLIC_APP_URL", "http://localhost:3000")
    APP_NAME: str = os.getenv("NEXT_PUBLIC_APP_NAME", "Threadline")

    # Application Settings
    APP_TITLE: str = "Threadline API"
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/threadline.db")
    DEFAULT_THREAD_TITLE: str = "New Thread"
    PROXY_THREAD_TITLE: str = "New Conversation"

    # Title generation
    TITLE_MODEL: str = os.getenv("TITLE_MODEL", "openai/gpt-3.5-turbo")
    TITLE_MAX_TOKENS: int = 20
    TITLE_TEMPERATURE: float = 0.5

    # JWT settings for /api routes
    JWT_SECRET: str = os.getenv("JWT_SECRET", "")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

    # Timeouts (in seconds)
    UPSTREAM_CONNECT_TIMEOUT: float = 10.0
    UPSTREAM_READ_TIMEOUT: float = 120.0

    # Connection pool for the shared provider client
    MAX_UPSTREAM_CONNECTIONS: int = 100
    MAX_KEEPALIVE_CONNECTIONS: int = 20
    KEEPALIVE_EXPIRY: float = 30.0

    @classmethod
    def server_api_key(cls, provider: str) -> str:
        """Return the server-configured key for a provider, or an empty string."""
        keys = {
            "openai": cls.OPENAI_API_KEY,
            "openrouter": cls.OPENROUTER_API_KEY,
            "google": cls.GEMINI_API_KEY,
            "gemini": cls.GEMINI_API_KEY,
        }
        return keys.get(provider, "")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and log warnings for missing keys."""
        if not cls.OPENAI_API_KEY:
            app_logger.warning("OPENAI_API_KEY not set - openai requests need a caller-supplied key")

        if not cls.OPENROUTER_API_KEY:
            app_logger.warning("OPENROUTER_API_KEY not set - openrouter requests need a caller-supplied key")

        if not cls.GEMINI_API_KEY:
            app_logger.warning("GEMINI_API_KEY not set - google requests need a caller-supplied key")

        if not cls.JWT_SECRET:
            app_logger.warning("JWT_SECRET not set - /api routes will reject every request")

Config.validate()
