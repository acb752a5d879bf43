"""
HTTP client utilities with connection pooling.
Provides the shared httpx client used for every provider call.
"""
import httpx
from config import Config


class HTTPClientManager:
    """Manages the shared httpx client with connection pooling."""

    _provider_client: httpx.AsyncClient | None = None

    @classmethod
    def get_provider_client(cls) -> httpx.AsyncClient:
        """
        Get or create the shared httpx client for AI provider requests.

        Features:
        - Connection pooling (reuses TCP connections across requests)
        - Long read timeout so slow token streams are not cut off

        Returns:
            Configured httpx.AsyncClient for provider operations
        """
        if cls._provider_client is None:
            limits = httpx.Limits(
                max_connections=Config.MAX_UPSTREAM_CONNECTIONS,
                max_keepalive_connections=Config.MAX_KEEPALIVE_CONNECTIONS,
                keepalive_expiry=Config.KEEPALIVE_EXPIRY
            )

            timeout = httpx.Timeout(
                Config.UPSTREAM_READ_TIMEOUT,
                connect=Config.UPSTREAM_CONNECT_TIMEOUT
            )

            cls._provider_client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                http2=True
            )

        return cls._provider_client

    @classmethod
    async def close_all(cls) -> None:
        """
        Close all managed clients and clean up connections.
        """
        if cls._provider_client is not None:
            await cls._provider_client.aclose()
            cls._provider_client = None
