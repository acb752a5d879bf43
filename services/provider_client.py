"""
Provider client for OpenAI-compatible chat completion endpoints.
Resolves composite model ids, picks API keys and opens upstream SSE streams.
"""
from typing import AsyncIterator, Dict, Optional, Tuple
import httpx
from config import Config
from models.api_models import ChatCompletionRequest
from utils.errors import ConfigurationError, UnsupportedProviderError, UpstreamError
from utils.logger import app_logger


class ProviderKind:
    """Base provider: bearer auth against an OpenAI-compatible endpoint."""

    def __init__(self, name: str, chat_url: str):
        self.name = name
        self.chat_url = chat_url

    def headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def build_body(self, bare_model: str, request: ChatCompletionRequest) -> dict:
        body = {
            "model": bare_model,
            "messages": [m.model_dump(mode="json") for m in request.messages],
            "stream": True,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        return body


class OpenAIProvider(ProviderKind):
    def __init__(self):
        super().__init__("openai", Config.OPENAI_CHAT_URL)


class OpenRouterProvider(ProviderKind):
    """Aggregator provider; expects attribution headers on every call."""

    def __init__(self):
        super().__init__("openrouter", Config.OPENROUTER_CHAT_URL)

    def headers(self, api_key: str) -> Dict[str, str]:
        headers = super().headers(api_key)
        headers["HTTP-Referer"] = Config.APP_URL
        headers["X-Title"] = Config.APP_NAME
        return headers


class GeminiProvider(ProviderKind):
    """Google Gemini through its OpenAI-compatible endpoint."""

    def __init__(self, name: str = "google"):
        super().__init__(name, Config.GEMINI_CHAT_URL)


class UpstreamStream:
    """Open streaming response from a provider. Must be closed by the consumer."""

    def __init__(self, provider: str, response: httpx.Response):
        self.provider = provider
        self._response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    def aiter_lines(self) -> AsyncIterator[str]:
        """Decoded body lines; httpx handles read boundaries and line endings."""
        return self._response.aiter_lines()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        app_logger.debug(f"Upstream {self.provider} connection closed")


class ProviderClient:
    """Routes chat requests to the provider named in the model id."""

    def __init__(self, http_client: httpx.AsyncClient):
        """
        Args:
            http_client: Long-lived pooled client shared by every request
        """
        self._client = http_client
        self._providers: Dict[str, ProviderKind] = {
            kind.name: kind
            for kind in (OpenAIProvider(), OpenRouterProvider(), GeminiProvider("google"), GeminiProvider("gemini"))
        }

    @staticmethod
    def resolve(model_id: str) -> Tuple[str, str]:
        """
        Split a composite model id ("provider/model") on the first separator.

        Ids without a provider prefix fall back to Config.DEFAULT_PROVIDER.

        Returns:
            Tuple of (provider, bare_model)
        """
        if "/" in model_id:
            provider, bare_model = model_id.split("/", 1)
            return provider.lower(), bare_model

        app_logger.warning(
            f"Model ID '{model_id}' does not specify a provider, defaulting to {Config.DEFAULT_PROVIDER}"
        )
        return Config.DEFAULT_PROVIDER, model_id

    def provider_kind(self, provider: str) -> ProviderKind:
        kind = self._providers.get(provider)
        if kind is None:
            raise UnsupportedProviderError(provider)
        return kind

    def select_api_key(self, provider: str, caller_key: Optional[str]) -> str:
        """
        Pick the caller's key, else the server key configured for the provider.

        Raises:
            UnsupportedProviderError: provider is unknown
            ConfigurationError: no key is available
        """
        self.provider_kind(provider)

        if caller_key:
            return caller_key

        server_key = Config.server_api_key(provider)
        if not server_key:
            raise ConfigurationError(provider)
        return server_key

    async def stream_completion(
        self,
        provider: str,
        bare_model: str,
        request: ChatCompletionRequest,
        api_key: str
    ) -> UpstreamStream:
        """
        POST a streaming chat completion to the provider.

        Returns:
            UpstreamStream over the raw SSE body

        Raises:
            UpstreamError: the provider could not be reached or answered non-2xx
        """
        kind = self.provider_kind(provider)
        http_request = self._client.build_request(
            "POST",
            kind.chat_url,
            json=kind.build_body(bare_model, request),
            headers=kind.headers(api_key)
        )

        app_logger.info(f"Streaming from {kind.name} model: {bare_model}")
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.RequestError as e:
            app_logger.error(f"Failed to send request to {kind.name}: {e}")
            raise UpstreamError(kind.name, None, str(e) or type(e).__name__) from e

        if not response.is_success:
            try:
                error_body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                error_body = "Unknown error"
            finally:
                await response.aclose()

            app_logger.error(f"{kind.name} API request failed: {response.status_code} - {error_body}")
            raise UpstreamError(kind.name, response.status_code, error_body)

        return UpstreamStream(kind.name, response)
