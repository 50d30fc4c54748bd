"""OpenRouter API provider implementation.

Talks to OpenRouter's OpenAI-compatible chat/completions endpoint with
httpx, both as a single response and as a server-sent event stream.
HTTP statuses and in-stream error payloads are translated into the
provider error taxonomy here and nowhere else.

OpenRouter API docs: https://openrouter.ai/docs

Examples:
    >>> provider = OpenRouterProvider(api_key="sk-or-v1-...")
    >>> async for delta in provider.stream_chat("google/gemini-2.0-flash-exp:free", messages):
    ...     print(delta, end="")

Tests:
    - tests/unit/test_providers.py::TestOpenRouterErrorClassification
    - tests/unit/test_providers.py::TestOpenRouterStreaming
"""

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import BaseModel

from app.config import ProviderType
from app.core.providers.base import (
    AuthenticationError,
    LLMProvider,
    LLMResponse,
    MalformedRequestError,
    ModelRejectedError,
    PromptMessage,
    ProviderError,
    ProviderTransientError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class OpenRouterModel(BaseModel):
    """OpenRouter model metadata (subset of GET /models)."""

    id: str
    name: str = ""
    context_length: int | None = None
    architecture: dict[str, Any] | None = None


def classify_error(
    status_code: int | None,
    message: str,
    model: str | None = None,
    retry_after: int | None = None,
) -> ProviderError:
    """Map an OpenRouter failure onto the provider error taxonomy.

    Args:
        status_code: HTTP status, or the ``code`` of an in-stream error event.
        message: Provider error message.
        model: Model the request targeted.
        retry_after: Seconds from a Retry-After header, if any.

    Returns:
        The classified (not raised) error.
    """
    provider = ProviderType.OPENROUTER
    lowered = message.lower()

    if status_code == 429:
        return RateLimitError(provider, retry_after=retry_after, model=model)
    if status_code in (401, 402):
        return AuthenticationError(provider, message=message, status_code=status_code, model=model)
    if status_code == 403:
        # 403 is also used for moderation refusals, which are about the input
        if "moderation" in lowered or "flagged" in lowered:
            return MalformedRequestError(message, provider, status_code=403, model=model)
        return AuthenticationError(provider, message=message, status_code=403, model=model)
    if status_code == 404:
        return ModelRejectedError(message, provider, status_code=404, model=model)
    if status_code == 400:
        if "model" in lowered:
            return ModelRejectedError(message, provider, status_code=400, model=model)
        return MalformedRequestError(message, provider, status_code=400, model=model)
    if status_code == 408 or status_code is None or status_code >= 500:
        return ProviderTransientError(message, provider, status_code=status_code, model=model)
    return MalformedRequestError(message, provider, status_code=status_code, model=model)


class OpenRouterProvider(LLMProvider):
    """OpenRouter API provider for multi-model access.

    Attributes:
        provider_type: ProviderType.OPENROUTER
        api_key: OpenRouter API key
        base_url: API base URL
        timeout: Per-request timeout in seconds
    """

    provider_type = ProviderType.OPENROUTER

    def __init__(
        self,
        api_key: str | None,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize OpenRouter provider.

        Args:
            api_key: OpenRouter API key.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        super().__init__(api_key)
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "HTTP-Referer": "https://roomtogrow.app",
                    "X-Title": "Room To Grow",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _require_key(self, model: str) -> None:
        if not self.api_key:
            raise AuthenticationError(
                ProviderType.OPENROUTER,
                message="OPENROUTER_API_KEY is not configured",
                status_code=None,
                model=model,
            )

    def _raise_for_response(self, response: httpx.Response, model: str) -> None:
        """Raise the classified error for a non-200 response.

        The response body must already be read.
        """
        try:
            error_data = response.json()
            message = error_data.get("error", {}).get("message") or response.text
        except (ValueError, AttributeError):
            message = response.text

        retry_after = response.headers.get("Retry-After")
        raise classify_error(
            response.status_code,
            message or f"HTTP {response.status_code}",
            model=model,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )

    @staticmethod
    def _error_from_body(error: Any, model: str, default_message: str) -> ProviderError:
        """Classify an ``error`` member reported inside a response or stream event."""
        if not isinstance(error, dict):
            error = {"message": str(error)} if error else {}
        code = error.get("code")
        return classify_error(
            code if isinstance(code, int) else None,
            str(error.get("message") or default_message),
            model=model,
        )

    def _build_payload(
        self,
        model: str,
        messages: list[PromptMessage],
        stream: bool,
        **kwargs: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.to_openai() for m in messages],
            "stream": stream,
        }
        if "temperature" in kwargs:
            payload["temperature"] = kwargs["temperature"]
        if "max_tokens" in kwargs:
            payload["max_tokens"] = kwargs["max_tokens"]
        if kwargs.get("json_mode"):
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def stream_chat(
        self,
        model: str,
        messages: list[PromptMessage],
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Stream text deltas from OpenRouter.

        Args:
            model: Model ID (e.g., "anthropic/claude-3.5-sonnet").
            messages: Prompt messages.
            **kwargs: temperature, max_tokens.

        Yields:
            Non-empty content deltas in arrival order.

        Raises:
            ProviderError: Classified failure before or during the stream.
        """
        self._require_key(model)
        payload = self._build_payload(model, messages, stream=True, **kwargs)

        try:
            async with self.client.stream("POST", "/chat/completions", json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    self._raise_for_response(response, model)

                async for line in response.aiter_lines():
                    # Blank lines separate events; ":" lines are keep-alive comments
                    if not line.startswith(SSE_DATA_PREFIX):
                        continue
                    data = line[len(SSE_DATA_PREFIX):].strip()
                    if data == SSE_DONE:
                        return

                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise ProviderTransientError(
                            f"Malformed stream event: {data[:200]}",
                            ProviderType.OPENROUTER,
                            model=model,
                        ) from e

                    if not isinstance(event, dict):
                        raise ProviderTransientError(
                            f"Malformed stream event: {data[:200]}",
                            ProviderType.OPENROUTER,
                            model=model,
                        )

                    if "error" in event:
                        raise self._error_from_body(event["error"], model, "Stream error")

                    choices = event.get("choices")
                    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
                        continue
                    if choices[0].get("finish_reason") == "error":
                        raise ProviderTransientError(
                            "Model stopped with an error",
                            ProviderType.OPENROUTER,
                            model=model,
                        )
                    delta = choices[0].get("delta")
                    content = delta.get("content") if isinstance(delta, dict) else None
                    if content and isinstance(content, str):
                        yield content

        except httpx.HTTPError as e:
            logger.error(f"OpenRouter stream error ({model}): {e}")
            raise ProviderTransientError(
                str(e) or e.__class__.__name__,
                ProviderType.OPENROUTER,
                model=model,
            ) from e

    async def complete_chat(
        self,
        model: str,
        messages: list[PromptMessage],
        **kwargs: Any,
    ) -> LLMResponse[str]:
        """Generate a complete chat response.

        Args:
            model: Model ID.
            messages: Prompt messages.
            **kwargs: Additional parameters:
                - temperature: Sampling temperature (0.0-2.0)
                - max_tokens: Maximum output tokens
                - json_mode: Ask for a JSON object response

        Returns:
            LLMResponse containing the generated text.

        Raises:
            ProviderError: If the API call fails.
        """
        self._require_key(model)
        start_time = time.perf_counter()
        payload = self._build_payload(model, messages, stream=False, **kwargs)

        try:
            response = await self.client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"OpenRouter HTTP error ({model}): {e}")
            raise ProviderTransientError(
                str(e) or e.__class__.__name__,
                ProviderType.OPENROUTER,
                model=model,
            ) from e

        if response.status_code != 200:
            self._raise_for_response(response, model)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderTransientError(
                f"Response was not JSON: {response.text[:200]}",
                ProviderType.OPENROUTER,
                model=model,
            ) from e
        if not isinstance(data, dict):
            raise ProviderTransientError(
                f"Response was not a JSON object: {response.text[:200]}",
                ProviderType.OPENROUTER,
                model=model,
            )

        # OpenRouter reports some upstream failures with a 200 and an error body
        if "error" in data:
            raise self._error_from_body(data["error"], model, "Unknown error")

        try:
            raw_content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderTransientError(
                "Response had no choices",
                ProviderType.OPENROUTER,
                model=model,
            ) from e

        if raw_content is not None and not isinstance(raw_content, str):
            raise ProviderTransientError(
                "Response content was not text",
                ProviderType.OPENROUTER,
                model=model,
            )

        usage_data = data.get("usage")
        if not isinstance(usage_data, dict):
            usage_data = {}
        return LLMResponse(
            content=raw_content or "",
            model=data.get("model") or model,
            provider=self.provider_type,
            usage={
                "input_tokens": usage_data.get("prompt_tokens", 0),
                "output_tokens": usage_data.get("completion_tokens", 0),
            },
            latency_ms=int((time.perf_counter() - start_time) * 1000),
        )

    async def list_models(self) -> list[OpenRouterModel]:
        """List models available on OpenRouter."""
        try:
            response = await self.client.get("/models")
        except httpx.HTTPError as e:
            raise ProviderTransientError(str(e), ProviderType.OPENROUTER) from e

        if response.status_code != 200:
            self._raise_for_response(response, model="")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderTransientError(
                "Model list was not JSON", ProviderType.OPENROUTER
            ) from e
        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            raise ProviderTransientError(
                "Model list had no data", ProviderType.OPENROUTER
            )
        return [OpenRouterModel(**m) for m in models if isinstance(m, dict)]

    async def health_check(self) -> bool:
        """Check if OpenRouter is reachable."""
        try:
            response = await self.client.get("/models")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"OpenRouter health check failed: {e}")
            return False
