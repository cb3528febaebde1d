"""LLM Provider Abstraction for single-prompt completions (Gemini, OpenAI)."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Retry settings for rate limits and server errors
MAX_RETRIES = 3
INITIAL_DELAY = 2.0  # seconds
MAX_DELAY = 30.0  # seconds
DEFAULT_TIMEOUT = 60.0  # seconds

RETRIABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class ChatModelInfo:
    """Information about a chat/completion model."""

    model_id: str
    cost_per_1m_input: float  # USD per 1M input tokens
    cost_per_1m_output: float  # USD per 1M output tokens
    max_context: int  # Max context window tokens
    description: str


GEMINI_CHAT_MODELS: dict[str, ChatModelInfo] = {
    "gemini-2.5-flash": ChatModelInfo(
        model_id="gemini-2.5-flash",
        cost_per_1m_input=0.30,
        cost_per_1m_output=2.50,
        max_context=1048576,
        description="Fast general-purpose model. Default for enrichment.",
    ),
    "gemini-2.5-flash-lite": ChatModelInfo(
        model_id="gemini-2.5-flash-lite",
        cost_per_1m_input=0.10,
        cost_per_1m_output=0.40,
        max_context=1048576,
        description="Cheapest option, adequate for short articles.",
    ),
    "gemini-2.5-pro": ChatModelInfo(
        model_id="gemini-2.5-pro",
        cost_per_1m_input=1.25,
        cost_per_1m_output=10.00,
        max_context=1048576,
        description="Highest quality, slower and more expensive.",
    ),
}

OPENAI_CHAT_MODELS: dict[str, ChatModelInfo] = {
    "gpt-4.1-nano": ChatModelInfo(
        model_id="gpt-4.1-nano",
        cost_per_1m_input=0.10,
        cost_per_1m_output=0.40,
        max_context=1047576,
        description="Fastest and cheapest GPT-4.1 model.",
    ),
    "gpt-4.1-mini": ChatModelInfo(
        model_id="gpt-4.1-mini",
        cost_per_1m_input=0.40,
        cost_per_1m_output=1.60,
        max_context=1047576,
        description="Good balance of quality and cost.",
    ),
    "gpt-4o-mini": ChatModelInfo(
        model_id="gpt-4o-mini",
        cost_per_1m_input=0.15,
        cost_per_1m_output=0.60,
        max_context=128000,
        description="Cheap alternative for simple tasks.",
    ),
}

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


@dataclass
class ChatResponse:
    """Response from a completion."""

    content: str
    model: str
    tokens_input: int
    tokens_output: int
    finish_reason: str
    latency_ms: int


@dataclass
class HealthCheckResult:
    """Result of a provider health check."""

    healthy: bool
    provider: str
    model: str
    message: str
    latency_ms: int | None = None
    details: dict[str, Any] | None = None


class LLMError(Exception):
    """Error during LLM API call."""

    def __init__(self, message: str, provider: str, retriable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retriable = retriable


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(
        self,
        model: str,
        models: dict[str, ChatModelInfo],
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if model not in models:
            raise ValueError(f"Unknown {self.name} model: {model}. Available: {list(models.keys())}")
        self._model = model
        self._model_info = models[model]
        self._api_key = api_key
        self._timeout = timeout

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
        ...

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def cost_per_1m_input(self) -> float:
        return self._model_info.cost_per_1m_input

    @property
    def cost_per_1m_output(self) -> float:
        return self._model_info.cost_per_1m_output

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a single text prompt and return the text response.

        Args:
            prompt: Full prompt text.
            temperature: Sampling temperature.
            max_tokens: Max tokens to generate (None = model default).

        Raises:
            LLMError: If the API call fails.
        """
        ...

    def estimate_cost(self, tokens_input: int, tokens_output: int) -> float:
        """Estimate cost in USD for given token counts."""
        input_cost = (tokens_input / 1_000_000) * self.cost_per_1m_input
        output_cost = (tokens_output / 1_000_000) * self.cost_per_1m_output
        return input_cost + output_cost

    def _require_api_key(self, env_name: str) -> None:
        if not self._api_key:
            raise LLMError(
                f"{env_name} not set. Configure it in the environment.",
                provider=self.name,
                retriable=False,
            )

    async def _post_with_retry(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
    ) -> tuple[dict[str, Any], int]:
        """POST JSON with exponential backoff on 429/5xx.

        Returns:
            Tuple of (decoded JSON body, latency in ms of the successful attempt)

        Raises:
            LLMError: On timeouts, non-retriable statuses, or exhausted retries.
        """
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            delay = INITIAL_DELAY
            last_error: Exception | None = None

            for attempt in range(MAX_RETRIES):
                start_time = time.monotonic()
                try:
                    response = await client.post(url, headers=headers, json=body)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise LLMError(
                            f"{self.name} returned an unexpected response shape",
                            provider=self.name,
                            retriable=False,
                        )
                    return data, int((time.monotonic() - start_time) * 1000)

                except httpx.HTTPStatusError as e:
                    last_error = e
                    status = e.response.status_code
                    if status == 429 and "quota" in e.response.text.lower():
                        raise LLMError(
                            f"{self.name} quota exhausted",
                            provider=self.name,
                            retriable=False,
                        ) from e
                    if status not in RETRIABLE_STATUS_CODES:
                        raise LLMError(
                            f"{self.name} API error: HTTP {status}",
                            provider=self.name,
                            retriable=False,
                        ) from e

                    if attempt < MAX_RETRIES - 1:
                        logger.warning(
                            f"{self.name} returned {status}, retry {attempt + 1}/{MAX_RETRIES} in {delay:.1f}s"
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, MAX_DELAY)

                except httpx.TimeoutException as e:
                    raise LLMError(
                        f"{self.name} request timed out after {self._timeout}s",
                        provider=self.name,
                        retriable=True,
                    ) from e

                except httpx.RequestError as e:
                    raise LLMError(
                        f"{self.name} connection error: {e}",
                        provider=self.name,
                        retriable=True,
                    ) from e

                except ValueError as e:
                    raise LLMError(
                        f"{self.name} returned a non-JSON body",
                        provider=self.name,
                        retriable=False,
                    ) from e

            raise LLMError(
                f"{self.name} still failing after {MAX_RETRIES} attempts",
                provider=self.name,
                retriable=True,
            ) from last_error

    async def health_check(self) -> HealthCheckResult:
        """Check API connectivity and authentication with a tiny prompt."""
        if not self._api_key:
            return HealthCheckResult(
                healthy=False,
                provider=self.name,
                model=self._model,
                message="API key not set",
            )

        start = time.monotonic()
        try:
            await self.complete("Say 'OK'", temperature=0, max_tokens=5)
            return HealthCheckResult(
                healthy=True,
                provider=self.name,
                model=self._model,
                message="Connected",
                latency_ms=int((time.monotonic() - start) * 1000),
                details={
                    "max_context": self._model_info.max_context,
                    "cost_input_1m": self.cost_per_1m_input,
                    "cost_output_1m": self.cost_per_1m_output,
                },
            )

        except LLMError as e:
            return HealthCheckResult(
                healthy=False,
                provider=self.name,
                model=self._model,
                message=str(e),
                details={"retriable": e.retriable},
            )


class GeminiProvider(LLMProvider):
    """Google Gemini provider using the generateContent REST API."""

    def __init__(
        self,
        model: str = DEFAULT_GEMINI_MODEL,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(model, GEMINI_CHAT_MODELS, api_key=api_key, timeout=timeout)

    @property
    def name(self) -> str:
        return "Gemini"

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        self._require_api_key("GEMINI_API_KEY")

        generation_config: dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            generation_config["maxOutputTokens"] = max_tokens

        data, latency_ms = await self._post_with_retry(
            f"{GEMINI_BASE_URL}/models/{self._model}:generateContent",
            headers={
                "x-goog-api-key": self._api_key,
                "Content-Type": "application/json",
            },
            body={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": generation_config,
            },
        )

        try:
            candidates = data.get("candidates") or []
            if not candidates:
                raise LLMError("Gemini returned no candidates", provider=self.name)
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            content = "".join(part.get("text") or "" for part in parts)
            usage = data.get("usageMetadata") or {}
            tokens_input = int(usage.get("promptTokenCount", 0))
            tokens_output = int(usage.get("candidatesTokenCount", 0))
            finish_reason = str(candidate.get("finishReason") or "")
        except (AttributeError, TypeError, KeyError, IndexError, ValueError) as e:
            raise LLMError("Gemini returned an unexpected response shape", provider=self.name) from e

        return ChatResponse(
            content=content,
            model=data.get("modelVersion", self._model),
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
        )


class OpenAIChatProvider(LLMProvider):
    """OpenAI Chat/Completion provider; the prompt is sent as one user message."""

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ):
        super().__init__(model, OPENAI_CHAT_MODELS, api_key=api_key, timeout=timeout)

    @property
    def name(self) -> str:
        return "OpenAI"

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        self._require_api_key("OPENAI_API_KEY")

        request_body: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if max_tokens:
            request_body["max_tokens"] = max_tokens

        data, latency_ms = await self._post_with_retry(
            OPENAI_CHAT_URL,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            body=request_body,
        )

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
            if not isinstance(content, str):
                raise TypeError(f"content is {type(content).__name__}")
            usage = data.get("usage") or {}
            tokens_input = int(usage.get("prompt_tokens", 0))
            tokens_output = int(usage.get("completion_tokens", 0))
            finish_reason = str(choice.get("finish_reason") or "")
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise LLMError("OpenAI returned an unexpected response shape", provider=self.name) from e

        return ChatResponse(
            content=content,
            model=data.get("model", self._model),
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
        )


def get_chat_provider(
    provider_name: str = "gemini",
    model: str | None = None,
    api_key: str = "",
    timeout: float = DEFAULT_TIMEOUT,
) -> LLMProvider:
    """Factory function to get an LLM provider.

    Args:
        provider_name: 'gemini' or 'openai'
        model: Optional model ID. Uses the provider default if not specified.
        api_key: API key for the provider.
        timeout: Per-request timeout in seconds.

    Raises:
        ValueError: If provider or model is unknown.
    """
    provider_name = provider_name.lower()

    if provider_name == "gemini":
        return GeminiProvider(model=model or DEFAULT_GEMINI_MODEL, api_key=api_key, timeout=timeout)

    elif provider_name == "openai":
        return OpenAIChatProvider(model=model or DEFAULT_OPENAI_MODEL, api_key=api_key, timeout=timeout)

    else:
        raise ValueError(f"Unknown provider: {provider_name}. Available: gemini, openai")
