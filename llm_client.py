"""
llm_client.py
Transport layer for the reasoning model behind the signal advisor.

Every provider answers the same question: given a system instruction and
one JSON user message, return the model's raw text. Providers differ only
in how the request is shaped and where the text sits in the response, so
each concrete client supplies `_build_request` and `_extract_text`; the
base class owns the HTTP round trip and the retry policy.

Only transport failures are retried here. What the model says is the
advisor's business.
"""

import abc
import asyncio
import logging
import os
from typing import Any, Dict, Optional, Protocol, Tuple

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_MESSAGES = (
    "eof", "timeout", "connection reset", "connection refused",
    "temporary failure", "stream error",
)


class LLMClientError(Exception):
    """Raised when a provider cannot produce a response."""


def is_retryable(err: Exception) -> bool:
    """Network failures, timeouts and 5xx answers are worth another attempt."""
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code >= 500
    if isinstance(err, (httpx.TimeoutException, httpx.TransportError)):
        return True
    message = str(err).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


def _max_tokens_from_env(default: int) -> int:
    raw = os.getenv("AI_MAX_TOKENS")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid AI_MAX_TOKENS={raw!r}, using {default}")
        return default
    logger.info(f"Using AI_MAX_TOKENS from environment: {value}")
    return value


# --------------------------- Interface (Port) ---------------------------

class ILLMClient(Protocol):
    """What the advisor needs from a model provider."""

    async def call(self, system: str, user: str) -> str:
        """Returns the model's raw text for one system/user exchange."""
        ...


# ----------------------------- Shared transport -----------------------------

class AbstractBaseClient(ILLMClient, abc.ABC):
    """
    One persistent `httpx.AsyncClient`, JSON-mode requests and bounded
    retries with exponential backoff (`backoff_base ** attempt` seconds).
    """

    provider_name = "llm"

    def __init__(self,
                 api_key: str,
                 model: str,
                 timeout: float = 60.0,
                 max_retries: int = 3,
                 max_tokens: int = 4096,
                 temperature: float = 0.3,
                 http_client: Optional[httpx.AsyncClient] = None,
                 backoff_base: float = 2.0):
        self._api_key = api_key
        self._model = model
        self._max_retries = max(1, max_retries)
        self._max_tokens = _max_tokens_from_env(max_tokens)
        self._temperature = temperature
        self._backoff_base = backoff_base
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    @abc.abstractmethod
    def _build_request(self, system: str, user: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Returns (url, headers, json body) for one call."""

    @abc.abstractmethod
    def _extract_text(self, data: Dict[str, Any]) -> str:
        """Pulls the generated text out of a decoded response."""

    async def _call_once(self, system: str, user: str) -> str:
        url, headers, body = self._build_request(system, user)
        logger.info(f"Calling {self.provider_name} ({self._model})")

        response = await self._http_client.post(url, json=body, headers=headers)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise LLMClientError(f"{self.provider_name} returned a non-JSON body") from e
        return self._extract_text(data)

    async def call(self, system: str, user: str) -> str:
        last_err: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                text = await self._call_once(system, user)
            except (httpx.HTTPError, LLMClientError) as e:
                last_err = e
                logger.error(f"{self.provider_name} attempt {attempt}/{self._max_retries} failed: {e}")
                if not is_retryable(e):
                    break
                if attempt < self._max_retries:
                    delay = self._backoff_base ** attempt
                    logger.info(f"Retrying {self.provider_name} in {delay}s")
                    await asyncio.sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"{self.provider_name} succeeded on attempt {attempt}")
            return text

        raise LLMClientError(f"{self.provider_name} call failed after {attempt} attempt(s): {last_err}") from last_err

    async def close(self):
        """Closes the underlying HTTP client."""
        await self._http_client.aclose()


# ------------------------- OpenAI-compatible APIs -------------------------

class _OpenAICompatibleClient(AbstractBaseClient):
    """/chat/completions with `response_format: json_object` (DeepSeek, Qwen)."""

    def __init__(self, api_key: str, model: str, base_url: str, **kwargs):
        super().__init__(api_key=api_key, model=model, **kwargs)
        self._base_url = base_url.rstrip("/")

    def _build_request(self, system: str, user: str):
        messages = [{"role": "user", "content": user}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        body = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        return f"{self._base_url}/chat/completions", headers, body

    def _extract_text(self, data):
        choices = data.get("choices") or []
        message = choices[0].get("message") if choices else None
        content = (message or {}).get("content")
        if not content:
            raise LLMClientError(f"{self.provider_name} returned no message content: {data}")

        usage = data.get("usage")
        if usage:
            logger.debug(f"{self.provider_name} token usage: {usage}")
        return content


class DeepSeekClient(_OpenAICompatibleClient):
    provider_name = "DeepSeek"

    def __init__(self,
                 api_key: str,
                 model: str = "deepseek-chat",
                 base_url: str = "https://api.deepseek.com/v1",
                 **kwargs):
        super().__init__(api_key=api_key, model=model, base_url=base_url, **kwargs)


class QwenClient(_OpenAICompatibleClient):
    """Alibaba Qwen through the Dashscope compatible mode."""

    provider_name = "Qwen"

    def __init__(self,
                 api_key: str,
                 model: str = "qwen-max",
                 base_url: str = "https://dashscope.aliyuncs.com/compatible-mode/v1",
                 **kwargs):
        super().__init__(api_key=api_key, model=model, base_url=base_url, **kwargs)


# --------------------------------- Gemini ---------------------------------

class GeminiClient(AbstractBaseClient):
    """
    Google Gemini `generateContent`. The system instruction travels in its
    own field and the answer is requested as `application/json`.
    """

    provider_name = "Gemini"

    def __init__(self,
                 api_key: str,
                 model: str = "gemini-2.5-flash",
                 base_url: str = "https://generativelanguage.googleapis.com",
                 top_p: float = 0.8,
                 **kwargs):
        super().__init__(api_key=api_key, model=model, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._top_p = top_p

    def _build_request(self, system: str, user: str):
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": {
                "maxOutputTokens": self._max_tokens,
                "temperature": self._temperature,
                "topP": self._top_p,
                "responseMimeType": "application/json",
            },
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        return url, {"x-goog-api-key": self._api_key}, body

    def _extract_text(self, data):
        candidates = data.get("candidates")
        if not candidates:
            # Usually a safety block; promptFeedback says why
            raise LLMClientError(f"Gemini returned no candidates. Feedback: {data.get('promptFeedback', {})}")

        try:
            parts = candidates[0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMClientError(f"Unexpected Gemini response structure: {data}") from e
        return "".join(part.get("text", "") for part in parts)


PROVIDERS = {
    "gemini": GeminiClient,
    "deepseek": DeepSeekClient,
    "qwen": QwenClient,
}


def create_llm_client(provider: str, api_key: str, **kwargs) -> AbstractBaseClient:
    """Selects the LLM client implementation by provider name."""
    client_cls = PROVIDERS.get(provider)
    if client_cls is None:
        raise ValueError(f"Unknown LLM provider: {provider!r}")
    logger.info(f"Using LLM provider {provider}")
    return client_cls(api_key=api_key, **kwargs)
