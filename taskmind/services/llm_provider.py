"""LLM provider abstraction.

Every provider reduces its vendor response to a single text string, so the
suggestion pipeline only ever sees one reply shape. Transport failures are
raised as ``LLMProviderError`` (``LLMTimeoutError`` when the call ran out of
time) and are never retried here.
"""

import logging
from abc import ABC, abstractmethod

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class LLMProviderError(Exception):
    """The provider could not produce a reply."""

    kind = "ProviderUnavailable"


class LLMTimeoutError(LLMProviderError):
    kind = "ProviderTimeout"


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Send a prompt, return the model's text reply."""
        ...


class GeminiProvider(LLMProvider):
    """Google Gemini over the public generateContent REST endpoint."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-pro",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def generate(self, prompt: str) -> str:
        url = f"{self.BASE_URL}/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.TimeoutException as e:
            raise LLMTimeoutError("Gemini request timed out") from e
        except httpx.HTTPError as e:
            raise LLMProviderError(f"Connection to Gemini failed: {type(e).__name__}") from e

        if resp.status_code != 200:
            logger.warning("Gemini returned HTTP %d", resp.status_code)
            raise LLMProviderError(f"Gemini returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMProviderError("Gemini response is not JSON") from e

        return _gemini_text(data)


def _gemini_text(data: dict) -> str:
    """Pull the first candidate's first text part out of a Gemini response."""
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates or not isinstance(candidates, list):
        raise LLMProviderError("Gemini returned no candidates")

    candidate = candidates[0]
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts or not isinstance(parts, list) or not isinstance(parts[0], dict):
        raise LLMProviderError("Gemini returned an empty candidate")

    text = parts[0].get("text")
    if not isinstance(text, str):
        raise LLMProviderError("Gemini returned an empty candidate")
    return text


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible provider (GPT-4o-mini default)."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        import openai

        client = openai.AsyncOpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=500,
                temperature=0.7,
            )
        except openai.APITimeoutError as e:
            raise LLMTimeoutError("OpenAI request timed out") from e
        except openai.APIError as e:
            raise LLMProviderError(f"OpenAI request failed: {type(e).__name__}") from e
        if not response.choices:
            raise LLMProviderError("OpenAI returned no choices")
        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    """Anthropic-compatible provider (Claude Sonnet default)."""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-6", timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        import anthropic

        client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=500,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise LLMTimeoutError("Anthropic request timed out") from e
        except anthropic.APIError as e:
            raise LLMProviderError(f"Anthropic request failed: {type(e).__name__}") from e
        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMProviderError("Anthropic returned no text content")
        return text_blocks[0]


def create_provider(settings) -> LLMProvider | None:
    """Factory: create the configured LLM provider, or None if unconfigured."""
    timeout = settings.AI_TIMEOUT_SECONDS
    if settings.AI_PROVIDER == "gemini" and settings.GEMINI_API_KEY:
        return GeminiProvider(
            settings.GEMINI_API_KEY,
            settings.AI_MODEL or "gemini-1.5-pro",
            timeout=timeout,
        )
    elif settings.AI_PROVIDER == "openai" and settings.OPENAI_API_KEY:
        return OpenAIProvider(
            settings.OPENAI_API_KEY,
            settings.AI_MODEL or "gpt-4o-mini",
            timeout=timeout,
        )
    elif settings.AI_PROVIDER == "anthropic" and settings.ANTHROPIC_API_KEY:
        return AnthropicProvider(
            settings.ANTHROPIC_API_KEY,
            settings.AI_MODEL or "claude-sonnet-4-6",
            timeout=timeout,
        )
    return None
