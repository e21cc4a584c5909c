"""OpenAI-совместимые LLM провайдеры (OpenAI, Groq)."""

import logging
import time
from typing import Optional

import httpx

from src.constants import LLM_MAX_OUTPUT_TOKENS, LLM_TEMPERATURE
from .base import BaseLLMProvider, LLMProviderError, LLMResponse, llm_retry
from .pricing import GROQ_PRICING, OPENAI_PRICING

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """Провайдер для OpenAI Chat Completions API."""

    name = "openai"
    BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"
    PRICING = OPENAI_PRICING

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 60.0,
        max_tokens: int = LLM_MAX_OUTPUT_TOKENS,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Инициализация провайдера.

        Args:
            api_key: API ключ
            model: Название модели (по умолчанию DEFAULT_MODEL)
            timeout: Таймаут запросов в секундах
            max_tokens: Максимум токенов в ответе
            base_url: Переопределение URL API
            client: Готовый httpx клиент (для тестов)
        """
        if not api_key:
            raise ValueError(f"{self.name} API key is required")
        super().__init__(model=model, timeout=timeout, max_tokens=max_tokens, client=client)
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def _build_headers(self) -> dict:
        """Build HTTP headers for API request."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_messages(self, prompt: str, system: Optional[str] = None) -> list[dict]:
        """Build messages array for API request."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _build_payload(self, prompt: str, system: Optional[str] = None) -> dict:
        return {
            "model": self.model,
            "messages": self._build_messages(prompt, system),
            "temperature": LLM_TEMPERATURE,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

    @llm_retry
    async def complete_json(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        """Chat completion in JSON mode with retry on transient errors."""
        payload = self._build_payload(prompt, system)
        start_time = time.perf_counter()

        data = await self._post_json(f"{self.base_url}/chat/completions", payload, self._build_headers())
        elapsed = time.perf_counter() - start_time

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise LLMProviderError(f"{self.name} returned unexpected body: {str(data)[:200]}") from e

        usage = data.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        logger.debug(
            f"{self.name} JSON call: {prompt_tokens}+{completion_tokens} tokens, "
            f"{elapsed:.2f}s, model={self.model}"
        )
        return LLMResponse(content=content, input_tokens=prompt_tokens, output_tokens=completion_tokens)


class GroqProvider(OpenAIProvider):
    """Провайдер для Groq (OpenAI-совместимый API)."""

    name = "groq"
    BASE_URL = "https://api.groq.com/openai/v1"
    DEFAULT_MODEL = "llama-3.1-8b-instant"
    PRICING = GROQ_PRICING
