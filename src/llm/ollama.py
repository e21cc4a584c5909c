"""Ollama LLM провайдер."""

import logging
import time
from typing import Optional

import httpx

from src.constants import LLM_MAX_OUTPUT_TOKENS, LLM_TEMPERATURE
from .base import BaseLLMProvider, LLMResponse, llm_retry
from .pricing import FREE, ModelPricing

logger = logging.getLogger(__name__)


class OllamaProvider(BaseLLMProvider):
    """Провайдер для локальной Ollama (бесплатно, стоимость всегда 0)."""

    name = "ollama"
    DEFAULT_MODEL = "llama3.1:8b"

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: str = "http://localhost:11434",
        timeout: float = 300.0,
        max_tokens: int = LLM_MAX_OUTPUT_TOKENS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Инициализация Ollama провайдера.

        Args:
            model: Название модели (по умолчанию llama3.1:8b)
            base_url: URL Ollama сервера
            timeout: Таймаут запросов в секундах
            max_tokens: Максимум токенов в ответе
        """
        super().__init__(model=model, timeout=timeout, max_tokens=max_tokens, client=client)
        self.base_url = base_url.rstrip('/')

    @property
    def pricing(self) -> ModelPricing:
        return FREE

    def _build_payload(self, prompt: str, system: Optional[str] = None) -> dict:
        """Build request payload."""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": LLM_TEMPERATURE,
                "num_predict": self.max_tokens,
                "num_ctx": 16384,
            },
        }
        if system:
            payload["system"] = system
        return payload

    @llm_retry
    async def complete_json(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        """
        Generate JSON response via Ollama API with structured output.

        Uses format="json" for guaranteed valid JSON output.
        Includes automatic retry on transient errors.
        """
        payload = self._build_payload(prompt, system)
        start_time = time.perf_counter()

        data = await self._post_json(f"{self.base_url}/api/generate", payload)
        elapsed = time.perf_counter() - start_time

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        logger.debug(
            f"Ollama JSON call: {prompt_tokens}+{completion_tokens} tokens, "
            f"{elapsed:.2f}s, model={self.model}"
        )
        return LLMResponse(
            content=data.get("response", ""),
            input_tokens=prompt_tokens,
            output_tokens=completion_tokens,
        )
