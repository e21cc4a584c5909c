"""OpenRouter LLM провайдер."""

import logging
from typing import Optional

import httpx

from src.constants import LLM_MAX_OUTPUT_TOKENS
from .openai import OpenAIProvider
from .pricing import OPENROUTER_PRICING

logger = logging.getLogger(__name__)


class OpenRouterProvider(OpenAIProvider):
    """Провайдер для OpenRouter API."""

    name = "openrouter"
    BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL = "openai/gpt-4o-mini"
    PRICING = OPENROUTER_PRICING

    TRANSIENT_ERROR_PATTERNS = OpenAIProvider.TRANSIENT_ERROR_PATTERNS + [
        "provider returned error",
    ]

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 60.0,
        max_tokens: int = LLM_MAX_OUTPUT_TOKENS,
        provider_order: Optional[list[str]] = None,
        allow_fallbacks: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Инициализация OpenRouter провайдера.

        Args:
            api_key: API ключ OpenRouter
            model: Название модели (например, openai/gpt-4o-mini)
            timeout: Таймаут запросов в секундах
            max_tokens: Максимум токенов в ответе
            provider_order: Список провайдеров в порядке приоритета (например, ["azure", "openai"])
            allow_fallbacks: Разрешать ли fallback на другие провайдеры при ошибках
            client: Готовый httpx клиент (для тестов)
        """
        super().__init__(api_key, model=model, timeout=timeout, max_tokens=max_tokens, client=client)
        self.provider_order = provider_order
        self.allow_fallbacks = allow_fallbacks

        if provider_order:
            logger.info(f"OpenRouter routing: order={provider_order}")

    def _build_provider_config(self) -> Optional[dict]:
        """
        Построить конфигурацию provider routing для запроса.

        Returns:
            dict с настройками провайдера или None если не указаны
        """
        if not self.provider_order:
            return None
        return {
            "order": self.provider_order,
            "allow_fallbacks": self.allow_fallbacks,
        }

    def _build_headers(self) -> dict:
        headers = super()._build_headers()
        headers["HTTP-Referer"] = "https://github.com/multiboard-poster"
        headers["X-Title"] = "Multiboard Poster"
        return headers

    def _build_payload(self, prompt: str, system: Optional[str] = None) -> dict:
        payload = super()._build_payload(prompt, system)
        provider_config = self._build_provider_config()
        if provider_config:
            payload["provider"] = provider_config
        return payload
