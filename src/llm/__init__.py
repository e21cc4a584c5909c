"""Модуль для работы с LLM провайдерами."""

import logging
from typing import Optional

from .base import (
    BaseLLMProvider,
    FormContext,
    LLMProviderError,
    LLMResponse,
    LLMRetryableError,
    LLMUsageStats,
)
from .anthropic import AnthropicProvider
from .ollama import OllamaProvider
from .openai import GroqProvider, OpenAIProvider
from .openrouter import OpenRouterProvider

from src.config import settings

logger = logging.getLogger(__name__)


def get_llm_provider(provider: str = "groq", **kwargs) -> BaseLLMProvider:
    """
    Фабрика для получения LLM провайдера.

    Args:
        provider: Название провайдера (groq, openai, anthropic, openrouter, ollama)
        **kwargs: Дополнительные параметры для провайдера

    Returns:
        Экземпляр LLM провайдера
    """
    kwargs.setdefault("timeout", settings.llm_timeout)
    match provider.lower():
        case "groq":
            kwargs.setdefault("api_key", settings.groq_api_key)
            return GroqProvider(**kwargs)
        case "openai":
            kwargs.setdefault("api_key", settings.openai_api_key)
            return OpenAIProvider(**kwargs)
        case "claude" | "anthropic":
            kwargs.setdefault("api_key", settings.anthropic_api_key)
            return AnthropicProvider(**kwargs)
        case "openrouter":
            # Используем API ключ из настроек, если не передан явно
            kwargs.setdefault("api_key", settings.openrouter_api_key)
            if "provider_order" not in kwargs and settings.openrouter_provider_order:
                # Парсим список провайдеров из строки "azure,openai" -> ["azure", "openai"]
                kwargs["provider_order"] = [
                    p.strip() for p in settings.openrouter_provider_order.split(",") if p.strip()
                ]
            kwargs.setdefault("allow_fallbacks", settings.openrouter_allow_fallbacks)
            return OpenRouterProvider(**kwargs)
        case "ollama":
            kwargs.setdefault("base_url", settings.ollama_url)
            return OllamaProvider(**kwargs)
        case _:
            raise ValueError(f"Unknown LLM provider: {provider}")


def build_provider_chain(
    primary: Optional[str] = None,
    fallbacks: Optional[list[str]] = None,
    model: Optional[str] = None,
) -> list[BaseLLMProvider]:
    """
    Собрать цепочку провайдеров: основной + резервные.

    Провайдеры без API ключа пропускаются. Модель из настроек применяется
    только к основному провайдеру.

    Raises:
        ValueError: если ни один провайдер не сконфигурирован
    """
    primary = primary or settings.llm_provider
    fallbacks = settings.fallback_providers if fallbacks is None else fallbacks
    model = model if model is not None else settings.llm_model

    chain: list[BaseLLMProvider] = []
    seen: set[str] = set()
    for index, name in enumerate([primary, *fallbacks]):
        name = name.lower()
        if name in seen:
            continue
        seen.add(name)
        kwargs = {"model": model} if index == 0 and model else {}
        try:
            chain.append(get_llm_provider(name, **kwargs))
        except ValueError as e:
            if index == 0 and "Unknown" in str(e):
                raise
            # Missing API key: skip this backend
            logger.warning(f"Skipping LLM provider {name}: {e}")

    if not chain:
        raise ValueError("No LLM provider configured (set an API key or use ollama)")
    return chain


__all__ = [
    "AnthropicProvider",
    "BaseLLMProvider",
    "FormContext",
    "GroqProvider",
    "LLMProviderError",
    "LLMResponse",
    "LLMRetryableError",
    "LLMUsageStats",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "build_provider_chain",
    "get_llm_provider",
]
