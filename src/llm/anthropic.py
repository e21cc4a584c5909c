"""Anthropic Messages API провайдер."""

import logging
import time
from typing import Optional

import httpx

from src.constants import LLM_MAX_OUTPUT_TOKENS, LLM_TEMPERATURE
from .base import BaseLLMProvider, LLMProviderError, LLMResponse, llm_retry
from .pricing import ANTHROPIC_PRICING

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Провайдер для Anthropic (Claude)."""

    name = "anthropic"
    BASE_URL = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-3-5-haiku-20241022"
    PRICING = ANTHROPIC_PRICING

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: float = 60.0,
        max_tokens: int = LLM_MAX_OUTPUT_TOKENS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("Anthropic API key is required")
        super().__init__(model=model, timeout=timeout, max_tokens=max_tokens, client=client)
        self.api_key = api_key

    def _build_headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }

    def _build_payload(self, prompt: str, system: Optional[str] = None) -> dict:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": LLM_TEMPERATURE,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        return payload

    @llm_retry
    async def complete_json(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        """Messages API call. Claude has no JSON mode: the prompt asks for JSON only."""
        payload = self._build_payload(prompt, system)
        start_time = time.perf_counter()

        data = await self._post_json(f"{self.BASE_URL}/messages", payload, self._build_headers())
        elapsed = time.perf_counter() - start_time

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise LLMProviderError(f"Anthropic returned unexpected body: {str(data)[:200]}")
        content = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")

        usage = data.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        logger.debug(
            f"Anthropic call: {input_tokens}+{output_tokens} tokens, "
            f"{elapsed:.2f}s, model={self.model}"
        )
        return LLMResponse(content=content, input_tokens=input_tokens, output_tokens=output_tokens)
