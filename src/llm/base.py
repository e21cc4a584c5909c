"""Base class for LLM providers."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from src.constants import COST_ESTIMATE_MARGIN, HTTP_SERVER_ERROR_MIN, LLM_MAX_OUTPUT_TOKENS, MAX_LLM_RETRIES
from src.detection.context import FormContext
from src.detection.exceptions import DetectionFailure
from src.models import FieldMapping, FieldType, FormAnalysis, FormAnalysisSchema, UsageRecord
from .html_utils import estimate_tokens, extract_json
from .pricing import DEFAULT_PRICING, ModelPricing
from .prompts import CONNECTION_CHECK_PROMPT, FORM_ANALYSIS_PROMPT, FORM_ANALYSIS_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Permanent provider error (bad key, bad request, unparseable body)."""
    pass


class LLMRetryableError(LLMProviderError):
    """Transient error that should trigger retry."""
    pass


@dataclass
class LLMResponse:
    """Raw completion plus the token counts reported by the provider."""
    content: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMUsageStats:
    """Statistics for LLM usage tracking."""
    total_calls: int = 0
    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_time_seconds: float = 0.0
    total_cost_usd: float = 0.0

    def add_call(self, prompt_tokens: int, completion_tokens: int, time_seconds: float, cost_usd: float = 0.0):
        """Record a single LLM call."""
        self.total_calls += 1
        self.total_prompt_tokens += prompt_tokens
        self.total_completion_tokens += completion_tokens
        self.total_time_seconds += time_seconds
        self.total_cost_usd += cost_usd

    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"LLM Stats: {self.total_calls} calls, "
            f"{self.total_tokens:,} tokens ({self.total_prompt_tokens:,}+{self.total_completion_tokens:,}), "
            f"{self.total_time_seconds:.1f}s total, "
            f"${self.total_cost_usd:.4f}"
        )


def _log_retry(retry_state) -> None:
    """Log retry attempt (tenacity before_sleep hook)."""
    provider = retry_state.args[0]
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception()
    wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"{provider.name} error (attempt {attempt}/{MAX_LLM_RETRIES}): {exc}. "
        f"Retrying in {wait_time:.1f}s..."
    )


# Shared retry policy for every provider's complete_json
llm_retry = retry(
    stop=stop_after_attempt(MAX_LLM_RETRIES),
    wait=wait_exponential(multiplier=2, min=2, max=16),
    retry=retry_if_exception_type(LLMRetryableError),
    before_sleep=_log_retry,
    reraise=True,
)


def normalize_fields(detected) -> list[FieldMapping]:
    """Convert LLM fields into FieldMappings.

    Deterministic: keeps input order, drops empty selectors and repeated
    selectors (first occurrence wins).
    """
    mappings: list[FieldMapping] = []
    seen: set[str] = set()
    for field in detected:
        selector = (field.selector or "").strip()
        if not selector or selector in seen:
            continue
        seen.add(selector)
        mappings.append(FieldMapping(
            selector=selector,
            field_type=FieldType(field.type),
            required=field.required,
            confidence=field.confidence,
            label=field.label,
        ))
    return mappings


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    Concrete providers only differ in endpoint, pricing table and response
    parsing: they implement ``complete_json``. Form analysis, cost accounting
    and usage records live here.
    """

    name: str = "base"
    DEFAULT_MODEL: str = ""
    PRICING: dict[str, ModelPricing] = {}

    # Errors that indicate transient provider issues (should retry)
    TRANSIENT_ERROR_PATTERNS = [
        "rate limit",
        "overloaded",
        "capacity",
        "temporarily unavailable",
        "service unavailable",
        "internal server error",
        "502", "503", "504",
    ]

    def __init__(
        self,
        model: Optional[str] = None,
        timeout: float = 60.0,
        max_tokens: int = LLM_MAX_OUTPUT_TOKENS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.usage_stats = LLMUsageStats()

    @property
    def pricing(self) -> ModelPricing:
        return self.PRICING.get(self.model, DEFAULT_PRICING)

    @abstractmethod
    async def complete_json(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        """
        Генерация JSON ответа от LLM.

        Args:
            prompt: Пользовательский промпт (должен явно просить JSON)
            system: Системный промпт (опционально)

        Returns:
            LLMResponse с текстом ответа и количеством токенов

        Raises:
            LLMRetryableError: временная ошибка (повторяется через tenacity)
            LLMProviderError: постоянная ошибка
        """
        pass

    def _is_transient_error(self, error_msg: str) -> bool:
        """Check if error is transient and should be retried."""
        error_lower = error_msg.lower()
        return any(pattern in error_lower for pattern in self.TRANSIENT_ERROR_PATTERNS)

    async def _post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        """
        POST a JSON payload and return the decoded body.

        Raises:
            LLMRetryableError: On transient errors (will be retried)
            LLMProviderError: On permanent errors
        """
        logger.debug(f"Starting {self.name} request to {self.model}...")
        try:
            response = await self.client.post(url, json=payload, headers=headers)
            logger.debug(f"{self.name} response received: HTTP {response.status_code}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            error_body = e.response.text[:500]
            error_msg = f"HTTP {e.response.status_code}: {error_body}"
            if e.response.status_code == 429 or e.response.status_code >= HTTP_SERVER_ERROR_MIN:
                raise LLMRetryableError(error_msg) from e
            raise LLMProviderError(f"{self.name} API error: {error_msg}") from e
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise LLMRetryableError(f"Connection error: {e}") from e
        except httpx.HTTPError as e:
            raise LLMRetryableError(f"Transport error: {e}") from e
        except ValueError as e:
            raise LLMProviderError(f"{self.name} returned non-JSON body: {e}") from e

        # Some gateways report failures with HTTP 200 and an error object
        if isinstance(data, dict) and data.get("error"):
            error_data = data["error"]
            error_msg = error_data.get("message", str(error_data)) if isinstance(error_data, dict) else str(error_data)
            logger.debug(f"{self.name} error response: {error_data}")
            if self._is_transient_error(error_msg):
                raise LLMRetryableError(error_msg)
            raise LLMProviderError(f"{self.name} API error: {error_msg}")

        return data

    def build_form_prompt(self, markup: str, context: FormContext) -> str:
        return FORM_ANALYSIS_PROMPT.format(
            url=context.url,
            board_name=context.board_name,
            title=context.title,
            company=context.company or "-",
            location=context.location or "-",
            employment_type=context.employment_type or "-",
            salary=context.salary or "-",
            html=markup,
        )

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return self.pricing.cost(input_tokens, output_tokens)

    def estimate_analysis_cost(self, markup: str, context: FormContext) -> float:
        """Upper estimate of one analyze() call: full prompt in, max_tokens out."""
        prompt = self.build_form_prompt(markup, context)
        input_tokens = estimate_tokens(FORM_ANALYSIS_SYSTEM_PROMPT) + estimate_tokens(prompt)
        return self.estimate_cost(input_tokens, self.max_tokens) * COST_ESTIMATE_MARGIN

    def _usage_record(
        self,
        input_tokens: int,
        output_tokens: int,
        latency: float,
        success: bool,
        job_id: Optional[str],
        board_id: Optional[str],
    ) -> UsageRecord:
        cost = self.estimate_cost(input_tokens, output_tokens)
        self.usage_stats.add_call(input_tokens, output_tokens, latency, cost)
        return UsageRecord(
            provider=self.name,
            model=self.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            latency_seconds=latency,
            success=success,
            job_id=job_id,
            board_id=board_id,
        )

    async def analyze(
        self,
        markup: str,
        context: FormContext,
        job_id: Optional[str] = None,
        board_id: Optional[str] = None,
    ) -> FormAnalysis:
        """
        Detect job posting form fields in the given markup.

        Args:
            markup: Sanitized, bounded form markup
            context: Job metadata and board info
            job_id: Attached to the usage record
            board_id: Attached to the usage record

        Returns:
            FormAnalysis with normalized field mappings and the usage record

        Raises:
            DetectionFailure: request failed, response malformed or no form found.
                Carries the usage record of the call.
        """
        prompt = self.build_form_prompt(markup, context)
        start_time = time.perf_counter()

        try:
            response = await self.complete_json(prompt, FORM_ANALYSIS_SYSTEM_PROMPT)
        except LLMProviderError as e:
            usage = self._usage_record(0, 0, time.perf_counter() - start_time, False, job_id, board_id)
            raise DetectionFailure(f"{self.name} request failed: {e}", usage=usage) from e

        elapsed = time.perf_counter() - start_time
        payload = extract_json(response.content)
        if isinstance(payload, list):
            payload = {"fields": payload}

        try:
            parsed = FormAnalysisSchema.model_validate(payload)
        except ValidationError as e:
            usage = self._usage_record(
                response.input_tokens, response.output_tokens, elapsed, False, job_id, board_id
            )
            logger.debug(f"Raw content (first 500 chars): {response.content[:500]}")
            raise DetectionFailure(f"{self.name} returned malformed analysis: {e.error_count()} errors", usage=usage) from e

        fields = normalize_fields(parsed.fields)
        usage = self._usage_record(
            response.input_tokens, response.output_tokens, elapsed, bool(parsed.success and fields), job_id, board_id
        )

        if not parsed.success or not fields:
            reason = "; ".join(parsed.warnings) or "no job posting form found"
            raise DetectionFailure(f"{self.name}: {reason}", usage=usage)

        logger.debug(
            f"{self.name} found {len(fields)} fields (confidence {parsed.confidence:.2f}), "
            f"{response.input_tokens}+{response.output_tokens} tokens, {elapsed:.2f}s"
        )
        return FormAnalysis(
            fields=fields,
            confidence=parsed.confidence,
            provider=self.name,
            model=self.model,
            usage=usage,
            warnings=parsed.warnings,
        )

    async def check_connection(self) -> dict:
        """Send a trivial prompt and report whether the backend answers."""
        start_time = time.perf_counter()
        try:
            response = await self.complete_json(CONNECTION_CHECK_PROMPT)
            elapsed = time.perf_counter() - start_time
            self._usage_record(response.input_tokens, response.output_tokens, elapsed, True, None, None)
            return {"success": True, "provider": self.name, "model": self.model, "response_time": elapsed}
        except LLMProviderError as e:
            return {
                "success": False,
                "provider": self.name,
                "model": self.model,
                "response_time": time.perf_counter() - start_time,
                "error": str(e),
            }

    async def close(self):
        """Закрыть HTTP клиент и залогировать статистику."""
        if self.usage_stats.total_calls > 0:
            logger.info(f"{self.name}/{self.model}: {self.usage_stats.summary()}")
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
