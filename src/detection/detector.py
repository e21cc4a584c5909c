"""LLM-assisted form field detector."""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Sequence

from src.llm.html_utils import prepare_form_markup
from src.models import Board, FormAnalysis, Job
from .context import FormContext
from .exceptions import BudgetExceeded, DetectionFailure

if TYPE_CHECKING:
    from src.llm.base import BaseLLMProvider
    from src.posting.cost_guard import CostGuard

logger = logging.getLogger(__name__)


class FormFieldDetector:
    """
    Находит поля формы публикации вакансии с помощью LLM.

    Каждая попытка использует следующего провайдера из цепочки
    (``providers[attempt % len(providers)]``). Перед вызовом резервирует
    оценку стоимости в CostGuard, после вызова записывает фактическое
    использование (в том числе при ошибке).
    """

    def __init__(
        self,
        providers: Sequence["BaseLLMProvider"],
        cost_guard: "CostGuard",
        min_confidence: float = 0.5,
        max_markup_chars: int = 8000,
    ):
        if not providers:
            raise ValueError("At least one LLM provider is required")
        self.providers = list(providers)
        self.cost_guard = cost_guard
        self.min_confidence = min_confidence
        self.max_markup_chars = max_markup_chars

    def provider_for(self, attempt: int) -> "BaseLLMProvider":
        return self.providers[attempt % len(self.providers)]

    async def detect(
        self,
        markup: str,
        job: Job,
        board: Board,
        attempt: int = 0,
        url: Optional[str] = None,
    ) -> FormAnalysis:
        """
        Распознать поля формы.

        Args:
            markup: HTML страницы (будет очищен и обрезан)
            job: Публикуемая вакансия
            board: Доска объявлений
            attempt: Номер попытки (выбор провайдера)
            url: Фактический URL страницы формы

        Returns:
            FormAnalysis с уверенностью не ниже min_confidence

        Raises:
            BudgetExceeded: бюджет вакансии исчерпан, провайдер не вызывался
            DetectionFailure: провайдер не справился или уверенность низкая
        """
        prepared = prepare_form_markup(markup, self.max_markup_chars)
        if not prepared:
            raise DetectionFailure("page has no markup to analyze")

        provider = self.provider_for(attempt)
        context = FormContext.from_job(job, url or board.post_url, board.name)
        estimated = provider.estimate_analysis_cost(prepared, context)

        if not await self.cost_guard.reserve(job.id, estimated):
            raise BudgetExceeded(job.id, estimated, await self.cost_guard.remaining(job.id))

        try:
            analysis = await provider.analyze(prepared, context, job_id=job.id, board_id=board.id)
        except DetectionFailure as e:
            await self.cost_guard.record(job.id, e.usage, reserved=estimated)
            logger.info(f"[{board.id}] detection attempt {attempt + 1} via {provider.name} failed: {e.reason}")
            raise
        except (Exception, asyncio.CancelledError):
            # Interrupted call: give the reservation back
            await self.cost_guard.record(job.id, None, reserved=estimated)
            raise

        await self.cost_guard.record(job.id, analysis.usage, reserved=estimated)

        if analysis.confidence < self.min_confidence:
            raise DetectionFailure(
                f"low confidence {analysis.confidence:.2f} < {self.min_confidence:.2f}",
                usage=analysis.usage,
                analysis=analysis,
            )

        logger.info(
            f"[{board.id}] {provider.name} mapped {len(analysis.fields)} fields "
            f"(confidence {analysis.confidence:.2f})"
        )
        return analysis
