"""Исключения детектора полей формы."""

from typing import Optional

from src.models import FormAnalysis, UsageRecord


class DetectionFailure(Exception):
    """Detector could not produce a usable field mapping.

    ``analysis`` holds a low-confidence mapping when one was produced,
    the worker may fall back to it if the budget runs out.
    """

    def __init__(
        self,
        reason: str,
        usage: Optional[UsageRecord] = None,
        analysis: Optional[FormAnalysis] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.usage = usage
        self.analysis = analysis

    @property
    def soft(self) -> bool:
        return self.analysis is not None


class BudgetExceeded(Exception):
    """Cost Guard denied a detector call for the job."""

    def __init__(self, job_id: str, estimated_cost: float, remaining: float):
        super().__init__(
            f"LLM budget exhausted for job {job_id}: "
            f"estimated ${estimated_cost:.4f}, remaining ${remaining:.4f}"
        )
        self.job_id = job_id
        self.estimated_cost = estimated_cost
        self.remaining = remaining
