"""Распознавание полей формы публикации вакансии."""

from .context import FormContext
from .exceptions import BudgetExceeded, DetectionFailure
from .detector import FormFieldDetector

__all__ = ["BudgetExceeded", "DetectionFailure", "FormContext", "FormFieldDetector"]
