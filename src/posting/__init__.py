"""Публикация вакансии на нескольких досках."""

from .cost_guard import CostGuard
from .errors import PostingError
from .orchestrator import PostingOrchestrator
from .state import ALLOWED_TRANSITIONS, BoardPosting, InvalidTransitionError, aggregate_job_status
from .status import LoggingSink, MemorySink, QueueSink, StatusPublisher, StatusSink, WebhookSink
from .worker import PostingWorker

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BoardPosting",
    "CostGuard",
    "InvalidTransitionError",
    "LoggingSink",
    "MemorySink",
    "PostingError",
    "PostingOrchestrator",
    "PostingWorker",
    "QueueSink",
    "StatusPublisher",
    "StatusSink",
    "WebhookSink",
    "aggregate_job_status",
]
