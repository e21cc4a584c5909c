"""PostingEngine: inbound interface of the multi-board posting engine."""

import asyncio
import logging
from typing import Mapping, Optional

from src.boards import get_catalog
from src.browser import BrowserSession
from src.config import settings
from src.database import PostingRepository
from src.detection import FormFieldDetector
from src.llm import BaseLLMProvider, build_provider_chain
from src.models import Board, Credentials, Job, JobResult
from src.posting import (
    CostGuard,
    LoggingSink,
    PostingOrchestrator,
    PostingWorker,
    StatusPublisher,
    StatusSink,
    WebhookSink,
)

logger = logging.getLogger(__name__)


class PostingEngine:
    """
    Точка входа: собирает детектор, воркер и оркестратор.

    Usage:
        async with PostingEngine.from_settings() as engine:
            result = await engine.start_posting(job, ["remoteok", "nodesk"])

    Fire-and-forget:
        task = engine.submit(job, board_ids)
        events = engine.publisher.subscribe()
        ...
        result = await engine.wait(job.id)
    """

    def __init__(
        self,
        catalog: Mapping[str, Board],
        providers: list[BaseLLMProvider],
        session: BrowserSession,
        publisher: StatusPublisher,
        cost_guard: CostGuard,
        store: Optional[PostingRepository] = None,
        worker: Optional[PostingWorker] = None,
        max_concurrency: int = 3,
        cancel_grace_period: float = 10.0,
    ):
        self.catalog = catalog
        self.providers = providers
        self.session = session
        self.publisher = publisher
        self.cost_guard = cost_guard
        self.store = store

        if worker is None:
            detector = FormFieldDetector(
                providers,
                cost_guard,
                min_confidence=settings.min_detection_confidence,
                max_markup_chars=settings.max_markup_chars,
            )
            worker = PostingWorker.from_settings(session, detector, publisher, cost_guard)
        self.orchestrator = PostingOrchestrator(
            catalog,
            worker,
            cost_guard,
            publisher,
            max_concurrency=max_concurrency,
            cancel_grace_period=cancel_grace_period,
            store=store,
        )

        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}

    @classmethod
    def from_settings(
        cls,
        providers: Optional[list[BaseLLMProvider]] = None,
        sinks: Optional[list[StatusSink]] = None,
        headless: Optional[bool] = None,
        persist: bool = True,
    ) -> "PostingEngine":
        """Собрать движок из настроек (.env / переменные окружения)."""
        if sinks is None:
            sinks = [LoggingSink()]
            if settings.status_webhook_url:
                sinks.append(WebhookSink(settings.status_webhook_url))

        return cls(
            catalog=get_catalog(),
            providers=build_provider_chain() if providers is None else providers,
            session=BrowserSession(headless=settings.headless if headless is None else headless),
            publisher=StatusPublisher(sinks),
            cost_guard=CostGuard(settings.cost_ceiling_usd, settings.run_cost_ceiling_usd),
            store=PostingRepository(settings.db_path) if persist else None,
            max_concurrency=settings.max_concurrency,
            cancel_grace_period=settings.cancel_grace_period,
        )

    # ==================== Posting ====================

    async def start_posting(
        self,
        job: Job,
        board_ids: Optional[list[str]] = None,
        credentials: Optional[Mapping[str, Credentials]] = None,
    ) -> JobResult:
        """Опубликовать и дождаться результата."""
        return await self.wait(self.submit(job, board_ids, credentials).get_name())

    def submit(
        self,
        job: Job,
        board_ids: Optional[list[str]] = None,
        credentials: Optional[Mapping[str, Credentials]] = None,
    ) -> asyncio.Task:
        """
        Запустить публикацию в фоне.

        Прогресс доступен через StatusPublisher, результат через wait(job.id).

        Raises:
            ValueError: публикация этой вакансии уже идёт или не выбраны доски
        """
        existing = self._tasks.get(job.id)
        if existing is not None and not existing.done():
            raise ValueError(f"Job {job.id} is already being posted")

        board_ids = board_ids if board_ids is not None else job.board_ids
        if not board_ids:
            raise ValueError("At least one board is required")

        cancel_event = asyncio.Event()
        self._cancel_events[job.id] = cancel_event
        task = asyncio.create_task(
            self.orchestrator.run(job, board_ids, credentials, cancel_event),
            name=job.id,
        )
        self._tasks[job.id] = task
        return task

    async def wait(self, job_id: str) -> JobResult:
        """Дождаться завершения публикации."""
        task = self._tasks.get(job_id)
        if task is None:
            raise KeyError(f"Unknown job: {job_id}")
        try:
            return await task
        finally:
            self._cancel_events.pop(job_id, None)

    def cancel(self, job_id: str) -> bool:
        """Кооперативная отмена. Returns False если задача не найдена или завершена."""
        task = self._tasks.get(job_id)
        event = self._cancel_events.get(job_id)
        if task is None or task.done() or event is None:
            return False
        logger.info(f"Cancelling job {job_id[:8]}")
        event.set()
        return True

    # ==================== Checks ====================

    async def check_boards(self, board_ids: Optional[list[str]] = None) -> list[dict]:
        """Проверить доступность форм публикации."""
        boards = [self.catalog[b] for b in board_ids if b in self.catalog] if board_ids else list(self.catalog.values())
        semaphore = asyncio.Semaphore(self.orchestrator.max_concurrency)

        async def check(board: Board) -> dict:
            async with semaphore:
                report = await self.session.check_url(board.post_url)
            return {"board_id": board.id, "board_name": board.name, **report}

        return list(await asyncio.gather(*(check(b) for b in boards)))

    async def check_llm(self) -> list[dict]:
        """Проверить подключение ко всем провайдерам цепочки."""
        return [await provider.check_connection() for provider in self.providers]

    # ==================== Lifecycle ====================

    async def close(self) -> None:
        for job_id, task in list(self._tasks.items()):
            if not task.done():
                self.cancel(job_id)
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.publisher.stop()
        await self.session.stop()
        for provider in self.providers:
            await provider.close()
        if self.store is not None:
            await self.store.close()

    async def __aenter__(self):
        await self.publisher.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
