"""Orchestrator: fans a job out to bounded Posting Workers and aggregates results."""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Mapping, Optional

from src.models import Board, BoardResult, BoardStatus, Credentials, ErrorKind, Job, JobResult, JobStatus
from .cost_guard import CostGuard
from .state import BoardPosting, aggregate_job_status
from .status import StatusPublisher
from .worker import PostingWorker

if TYPE_CHECKING:
    from src.database import PostingRepository

logger = logging.getLogger(__name__)


class PostingOrchestrator:
    """
    Публикует вакансию на нескольких досках параллельно.

    - Не больше ``max_concurrency`` досок одновременно (asyncio.Semaphore)
    - Ошибка одной доски не влияет на другие
    - Результат всегда JobResult, никогда исключение
    - Отмена: cancel_event -> новые доски не стартуют, активные получают
      ``cancel_grace_period`` секунд, затем отменяются
    """

    def __init__(
        self,
        catalog: Mapping[str, Board],
        worker: PostingWorker,
        cost_guard: CostGuard,
        publisher: StatusPublisher,
        max_concurrency: int = 3,
        cancel_grace_period: float = 10.0,
        store: Optional["PostingRepository"] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.catalog = catalog
        self.worker = worker
        self.cost_guard = cost_guard
        self.publisher = publisher
        self.max_concurrency = max_concurrency
        self.cancel_grace_period = cancel_grace_period
        self.store = store

    async def run(
        self,
        job: Job,
        board_ids: Optional[list[str]] = None,
        credentials: Optional[Mapping[str, Credentials]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobResult:
        """
        Опубликовать вакансию на досках.

        Args:
            job: Вакансия
            board_ids: Доски (по умолчанию job.board_ids)
            credentials: Данные для входа по id доски
            cancel_event: Событие кооперативной отмены

        Returns:
            JobResult с одним терминальным результатом на каждую доску
        """
        start_time = time.perf_counter()
        board_ids = list(dict.fromkeys(board_ids if board_ids is not None else job.board_ids))
        credentials = credentials or {}
        cancel_event = cancel_event or asyncio.Event()

        postings: dict[str, BoardPosting] = {}

        def on_board_change(posting: BoardPosting) -> None:
            status = aggregate_job_status(p.status for p in postings.values())
            if status != job.status and status == JobStatus.POSTING:
                self.publisher.publish(job.id, None, status, detail=f"board {posting.board_id} {posting.status.value}")
            job.status = status

        for board_id in board_ids:
            board = self.catalog.get(board_id)
            postings[board_id] = BoardPosting(
                job_id=job.id,
                board_id=board_id,
                board_name=board.name if board else board_id,
                on_change=on_board_change,
            )

        job.status = aggregate_job_status(p.status for p in postings.values())
        self.publisher.publish(job.id, None, job.status, detail=f"queued {len(board_ids)} boards")
        logger.info(f"Posting job {job.id[:8]} '{job.title}' to {len(board_ids)} boards (max {self.max_concurrency} parallel)")

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results: dict[str, BoardResult] = {}

        async def post_one(board_id: str) -> None:
            posting = postings[board_id]
            board = self.catalog.get(board_id)
            async with semaphore:
                if cancel_event.is_set():
                    self._fail_unstarted(posting, ErrorKind.CANCELLED, "job cancelled before start")
                    return
                if board is None:
                    self._fail_unstarted(posting, ErrorKind.NAVIGATION_FAILURE, f"unknown board '{board_id}'")
                    return
                if not board.enabled:
                    self._fail_unstarted(posting, ErrorKind.NAVIGATION_FAILURE, f"board '{board_id}' is disabled")
                    return
                try:
                    results[board_id] = await self.worker.post(job, board, posting, credentials.get(board_id))
                except Exception as e:
                    logger.exception(f"[{board_id}] posting worker crashed")
                    self._fail_unstarted(posting, ErrorKind.NAVIGATION_FAILURE, f"{type(e).__name__}: {e}")

        tasks = {
            asyncio.create_task(post_one(board_id), name=f"post-{job.id[:8]}-{board_id}"): board_id
            for board_id in board_ids
        }
        await self._wait_all(tasks, cancel_event)

        # Every board ends in exactly one terminal status
        for board_id, posting in postings.items():
            if not posting.is_terminal:
                self._fail_unstarted(posting, ErrorKind.CANCELLED, "posting cancelled")
            if board_id not in results:
                results[board_id] = posting.to_result(await self.cost_guard.total(job.id, board_id))

        ordered = [results[board_id] for board_id in board_ids]
        job.status = aggregate_job_status(p.status for p in postings.values())
        job.total_cost = await self.cost_guard.total(job.id)

        result = JobResult(
            job_id=job.id,
            status=job.status,
            overall_success=job.status == JobStatus.SUCCEEDED,
            results=ordered,
            total_cost=job.total_cost,
            total_time=time.perf_counter() - start_time,
        )

        self.publisher.publish(
            job.id,
            None,
            job.status,
            detail=f"{result.successful_postings}/{result.total_boards} boards, ${result.total_cost:.4f}",
        )
        logger.info(
            f"Job {job.id[:8]} {job.status.value}: {result.successful_postings}/{result.total_boards} boards "
            f"in {result.total_time:.1f}s, LLM cost ${result.total_cost:.4f}"
        )

        if self.store is not None:
            await self._persist(job, result)
        return result

    async def _wait_all(self, tasks: dict[asyncio.Task, str], cancel_event: asyncio.Event) -> None:
        """Wait for all board tasks; on cancel give them a grace period, then cancel."""
        pending = set(tasks)
        cancel_waiter = asyncio.create_task(cancel_event.wait())
        try:
            while pending:
                done, _ = await asyncio.wait(pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if cancel_waiter in done:
                    break
            if pending:
                logger.info(f"Cancel requested, waiting up to {self.cancel_grace_period:.0f}s for {len(pending)} boards")
                if self.cancel_grace_period > 0:
                    _, pending = await asyncio.wait(pending, timeout=self.cancel_grace_period)
                await self._cancel_tasks(pending)
        except asyncio.CancelledError:
            await self._cancel_tasks(pending)
            raise
        finally:
            cancel_waiter.cancel()

        for task, board_id in tasks.items():
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                logger.error(f"[{board_id}] posting task crashed: {exc!r}")

    @staticmethod
    async def _cancel_tasks(tasks: set[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fail_unstarted(self, posting: BoardPosting, kind: ErrorKind, message: str) -> None:
        if posting.is_terminal:
            return
        posting.fail(kind, message)
        self.publisher.publish(
            posting.job_id, posting.board_id, BoardStatus.FAILED, error_kind=kind, error_message=message
        )

    async def _persist(self, job: Job, result: JobResult) -> None:
        try:
            await self.store.save_job(job)
            await self.store.save_result(result, await self.cost_guard.usage_records(job.id))
        except Exception as e:
            logger.error(f"Failed to persist job {job.id[:8]}: {e}")
