"""Posting Worker: navigate -> detect -> fill -> submit -> verify for one board."""

import asyncio
import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from playwright.async_api import Error as PlaywrightError, Page

from src.browser import BrowserSession, NavigationError, click_element, fill_field, login, open_form_page
from src.config import settings
from src.detection import BudgetExceeded, DetectionFailure, FormFieldDetector
from src.models import (
    Board,
    BoardResult,
    BoardStatus,
    Credentials,
    ErrorKind,
    FieldMapping,
    FieldType,
    FormAnalysis,
    Job,
)
from .cost_guard import CostGuard
from .errors import PostingError
from .state import BoardPosting
from .status import StatusPublisher
from .verification import capture_baseline, wait_for_confirmation

logger = logging.getLogger(__name__)

# Unexpected exceptions are classified by the phase they happened in
PHASE_ERROR_KINDS = {
    BoardStatus.PENDING: ErrorKind.NAVIGATION_FAILURE,
    BoardStatus.ANALYZING: ErrorKind.NAVIGATION_FAILURE,
    BoardStatus.FILLING: ErrorKind.REQUIRED_FIELD_MISSING,
    BoardStatus.SUBMITTING: ErrorKind.UNCONFIRMED_SUBMISSION,
}


class PostingWorker:
    """
    Публикует одну вакансию на одну доску.

    Каждая публикация получает свежий BrowserContext (cookies и storage
    не переходят между досками), который закрывается при любом исходе.
    Все ошибки превращаются в терминальный статус ``failed`` с ErrorKind,
    наружу уходит только asyncio.CancelledError (после фиксации статуса).
    """

    def __init__(
        self,
        session: BrowserSession,
        detector: FormFieldDetector,
        publisher: StatusPublisher,
        cost_guard: CostGuard,
        *,
        max_detection_attempts: int = 2,
        required_fields: Sequence[FieldType] = (FieldType.TITLE, FieldType.DESCRIPTION),
        min_field_confidence: float = 0.5,
        board_timeout: float = 180.0,
        submit_timeout: float = 30.0,
        confirmation_timeout: float = 15.0,
        pacing: tuple[float, float] = (0.3, 0.8),
        screenshot_dir: Optional[str] = None,
    ):
        self.session = session
        self.detector = detector
        self.publisher = publisher
        self.cost_guard = cost_guard
        self.max_detection_attempts = max(max_detection_attempts, 1)
        self.required_fields = list(dict.fromkeys(required_fields))
        self.min_field_confidence = min_field_confidence
        self.board_timeout = board_timeout
        self.submit_timeout = submit_timeout
        self.confirmation_timeout = confirmation_timeout
        self.pacing = pacing
        self.screenshot_dir = Path(screenshot_dir) if screenshot_dir else None

    @classmethod
    def from_settings(
        cls,
        session: BrowserSession,
        detector: FormFieldDetector,
        publisher: StatusPublisher,
        cost_guard: CostGuard,
    ) -> "PostingWorker":
        return cls(
            session,
            detector,
            publisher,
            cost_guard,
            max_detection_attempts=settings.max_detection_attempts,
            required_fields=[FieldType(f) for f in settings.required_field_types],
            min_field_confidence=settings.min_field_confidence,
            board_timeout=settings.board_timeout,
            submit_timeout=settings.submit_timeout,
            confirmation_timeout=settings.confirmation_timeout,
            pacing=(settings.pacing_min_delay, settings.pacing_max_delay),
            screenshot_dir=settings.screenshot_dir or None,
        )

    # ==================== Public API ====================

    async def post(
        self,
        job: Job,
        board: Board,
        posting: Optional[BoardPosting] = None,
        credentials: Optional[Credentials] = None,
    ) -> BoardResult:
        """
        Опубликовать вакансию на доске.

        Args:
            job: Вакансия
            board: Доска из каталога
            posting: BoardPosting, которым владеет оркестратор (создаётся, если не передан)
            credentials: Данные для входа (для досок с requires_auth)

        Returns:
            BoardResult с терминальным статусом

        Raises:
            asyncio.CancelledError: после того как posting помечен как cancelled
        """
        posting = posting or BoardPosting(job_id=job.id, board_id=board.id, board_name=board.name)

        try:
            async with asyncio.timeout(self.board_timeout):
                async with self.session.new_page() as page:
                    try:
                        await self._run(page, job, board, posting, credentials)
                    except Exception:
                        await self._screenshot(page, job, board)
                        raise
        except PostingError as e:
            self._fail(posting, e.kind, e.message)
        except TimeoutError:
            self._fail(posting, ErrorKind.TIMEOUT, f"board posting exceeded {self.board_timeout:.0f}s")
        except asyncio.CancelledError:
            self._fail(posting, ErrorKind.CANCELLED, "posting cancelled")
            raise
        except Exception as e:
            logger.exception(f"[{board.id}] unexpected error in phase {posting.status.value}")
            kind = PHASE_ERROR_KINDS.get(posting.status, ErrorKind.NAVIGATION_FAILURE)
            self._fail(posting, kind, f"{type(e).__name__}: {e}")

        cost = await self.cost_guard.total(job.id, board.id)
        return posting.to_result(cost)

    # ==================== Phases ====================

    async def _run(
        self,
        page: Page,
        job: Job,
        board: Board,
        posting: BoardPosting,
        credentials: Optional[Credentials],
    ) -> None:
        self._advance(posting, BoardStatus.ANALYZING, detail=f"opening {board.post_url}")

        try:
            if board.requires_auth:
                if credentials is None:
                    raise PostingError(ErrorKind.NAVIGATION_FAILURE, f"{board.name} requires login, no credentials supplied")
                await login(page, board, credentials)
            html = await open_form_page(page, board.post_url)
        except NavigationError as e:
            raise PostingError(ErrorKind.NAVIGATION_FAILURE, str(e)) from e

        form_url = page.url
        analysis = await self._detect(page, html, job, board, posting)

        self._advance(
            posting,
            BoardStatus.FILLING,
            detail=f"{len(analysis.fields)} fields via {analysis.provider} ({analysis.confidence:.2f})",
        )
        submit = await self._fill(page, job, analysis)

        self._advance(posting, BoardStatus.SUBMITTING)
        external_url = await self._submit(page, board, submit, form_url)

        posting.succeed(external_url)
        self.publisher.publish(job.id, board.id, posting.status, external_url=external_url)
        logger.info(f"[{board.id}] posted: {external_url}")

    async def _detect(
        self,
        page: Page,
        html: str,
        job: Job,
        board: Board,
        posting: BoardPosting,
    ) -> FormAnalysis:
        """Bounded detection with provider fallback."""
        candidate: Optional[FormAnalysis] = None
        last_reason = "no attempt made"

        for attempt in range(self.max_detection_attempts):
            if attempt > 0:
                self._advance(posting, BoardStatus.ANALYZING, detail=f"detection attempt {attempt + 1}")
            try:
                return await self.detector.detect(html, job, board, attempt=attempt, url=page.url)
            except BudgetExceeded as e:
                if candidate is not None:
                    logger.info(f"[{board.id}] budget exhausted, using earlier mapping ({candidate.confidence:.2f})")
                    return candidate
                raise PostingError(ErrorKind.BUDGET_EXCEEDED, str(e)) from e
            except DetectionFailure as e:
                last_reason = e.reason
                if e.analysis is not None and (candidate is None or e.analysis.confidence > candidate.confidence):
                    candidate = e.analysis

        raise PostingError(
            ErrorKind.FORM_NOT_UNDERSTOOD,
            f"form not understood after {self.max_detection_attempts} attempts: {last_reason}",
        )

    def _required_types(self, analysis: FormAnalysis, values: dict[FieldType, str]) -> list[FieldType]:
        """Configured required types plus fields the form marks required and the job can fill."""
        required = dict.fromkeys(self.required_fields)
        for mapping in analysis.fields:
            if mapping.required and values.get(mapping.field_type):
                required.setdefault(mapping.field_type)
        return list(required)

    async def _fill(self, page: Page, job: Job, analysis: FormAnalysis) -> FieldMapping:
        """Fill required then optional fields. Returns the submit control."""
        submit = analysis.by_type(FieldType.SUBMIT)
        if submit is None:
            raise PostingError(ErrorKind.REQUIRED_FIELD_MISSING, "no submit control found on the form")

        values = job.field_values()
        required = self._required_types(analysis, values)

        for field_type in required:
            mapping = analysis.by_type(field_type)
            if mapping is None:
                raise PostingError(ErrorKind.REQUIRED_FIELD_MISSING, f"required field '{field_type.value}' not found on the form")
            value = values.get(field_type)
            if not value:
                raise PostingError(ErrorKind.REQUIRED_FIELD_MISSING, f"job has no value for required field '{field_type.value}'")
            if not await fill_field(page, mapping.selector, value):
                raise PostingError(
                    ErrorKind.REQUIRED_FIELD_MISSING,
                    f"cannot fill required field '{field_type.value}' ({mapping.selector})",
                )
            await self._pace()

        for field_type, value in values.items():
            if field_type in required or not value:
                continue
            mapping = analysis.by_type(field_type)
            if mapping is None or mapping.confidence < self.min_field_confidence:
                continue
            if await fill_field(page, mapping.selector, value):
                await self._pace()
            else:
                logger.debug(f"Skipping optional field {field_type.value} ({mapping.selector})")

        return submit

    async def _submit(self, page: Page, board: Board, submit: FieldMapping, form_url: str) -> str:
        """Click submit and wait for the confirmation signal, bounded by submit_timeout."""
        try:
            async with asyncio.timeout(self.submit_timeout):
                baseline = await capture_baseline(page, board)
                if not await click_element(page, submit.selector):
                    raise PostingError(
                        ErrorKind.REQUIRED_FIELD_MISSING,
                        f"submit control not clickable ({submit.selector})",
                    )
                external_url = await wait_for_confirmation(
                    page, form_url, board, self.confirmation_timeout, baseline=baseline
                )
        except TimeoutError as e:
            raise PostingError(ErrorKind.TIMEOUT, f"submission exceeded {self.submit_timeout:.0f}s") from e

        if external_url is None:
            raise PostingError(
                ErrorKind.UNCONFIRMED_SUBMISSION,
                f"no confirmation signal within {self.confirmation_timeout:.0f}s after submit",
            )
        return external_url

    # ==================== Helpers ====================

    def _advance(self, posting: BoardPosting, status: BoardStatus, detail: Optional[str] = None) -> None:
        posting.advance(status)
        self.publisher.publish(posting.job_id, posting.board_id, status, detail=detail)

    def _fail(self, posting: BoardPosting, kind: ErrorKind, message: str) -> None:
        if posting.is_terminal:
            return
        posting.fail(kind, message)
        self.publisher.publish(
            posting.job_id,
            posting.board_id,
            posting.status,
            error_kind=kind,
            error_message=message,
        )
        logger.warning(f"[{posting.board_id}] failed ({kind.value}): {message}")

    async def _pace(self) -> None:
        """Human-like pause between form actions."""
        low, high = self.pacing
        if high > 0:
            await asyncio.sleep(random.uniform(low, max(low, high)))

    async def _screenshot(self, page: Page, job: Job, board: Board) -> None:
        if self.screenshot_dir is None:
            return
        path = self.screenshot_dir / f"{job.id[:8]}_{board.id}_{datetime.now():%Y%m%d_%H%M%S}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
            logger.info(f"[{board.id}] screenshot saved: {path}")
        except (PlaywrightError, OSError) as e:
            logger.debug(f"[{board.id}] screenshot failed: {e}")
