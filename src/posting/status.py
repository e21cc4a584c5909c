"""Status Publisher: non-blocking, ordered delivery of posting events."""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from src.constants import HTTP_SERVER_ERROR_MIN
from src.models import StatusEvent

logger = logging.getLogger(__name__)


class StatusSink(ABC):
    """Receiver of status events."""

    @abstractmethod
    async def send(self, event: StatusEvent) -> None:
        pass

    async def close(self) -> None:
        pass


class LoggingSink(StatusSink):
    """Write every event to the log."""

    async def send(self, event: StatusEvent) -> None:
        target = event.board_id or "job"
        message = f"[{event.job_id[:8]}/{target}] {event.status}"
        if event.external_url:
            message += f" -> {event.external_url}"
        if event.error_kind:
            message += f" ({event.error_kind.value}: {event.error_message})"
        elif event.detail:
            message += f" ({event.detail})"
        logger.info(message)


class MemorySink(StatusSink):
    """Keep events in memory (tests, CLI summary)."""

    def __init__(self):
        self.events: list[StatusEvent] = []

    async def send(self, event: StatusEvent) -> None:
        self.events.append(event)

    def for_board(self, job_id: str, board_id: Optional[str]) -> list[StatusEvent]:
        return [e for e in self.events if e.job_id == job_id and e.board_id == board_id]

    def statuses(self, job_id: str, board_id: Optional[str]) -> list[str]:
        return [e.status for e in self.for_board(job_id, board_id)]


class QueueSink(StatusSink):
    """Forward events to an asyncio.Queue owned by a subscriber."""

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue: asyncio.Queue = queue or asyncio.Queue()

    async def send(self, event: StatusEvent) -> None:
        self.queue.put_nowait(event)


def to_wire(event: StatusEvent) -> dict:
    """Outbound event format: {jobId, boardId, status, externalUrl?, errorMessage?, timestamp}."""
    payload = {
        "jobId": event.job_id,
        "boardId": event.board_id,
        "status": event.status,
        "timestamp": event.timestamp.isoformat(),
    }
    if event.external_url:
        payload["externalUrl"] = event.external_url
    if event.error_message:
        payload["errorMessage"] = event.error_message
    if event.error_kind:
        payload["errorKind"] = event.error_kind.value
    if event.detail:
        payload["detail"] = event.detail
    return payload


class WebhookRetryableError(Exception):
    """Transient webhook error that should trigger retry."""
    pass


class WebhookSink(StatusSink):
    """POST every event as JSON to the status channel URL."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(WebhookRetryableError),
        reraise=True,
    )
    async def send(self, event: StatusEvent) -> None:
        try:
            response = await self.client.post(self.url, json=to_wire(event))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= HTTP_SERVER_ERROR_MIN:
                raise WebhookRetryableError(f"HTTP {e.response.status_code}") from e
            raise
        except httpx.TransportError as e:
            raise WebhookRetryableError(f"Transport error: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()


class StatusPublisher:
    """
    Публикация статусов без блокировки вызывающего кода.

    publish() только кладёт событие в очередь. Одна фоновая задача
    доставляет события во все sinks в порядке публикации, поэтому порядок
    событий одной доски совпадает с порядком переходов. Ошибки sinks
    логируются и не доходят до воркеров.

    Usage:
        async with StatusPublisher([LoggingSink()]) as publisher:
            publisher.publish(job.id, board.id, BoardStatus.ANALYZING)
    """

    def __init__(self, sinks: Optional[list[StatusSink]] = None):
        self.sinks: list[StatusSink] = list(sinks) if sinks is not None else [LoggingSink()]
        self._queue: asyncio.Queue[StatusEvent] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def add_sink(self, sink: StatusSink) -> None:
        self.sinks.append(sink)

    def subscribe(self) -> asyncio.Queue:
        """Queue that receives every event published from now on."""
        sink = QueueSink()
        self.add_sink(sink)
        return sink.queue

    def publish(self, job_id: str, board_id: Optional[str], status: str | Enum, **detail) -> StatusEvent:
        """
        Enqueue a status event. Never blocks, never raises on delivery problems.

        Args:
            job_id: Job id
            board_id: Board id (None for job-level events)
            status: BoardStatus / JobStatus or plain string
            **detail: external_url, error_kind, error_message, detail
        """
        status_value = status.value if isinstance(status, Enum) else str(status)
        event = StatusEvent(job_id=job_id, board_id=board_id, status=status_value, **detail)
        self._queue.put_nowait(event)
        self._ensure_started()
        return event

    def _ensure_started(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._deliver())

    async def _deliver(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for sink in self.sinks:
                    try:
                        await sink.send(event)
                    except Exception as e:
                        logger.warning(f"Status sink {type(sink).__name__} failed: {e}")
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        self._ensure_started()

    async def flush(self) -> None:
        """Wait until every published event has been delivered."""
        if self._task is not None and not self._task.done():
            await self._queue.join()

    async def stop(self) -> None:
        """Deliver pending events, then stop the delivery task and close sinks."""
        await self.flush()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for sink in self.sinks:
            await sink.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
