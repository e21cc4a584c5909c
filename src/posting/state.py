"""Board posting state machine and job status aggregation."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from src.models import BoardResult, BoardStatus, ErrorKind, JobStatus

# pending -> analyzing -> filling -> submitting -> succeeded | failed
# analyzing -> analyzing on retry; any non-terminal state may fail
ALLOWED_TRANSITIONS: dict[BoardStatus, frozenset[BoardStatus]] = {
    BoardStatus.PENDING: frozenset({BoardStatus.ANALYZING, BoardStatus.FAILED}),
    BoardStatus.ANALYZING: frozenset({BoardStatus.ANALYZING, BoardStatus.FILLING, BoardStatus.FAILED}),
    BoardStatus.FILLING: frozenset({BoardStatus.SUBMITTING, BoardStatus.FAILED}),
    BoardStatus.SUBMITTING: frozenset({BoardStatus.SUCCEEDED, BoardStatus.FAILED}),
    BoardStatus.SUCCEEDED: frozenset(),
    BoardStatus.FAILED: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised on a status change outside the state machine."""

    def __init__(self, board_id: str, current: BoardStatus, target: BoardStatus):
        super().__init__(f"[{board_id}] invalid transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


@dataclass
class BoardPosting:
    """Attempt to publish one job on one board. Owned by its worker while active."""

    job_id: str
    board_id: str
    board_name: str
    status: BoardStatus = BoardStatus.PENDING
    external_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    history: list[BoardStatus] = field(default_factory=list)
    # Called after every status change
    on_change: Optional[Callable[["BoardPosting"], None]] = field(default=None, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _move(self, target: BoardStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.board_id, self.status, target)
        self.history.append(self.status)
        self.status = target
        if self.started_at is None:
            self.started_at = datetime.now()
        if target.is_terminal:
            self.completed_at = datetime.now()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def advance(self, target: BoardStatus) -> None:
        """Move to a non-terminal state."""
        if target.is_terminal:
            raise InvalidTransitionError(self.board_id, self.status, target)
        self._move(target)
        if target == BoardStatus.ANALYZING:
            self.attempts += 1
        self._notify()

    def succeed(self, external_url: str) -> None:
        self._move(BoardStatus.SUCCEEDED)
        self.external_url = external_url
        self._notify()

    def fail(self, kind: ErrorKind, message: str) -> None:
        self._move(BoardStatus.FAILED)
        self.error_kind = kind
        self.error_message = message
        self._notify()

    def to_result(self, cost_usd: float = 0.0) -> BoardResult:
        duration = 0.0
        if self.started_at and self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()
        return BoardResult(
            board_id=self.board_id,
            board_name=self.board_name,
            success=self.status == BoardStatus.SUCCEEDED,
            external_url=self.external_url,
            error_kind=self.error_kind,
            error_message=self.error_message,
            attempts=self.attempts,
            cost_usd=cost_usd,
            duration_seconds=duration,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


def aggregate_job_status(statuses: Iterable[BoardStatus]) -> JobStatus:
    """
    Job status as a pure function of its board statuses.

    pending while nothing started, posting while any board is non-terminal,
    then succeeded if at least one board succeeded, otherwise failed.
    """
    statuses = list(statuses)
    if not statuses or all(s == BoardStatus.PENDING for s in statuses):
        return JobStatus.PENDING
    if any(not s.is_terminal for s in statuses):
        return JobStatus.POSTING
    if any(s == BoardStatus.SUCCEEDED for s in statuses):
        return JobStatus.SUCCEEDED
    return JobStatus.FAILED
