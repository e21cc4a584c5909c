"""Tests for src/posting/state.py - board posting state machine.

Run after changes to: src/posting/state.py
"""

import pytest

from src.models import BoardStatus, ErrorKind, JobStatus
from src.posting.state import BoardPosting, InvalidTransitionError, aggregate_job_status


@pytest.fixture
def posting():
    return BoardPosting(job_id="job", board_id="alpha", board_name="Alpha")


class TestBoardPosting:
    def test_happy_path(self, posting):
        posting.advance(BoardStatus.ANALYZING)
        posting.advance(BoardStatus.FILLING)
        posting.advance(BoardStatus.SUBMITTING)
        posting.succeed("https://alpha.example/jobs/42")

        assert posting.status == BoardStatus.SUCCEEDED
        assert posting.history == [
            BoardStatus.PENDING,
            BoardStatus.ANALYZING,
            BoardStatus.FILLING,
            BoardStatus.SUBMITTING,
        ]
        result = posting.to_result(cost_usd=0.02)
        assert result.success is True
        assert result.external_url == "https://alpha.example/jobs/42"
        assert result.cost_usd == 0.02
        assert result.duration_seconds >= 0

    def test_reanalysis_counts_attempts(self, posting):
        posting.advance(BoardStatus.ANALYZING)
        posting.advance(BoardStatus.ANALYZING)
        assert posting.attempts == 2

    def test_cannot_skip_phases(self, posting):
        with pytest.raises(InvalidTransitionError):
            posting.advance(BoardStatus.SUBMITTING)

    def test_cannot_go_back(self, posting):
        posting.advance(BoardStatus.ANALYZING)
        posting.advance(BoardStatus.FILLING)
        with pytest.raises(InvalidTransitionError):
            posting.advance(BoardStatus.ANALYZING)

    def test_advance_rejects_terminal_target(self, posting):
        with pytest.raises(InvalidTransitionError):
            posting.advance(BoardStatus.FAILED)

    def test_succeed_only_after_submit(self, posting):
        posting.advance(BoardStatus.ANALYZING)
        with pytest.raises(InvalidTransitionError):
            posting.succeed("https://x")

    def test_fail_from_pending(self, posting):
        posting.fail(ErrorKind.CANCELLED, "cancelled before start")
        result = posting.to_result()
        assert result.success is False
        assert result.error_kind == ErrorKind.CANCELLED
        assert result.attempts == 0

    def test_terminal_is_final(self, posting):
        posting.fail(ErrorKind.TIMEOUT, "slow")
        with pytest.raises(InvalidTransitionError):
            posting.fail(ErrorKind.CANCELLED, "again")
        assert posting.error_kind == ErrorKind.TIMEOUT

    def test_result_carries_timestamps(self, posting):
        posting.advance(BoardStatus.ANALYZING)
        posting.fail(ErrorKind.TIMEOUT, "slow")

        result = posting.to_result()

        assert result.started_at == posting.started_at
        assert result.completed_at == posting.completed_at
        assert result.started_at <= result.completed_at

    def test_change_callback_sees_final_fields(self, posting):
        seen = []
        posting.on_change = lambda p: seen.append((p.status, p.error_kind))

        posting.advance(BoardStatus.ANALYZING)
        posting.fail(ErrorKind.TIMEOUT, "slow")

        assert seen == [(BoardStatus.ANALYZING, None), (BoardStatus.FAILED, ErrorKind.TIMEOUT)]

    def test_rejected_transition_does_not_notify(self, posting):
        seen = []
        posting.on_change = seen.append

        with pytest.raises(InvalidTransitionError):
            posting.advance(BoardStatus.SUBMITTING)

        assert seen == []


class TestAggregateJobStatus:
    @pytest.mark.parametrize("statuses,expected", [
        ([], JobStatus.PENDING),
        ([BoardStatus.PENDING, BoardStatus.PENDING], JobStatus.PENDING),
        ([BoardStatus.PENDING, BoardStatus.ANALYZING], JobStatus.POSTING),
        ([BoardStatus.SUCCEEDED, BoardStatus.SUBMITTING], JobStatus.POSTING),
        ([BoardStatus.SUCCEEDED, BoardStatus.FAILED], JobStatus.SUCCEEDED),
        ([BoardStatus.FAILED, BoardStatus.FAILED], JobStatus.FAILED),
        ([BoardStatus.FAILED, BoardStatus.PENDING], JobStatus.POSTING),
    ])
    def test_aggregate(self, statuses, expected):
        assert aggregate_job_status(statuses) == expected
