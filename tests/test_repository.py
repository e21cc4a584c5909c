"""Tests for src/database - job store on aiosqlite.

Run after changes to: src/database/*.py
"""

from datetime import datetime

import aiosqlite
import pytest
import pytest_asyncio

from src.database import PostingRepository
from src.database.connection import init_database
from src.models import BoardResult, ErrorKind, JobResult, JobStatus, UsageRecord

STARTED = datetime(2026, 3, 1, 12, 0, 0)
COMPLETED = datetime(2026, 3, 1, 12, 0, 42)


@pytest_asyncio.fixture
async def repo(tmp_path):
    async with PostingRepository(tmp_path / "data" / "postings.db") as repository:
        yield repository


def make_result(job_id: str) -> JobResult:
    return JobResult(
        job_id=job_id,
        status=JobStatus.SUCCEEDED,
        overall_success=True,
        results=[
            BoardResult(
                board_id="alpha",
                board_name="Alpha",
                success=True,
                external_url="https://a/1",
                attempts=1,
                cost_usd=0.01,
                started_at=STARTED,
                completed_at=COMPLETED,
            ),
            BoardResult(
                board_id="beta",
                board_name="Beta",
                success=False,
                error_kind=ErrorKind.BUDGET_EXCEEDED,
                error_message="LLM budget exhausted",
            ),
        ],
        total_cost=0.01,
    )


class TestPostingRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self, repo, job):
        job.status = JobStatus.SUCCEEDED
        job.total_cost = 0.01
        await repo.save_job(job)
        await repo.save_result(
            make_result(job.id),
            [UsageRecord(provider="stub", model="m", cost_usd=0.01, job_id=job.id, board_id="alpha")],
        )

        stored = await repo.get_job(job.id)

        assert stored.title == job.title
        assert stored.status == "succeeded"
        assert stored.completed_at is not None
        assert stored.successful_postings == 1
        beta = next(p for p in stored.postings if p.board_id == "beta")
        assert beta.error_kind == "budget_exceeded"
        alpha = next(p for p in stored.postings if p.board_id == "alpha")
        assert (alpha.started_at, alpha.completed_at) == (STARTED, COMPLETED)
        assert beta.started_at is None
        assert await repo.get_usage_total(job.id) == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_one_posting_per_board(self, repo, job):
        await repo.save_job(job)
        await repo.save_result(make_result(job.id))
        await repo.save_result(make_result(job.id))

        assert len(await repo.get_board_postings(job.id)) == 2

    @pytest.mark.asyncio
    async def test_save_job_updates_status(self, repo, job):
        await repo.save_job(job)
        assert (await repo.get_job(job.id)).completed_at is None

        job.status = JobStatus.FAILED
        await repo.save_job(job)
        stored = await repo.get_job(job.id)
        assert stored.status == "failed"
        assert stored.completed_at is not None

    @pytest.mark.asyncio
    async def test_recent_jobs_and_missing_job(self, repo, job):
        await repo.save_job(job)
        recent = await repo.get_recent_jobs(limit=5)

        assert [j.id for j in recent] == [job.id]
        assert await repo.get_job("missing") is None
        assert await repo.get_usage_total() == 0.0

    @pytest.mark.asyncio
    async def test_credentials_never_stored(self, repo, job, tmp_path):
        await repo.save_job(job)
        await repo.close()

        raw = (tmp_path / "data" / "postings.db").read_bytes()
        assert b"password" not in raw

    @pytest.mark.asyncio
    async def test_old_database_gets_timestamp_columns(self, tmp_path):
        db_path = tmp_path / "old.db"
        async with aiosqlite.connect(db_path) as db:
            await db.execute(
                "CREATE TABLE board_postings (job_id TEXT NOT NULL, board_id TEXT NOT NULL, status TEXT NOT NULL, "
                "PRIMARY KEY (job_id, board_id))"
            )
            await db.commit()

        await init_database(db_path)

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("PRAGMA table_info(board_postings)")
            columns = [col[1] for col in await cursor.fetchall()]
        assert "started_at" in columns
        assert "completed_at" in columns
