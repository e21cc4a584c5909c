"""Database repository for posting runs."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiosqlite

from src.database.connection import get_db_path, init_database
from src.database.models import StoredJob, StoredPosting
from src.models import Job, JobResult, UsageRecord

logger = logging.getLogger(__name__)


class PostingRepository:
    """Job store: jobs, board postings and LLM usage records."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize repository.

        Args:
            db_path: Path to database file. If None, uses default.
        """
        self.db_path = Path(db_path) if db_path else get_db_path()
        self._initialized = False
        self._connection: Optional[aiosqlite.Connection] = None

    async def _ensure_initialized(self) -> None:
        """Ensure database is initialized."""
        if not self._initialized:
            await init_database(self.db_path)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection.

        Reuses single connection for the lifetime of the repository.
        """
        await self._ensure_initialized()
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    # ==================== Jobs ====================

    async def save_job(self, job: Job) -> None:
        """Insert or update a job row (status and total cost included)."""
        db = await self._get_connection()
        completed_at = None if job.status.value in ("pending", "posting") else datetime.now().isoformat()
        await db.execute(
            """
            INSERT INTO jobs (
                id, title, company, location, contact_email, description,
                salary_min, salary_max, salary_currency, employment_type,
                status, total_cost, created_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                total_cost = excluded.total_cost,
                completed_at = excluded.completed_at
            """,
            (
                job.id,
                job.title,
                job.company,
                job.location,
                job.contact_email,
                job.description,
                job.salary_min,
                job.salary_max,
                job.salary_currency,
                job.employment_type,
                job.status.value,
                job.total_cost,
                job.created_at.isoformat(),
                completed_at,
            ),
        )
        await db.commit()

    async def save_result(self, result: JobResult, usage: Optional[list[UsageRecord]] = None) -> None:
        """Store board postings of a finished run and its usage records.

        Board postings are upserted on (job_id, board_id), so re-saving a
        result never duplicates a posting.
        """
        db = await self._get_connection()
        for board in result.results:
            await db.execute(
                """
                INSERT INTO board_postings (
                    job_id, board_id, board_name, status, external_url,
                    error_kind, error_message, attempts, cost_usd, duration_seconds,
                    started_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(job_id, board_id) DO UPDATE SET
                    status = excluded.status,
                    external_url = excluded.external_url,
                    error_kind = excluded.error_kind,
                    error_message = excluded.error_message,
                    attempts = excluded.attempts,
                    cost_usd = excluded.cost_usd,
                    duration_seconds = excluded.duration_seconds,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at
                """,
                (
                    result.job_id,
                    board.board_id,
                    board.board_name,
                    "succeeded" if board.success else "failed",
                    board.external_url,
                    board.error_kind.value if board.error_kind else None,
                    board.error_message,
                    board.attempts,
                    board.cost_usd,
                    board.duration_seconds,
                    board.started_at.isoformat() if board.started_at else None,
                    board.completed_at.isoformat() if board.completed_at else None,
                ),
            )

        for record in usage or []:
            await db.execute(
                """
                INSERT INTO usage_records (
                    job_id, board_id, provider, model, input_tokens, output_tokens,
                    cost_usd, latency_seconds, success, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.job_id,
                    record.board_id,
                    record.provider,
                    record.model,
                    record.input_tokens,
                    record.output_tokens,
                    record.cost_usd,
                    record.latency_seconds,
                    record.success,
                    record.created_at.isoformat(),
                ),
            )
        await db.commit()
        logger.debug(f"Saved {len(result.results)} postings for job {result.job_id[:8]}")

    async def get_job(self, job_id: str) -> Optional[StoredJob]:
        """Get job with its board postings."""
        db = await self._get_connection()
        cursor = await db.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        job = self._row_to_job(row)
        job.postings = await self.get_board_postings(job_id)
        return job

    async def get_recent_jobs(self, limit: int = 20) -> list[StoredJob]:
        """Most recent posting runs, newest first."""
        db = await self._get_connection()
        cursor = await db.execute(
            "SELECT * FROM jobs ORDER BY created_at DESC LIMIT ?",
            (limit,)
        )
        rows = await cursor.fetchall()
        jobs = [self._row_to_job(row) for row in rows]
        for job in jobs:
            job.postings = await self.get_board_postings(job.id)
        return jobs

    async def get_board_postings(self, job_id: str) -> list[StoredPosting]:
        db = await self._get_connection()
        cursor = await db.execute(
            "SELECT * FROM board_postings WHERE job_id = ? ORDER BY board_id",
            (job_id,)
        )
        rows = await cursor.fetchall()
        return [
            StoredPosting(
                job_id=row["job_id"],
                board_id=row["board_id"],
                board_name=row["board_name"],
                status=row["status"],
                external_url=row["external_url"],
                error_kind=row["error_kind"],
                error_message=row["error_message"],
                attempts=row["attempts"],
                cost_usd=row["cost_usd"],
                duration_seconds=row["duration_seconds"],
                started_at=self._parse_datetime(row["started_at"]),
                completed_at=self._parse_datetime(row["completed_at"]),
            )
            for row in rows
        ]

    # ==================== Usage ====================

    async def get_usage_total(self, job_id: Optional[str] = None) -> float:
        """Total recorded LLM spend (for one job or overall)."""
        db = await self._get_connection()
        if job_id is None:
            cursor = await db.execute("SELECT COALESCE(SUM(cost_usd), 0) FROM usage_records")
        else:
            cursor = await db.execute(
                "SELECT COALESCE(SUM(cost_usd), 0) FROM usage_records WHERE job_id = ?",
                (job_id,)
            )
        row = await cursor.fetchone()
        return float(row[0])

    # ==================== Helpers ====================

    def _parse_datetime(self, value) -> Optional[datetime]:
        """Parse datetime from database value."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None

    def _row_to_job(self, row) -> StoredJob:
        """Convert database row to StoredJob."""
        return StoredJob(
            id=row["id"],
            title=row["title"],
            status=row["status"],
            company=row["company"],
            location=row["location"],
            total_cost=row["total_cost"] or 0.0,
            created_at=self._parse_datetime(row["created_at"]),
            completed_at=self._parse_datetime(row["completed_at"]),
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
