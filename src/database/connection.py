"""Database connection and initialization."""

import logging
from pathlib import Path

import aiosqlite

from src.config import settings

logger = logging.getLogger(__name__)


def get_db_path() -> Path:
    """Get database file path (settings.db_path, env DB_PATH)."""
    return Path(settings.db_path)


async def init_database(db_path: Path | None = None) -> None:
    """Initialize database with schema.

    Creates tables if they don't exist.

    Args:
        db_path: Path to database file. If None, uses default.
    """
    if db_path is None:
        db_path = get_db_path()

    # Ensure data directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug(f"Initializing database at {db_path}")

    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        await db.commit()

        # Run migrations for existing databases
        await _run_migrations(db)

    logger.debug("Database initialized successfully")


async def _run_migrations(db) -> None:
    """Run database migrations for existing databases."""
    # Migration: board posting timestamps
    cursor = await db.execute("PRAGMA table_info(board_postings)")
    columns = await cursor.fetchall()
    column_names = [col[1] for col in columns]

    for column in ("started_at", "completed_at"):
        if column not in column_names:
            logger.debug(f"Adding '{column}' column to board_postings table")
            await db.execute(f"ALTER TABLE board_postings ADD COLUMN {column} TIMESTAMP")
    await db.commit()


SCHEMA = """
-- Posting runs (one row per job)
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    company TEXT,
    location TEXT,
    contact_email TEXT,
    description TEXT,
    salary_min INTEGER,
    salary_max INTEGER,
    salary_currency TEXT,
    employment_type TEXT,
    status TEXT NOT NULL,
    total_cost REAL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    completed_at TIMESTAMP
);

-- Exactly one posting per (job, board)
CREATE TABLE IF NOT EXISTS board_postings (
    job_id TEXT NOT NULL,
    board_id TEXT NOT NULL,
    board_name TEXT,
    status TEXT NOT NULL,
    external_url TEXT,
    error_kind TEXT,
    error_message TEXT,
    attempts INTEGER DEFAULT 0,
    cost_usd REAL DEFAULT 0,
    duration_seconds REAL DEFAULT 0,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY (job_id, board_id),
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

-- LLM calls (append-only)
CREATE TABLE IF NOT EXISTS usage_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT,
    board_id TEXT,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    input_tokens INTEGER DEFAULT 0,
    output_tokens INTEGER DEFAULT 0,
    cost_usd REAL DEFAULT 0,
    latency_seconds REAL DEFAULT 0,
    success BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at);
CREATE INDEX IF NOT EXISTS idx_board_postings_status ON board_postings(status);
CREATE INDEX IF NOT EXISTS idx_usage_records_job_id ON usage_records(job_id);
"""
