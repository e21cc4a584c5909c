"""Database models (dataclasses)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class StoredPosting:
    """Board posting row."""

    job_id: str
    board_id: str
    status: str
    board_name: Optional[str] = None
    external_url: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0
    cost_usd: float = 0.0
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class StoredJob:
    """Posting run row with its board postings."""

    id: str
    title: str
    status: str
    company: Optional[str] = None
    location: Optional[str] = None
    total_cost: float = 0.0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    postings: list[StoredPosting] = field(default_factory=list)

    @property
    def successful_postings(self) -> int:
        return sum(1 for p in self.postings if p.status == "succeeded")
