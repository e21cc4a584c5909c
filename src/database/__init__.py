"""Database module for posting runs (job store)."""

from src.database.connection import get_db_path, init_database
from src.database.models import StoredJob, StoredPosting
from src.database.repository import PostingRepository

__all__ = [
    "get_db_path",
    "init_database",
    "PostingRepository",
    "StoredJob",
    "StoredPosting",
]
