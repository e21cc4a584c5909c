"""Read-only board catalog, loaded once per process."""

import json
import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from collections.abc import Mapping
from typing import Iterable, Optional

from pydantic import ValidationError

from src.config import settings
from src.models import Board

logger = logging.getLogger(__name__)


DEFAULT_BOARDS: tuple[Board, ...] = (
    Board(
        id="remoteok",
        name="RemoteOK",
        base_url="https://remoteok.io",
        post_url="https://remoteok.io/jobs/post",
        category="remote",
        pricing="free",
    ),
    Board(
        id="wellfound",
        name="Wellfound (AngelList)",
        base_url="https://wellfound.com",
        post_url="https://wellfound.com/jobs/new",
        login_url="https://wellfound.com/login",
        requires_auth=True,
        category="startup",
        pricing="paid",
    ),
    Board(
        id="weworkremotely",
        name="We Work Remotely",
        base_url="https://weworkremotely.com",
        post_url="https://weworkremotely.com/remote-jobs/new",
        category="remote",
        pricing="paid",
    ),
    Board(
        id="ycombinator",
        name="Y Combinator Work List",
        base_url="https://www.worklist.fyi",
        post_url="https://www.worklist.fyi/jobs/new",
        requires_auth=True,
        category="startup",
        pricing="free",
    ),
    Board(
        id="startupjobs",
        name="Startup Jobs",
        base_url="https://startup.jobs",
        post_url="https://startup.jobs/post-a-job",
        category="startup",
        pricing="paid",
    ),
    Board(
        id="flexjobs",
        name="FlexJobs",
        base_url="https://www.flexjobs.com",
        post_url="https://www.flexjobs.com/employers/post-job",
        login_url="https://www.flexjobs.com/login",
        requires_auth=True,
        category="flexible",
        pricing="paid",
    ),
    Board(
        id="remote_co",
        name="Remote.co",
        base_url="https://remote.co",
        post_url="https://remote.co/submit-job",
        category="remote",
        pricing="paid",
    ),
    Board(
        id="nodesk",
        name="NoDesk",
        base_url="https://nodesk.co",
        post_url="https://nodesk.co/remote-jobs/post",
        category="remote",
        pricing="paid",
    ),
)

BOARD_CATEGORIES = {
    "remote": "Remote Work",
    "startup": "Startup Jobs",
    "flexible": "Flexible Work",
}


class BoardCatalog(Mapping[str, Board]):
    """Immutable mapping board id -> Board."""

    def __init__(self, boards: Iterable[Board]):
        by_id: dict[str, Board] = {}
        for board in boards:
            if board.id in by_id:
                raise ValueError(f"Duplicate board id in catalog: {board.id}")
            by_id[board.id] = board
        self._boards = MappingProxyType(by_id)

    def __getitem__(self, board_id: str) -> Board:
        return self._boards[board_id]

    def __iter__(self):
        return iter(self._boards)

    def __len__(self) -> int:
        return len(self._boards)

    def enabled(self) -> list[Board]:
        return [b for b in self._boards.values() if b.enabled]

    def by_category(self, category: str) -> list[Board]:
        return [b for b in self._boards.values() if b.category == category]


def load_catalog(path: Optional[str | Path] = None) -> BoardCatalog:
    """
    Загрузить каталог досок из JSON файла или встроенный по умолчанию.

    Формат файла: список объектов Board
    (``[{"id": ..., "name": ..., "base_url": ..., "post_url": ...}, ...]``)
    или ``{"boards": [...]}``.

    Raises:
        ValueError: файл не читается или содержит некорректные записи
    """
    if not path:
        return BoardCatalog(DEFAULT_BOARDS)

    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read board catalog {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("boards", [])
    try:
        boards = [Board.model_validate(item) for item in data]
    except ValidationError as e:
        raise ValueError(f"Invalid board entry in {path}: {e}") from e

    logger.info(f"Loaded {len(boards)} boards from {path}")
    return BoardCatalog(boards)


@lru_cache(maxsize=1)
def get_catalog() -> BoardCatalog:
    """Process-wide catalog (settings.boards_file or built-in defaults)."""
    return load_catalog(settings.boards_file or None)
