"""Каталог досок объявлений."""

from .catalog import BOARD_CATEGORIES, DEFAULT_BOARDS, BoardCatalog, get_catalog, load_catalog

__all__ = ["BOARD_CATEGORIES", "BoardCatalog", "DEFAULT_BOARDS", "get_catalog", "load_catalog"]
