"""Typed posting failures."""

from src.models import ErrorKind


class PostingError(Exception):
    """Failure of one board posting with its error kind."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
