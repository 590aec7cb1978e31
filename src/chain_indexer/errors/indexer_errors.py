"""IndexerError — base exception class for all chain-indexer errors."""

from __future__ import annotations


class IndexerError(Exception):
    """Base error for all indexer operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
    """

    def __init__(self, message: str, *, code: str = "indexer-error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code
