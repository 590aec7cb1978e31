"""Indexer exception hierarchy."""

from chain_indexer.errors.chain_errors import RPCError
from chain_indexer.errors.definitions import (
    BalanceIntegrityError,
    BlockNotFoundError,
    InvalidDirectionError,
    NotFoundError,
    StoreUnavailableError,
)
from chain_indexer.errors.indexer_errors import IndexerError

__all__ = [
    "BalanceIntegrityError",
    "BlockNotFoundError",
    "IndexerError",
    "InvalidDirectionError",
    "NotFoundError",
    "RPCError",
    "StoreUnavailableError",
]
