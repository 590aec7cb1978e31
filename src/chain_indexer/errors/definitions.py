"""Error taxonomy for the ledger indexes and the sync/rollback engines."""

from __future__ import annotations

from chain_indexer.errors.indexer_errors import IndexerError

# -- Lookups ----------------------------------------------------------------


class NotFoundError(IndexerError):
    """A lookup missed: vout, balance, block or aggregate."""

    def __init__(self, message: str, *, code: str = "not-found") -> None:
        super().__init__(message, code=code)


class BlockNotFoundError(NotFoundError):
    """The block at a height is absent from the archive or the node."""

    def __init__(self, height: int) -> None:
        super().__init__(f"block {height} not found", code="block-not-found")
        self.height = height


# -- Arguments --------------------------------------------------------------


class InvalidDirectionError(IndexerError):
    """A balance update was requested with an unknown direction."""

    def __init__(self, direction: object) -> None:
        super().__init__(
            f"invalid balance direction {direction!r}, expected 'credit' or 'debit'",
            code="invalid-direction",
        )
        self.direction = direction


# -- Store ------------------------------------------------------------------


class StoreUnavailableError(IndexerError):
    """A datastore call failed.

    Carries enough context (collection, id, operation) for manual remediation.
    """

    def __init__(self, collection: str, id_: object, operation: str) -> None:
        super().__init__(
            f"{operation} on {collection}/{id_} failed",
            code="store-unavailable",
        )
        self.collection = collection
        self.id = id_
        self.operation = operation


class BalanceIntegrityError(IndexerError):
    """A balance write failed during sync; the process must stop."""

    def __init__(self, address: str, txid: str) -> None:
        super().__init__(
            f"balance update for {address} failed while syncing tx {txid}",
            code="balance-integrity",
        )
        self.address = address
        self.txid = txid
