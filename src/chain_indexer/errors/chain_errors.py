"""Blockchain node errors."""

from __future__ import annotations

from chain_indexer.errors.indexer_errors import IndexerError


class RPCError(IndexerError):
    """Error returned by the node's JSON-RPC interface."""

    def __init__(self, message: str, *, rpc_code: int | None = None) -> None:
        super().__init__(message, code="rpc-error")
        self.rpc_code = rpc_code
