"""JSON-RPC access to a full node."""

from chain_indexer.chain.rpc.client import RPCClient

__all__ = ["RPCClient"]
