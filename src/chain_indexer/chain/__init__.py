"""Blockchain data source — node RPC client and block data model."""

from chain_indexer.chain.models import Block, ScriptPubKey, Transaction, Vin, Vout
from chain_indexer.chain.rpc.client import RPCClient
from chain_indexer.chain.source import BlockSource

__all__ = ["Block", "BlockSource", "RPCClient", "ScriptPubKey", "Transaction", "Vin", "Vout"]
