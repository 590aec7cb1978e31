"""Index services — one per collection."""

from chain_indexer.engine.services.balance_service import BalanceService
from chain_indexer.engine.services.block_service import BlockService
from chain_indexer.engine.services.tx_service import TxService
from chain_indexer.engine.services.vout_service import VoutService

__all__ = ["BalanceService", "BlockService", "TxService", "VoutService"]
