"""Index data models (SQLAlchemy ORM).

One model per collection: blocks, txs, vouts and balances.
Import :data:`ALL_MODELS` for migration and table creation.
"""

from chain_indexer.engine.models.balance import Balance
from chain_indexer.engine.models.base import Base, DecimalText
from chain_indexer.engine.models.block import Block
from chain_indexer.engine.models.tx import AddressValue, Tx
from chain_indexer.engine.models.vout import SpentBy, Vout, vout_id

ALL_MODELS: list[type[Base]] = [
    Block,
    Tx,
    Vout,
    Balance,
]

__all__ = [
    "ALL_MODELS",
    "AddressValue",
    "Balance",
    "Base",
    "Block",
    "DecimalText",
    "SpentBy",
    "Tx",
    "Vout",
    "vout_id",
]
