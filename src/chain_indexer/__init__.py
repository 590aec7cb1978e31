"""chain-indexer — derive a UTXO / balance / transaction ledger from blocks."""

__version__ = "0.1.0"
