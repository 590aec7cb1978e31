"""Tx model — denormalized per-transaction record."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from chain_indexer.engine.models.base import Base
from chain_indexer.ledger.amount import to_str


class Tx(Base):
    """An indexed transaction with its fee and address/value summaries.

    ``vins`` and ``vouts`` are lists of ``{"address": str, "value": str}``.
    ``fee`` is kept as an exact decimal string.
    """

    __tablename__ = "txs"

    txid: Mapped[str] = mapped_column(String(64), primary_key=True)
    block_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    fee: Mapped[str] = mapped_column(String(64), nullable=False, default="0")
    time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    vins: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    vouts: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<Tx {self.txid[:16]} fee={self.fee}>"


@dataclass(frozen=True)
class AddressValue:
    """One entry of a transaction's input or output summary."""

    address: str
    value: Decimal

    def to_document(self) -> dict[str, Any]:
        return {"address": self.address, "value": to_str(self.value)}
