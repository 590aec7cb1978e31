"""Vout model — every transaction output ever indexed and its spender."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[Decimal]

from sqlalchemy import JSON, BigInteger, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chain_indexer.engine.models.base import Base, DecimalText


@dataclass(frozen=True)
class SpentBy:
    """The input that consumed an output."""

    txid: str
    vin_index: int


def vout_id(txid: str, vout_index: int) -> str:
    """Derived document id of an output, stable across retried syncs."""
    return f"{txid}:{vout_index}"


class Vout(Base):
    """A transaction output.

    ``used_txid`` / ``used_vin_index`` are both NULL while the output is
    unspent and are set together when an input spends it.
    """

    __tablename__ = "vouts"
    __table_args__ = (
        Index("ix_vouts_origin", "txid_belong_to", "vout_index"),
        Index("ix_vouts_used", "txid_belong_to", "used_txid", "used_vin_index"),
    )

    id: Mapped[str] = mapped_column(String(80), primary_key=True, comment="txid:n")
    txid_belong_to: Mapped[str] = mapped_column(String(64), nullable=False)
    vout_index: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[Decimal] = mapped_column(DecimalText(), nullable=False)
    addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    coinbase: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    used_txid: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    used_vin_index: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)

    @property
    def spent_by(self) -> SpentBy | None:
        if self.used_txid is None:
            return None
        return SpentBy(txid=self.used_txid, vin_index=self.used_vin_index or 0)

    @property
    def is_spent(self) -> bool:
        """Check if this output has been spent."""
        return self.used_txid is not None

    def __repr__(self) -> str:
        return f"<Vout {self.txid_belong_to[:16]}:{self.vout_index} value={self.value}>"
