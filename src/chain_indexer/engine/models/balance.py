"""Balance model — running total per address."""

from __future__ import annotations

from decimal import Decimal  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[Decimal]

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from chain_indexer.engine.models.base import Base, DecimalText


class Balance(Base):
    """Sum of the unspent output values paying an address."""

    __tablename__ = "balances"

    address: Mapped[str] = mapped_column(String(128), primary_key=True)
    amount: Mapped[Decimal] = mapped_column(DecimalText(), nullable=False)

    def __repr__(self) -> str:
        return f"<Balance {self.address} amount={self.amount}>"
