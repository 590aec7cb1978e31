"""Block model — the archive of indexed blocks, keyed by height."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chain_indexer.engine.models.base import Base


class Block(Base):
    """A block as it was indexed.

    The full block document is kept so rollback can re-derive exactly what
    sync applied, even after the node has switched to another chain.
    """

    __tablename__ = "blocks"

    height: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<Block {self.height} {self.hash[:16]}>"
