"""Declarative base and the exact-decimal column type."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from chain_indexer.ledger.amount import to_amount, to_str


class DecimalText(TypeDecorator[Decimal]):
    """Store ``Decimal`` values as their exact decimal string.

    SQLite has no exact numeric storage, so amounts round-trip through text
    on every backend.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        return to_str(value)

    def process_result_value(self, value: Any, dialect: Any) -> Decimal | None:
        if value is None:
            return None
        return to_amount(value)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all index models."""

    type_annotation_map = {  # noqa: RUF012
        dict[str, Any]: JSON,
        Decimal: DecimalText(),
    }
