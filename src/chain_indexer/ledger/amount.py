"""Exact fixed-point arithmetic for monetary amounts.

Balances are the result of long chains of additions and subtractions, so
every amount entering or leaving the indexes passes through ``Decimal``.
Floats are converted through their shortest ``repr`` so ``0.1`` becomes
``Decimal("0.1")`` rather than its binary expansion.
"""

from __future__ import annotations

import enum
from decimal import Decimal, InvalidOperation

from chain_indexer.errors.definitions import InvalidDirectionError

ZERO = Decimal(0)

AmountLike = Decimal | int | float | str


class Direction(enum.StrEnum):
    """Balance update direction."""

    CREDIT = "credit"
    DEBIT = "debit"

    @classmethod
    def parse(cls, value: object) -> Direction:
        """Coerce *value* to a ``Direction``.

        Raises:
            InvalidDirectionError: If *value* is neither credit nor debit.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidDirectionError(value) from None


def to_amount(value: AmountLike) -> Decimal:
    """Convert *value* to an exact ``Decimal``.

    Raises:
        ValueError: If *value* is not a finite number.
    """
    if isinstance(value, bool):
        msg = f"not an amount: {value!r}"
        raise ValueError(msg)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as exc:
            msg = f"not an amount: {value!r}"
            raise ValueError(msg) from exc
    if not result.is_finite():
        msg = f"not a finite amount: {value!r}"
        raise ValueError(msg)
    return result


def add(a: AmountLike, b: AmountLike) -> Decimal:
    """Return ``a + b`` exactly."""
    return to_amount(a) + to_amount(b)


def sub(a: AmountLike, b: AmountLike) -> Decimal:
    """Return ``a - b`` exactly."""
    return to_amount(a) - to_amount(b)


def apply(amount: AmountLike, direction: Direction | str, delta: AmountLike) -> Decimal:
    """Credit or debit *delta* against *amount*.

    Raises:
        InvalidDirectionError: If *direction* is neither credit nor debit.
    """
    if Direction.parse(direction) is Direction.CREDIT:
        return add(amount, delta)
    return sub(amount, delta)


def total(values: list[AmountLike]) -> Decimal:
    """Sum *values* exactly."""
    result = ZERO
    for value in values:
        result = add(result, value)
    return result


def to_str(amount: AmountLike) -> str:
    """Serialize *amount* as a plain decimal string (no exponent)."""
    return format(to_amount(amount), "f")
