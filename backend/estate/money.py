"""
Money helpers.

Amounts are stored as integer cents. Clients send and receive decimal
amounts with two places. Rounding is ROUND_HALF_UP on Decimal, which rounds
ties away from zero, and happens only when a value crosses the API boundary.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
HUNDRED = Decimal(100)


def parse_amount(value: Any) -> Decimal:
    """Parse a client amount (int, float or numeric string) into a Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValueError("must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            raise ValueError("must be a number")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError("must be a number")
    if not amount.is_finite():
        raise ValueError("must be a finite number")
    return amount


def round2(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Any) -> int:
    return int(round2(parse_amount(value)) * HUNDRED)


def from_cents(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float(Decimal(cents) / HUNDRED)


def percentage(part_cents: int, whole_cents: int) -> float:
    """part / whole * 100 rounded to 2 places; 0 when whole is 0."""
    if not whole_cents:
        return 0.0
    return float(round2(Decimal(part_cents) / Decimal(whole_cents) * HUNDRED))


def share_cents(amount_cents: int, share_bps: int) -> Decimal:
    """Unrounded share of an amount; share_bps is basis points (10000 = 100%)."""
    return Decimal(amount_cents) * Decimal(share_bps) / Decimal(10000)


def cents_decimal_to_amount(cents: Decimal) -> float:
    """Round an unrounded cents figure to an output amount."""
    return float(round2(cents / HUNDRED))


def cents_to_decimal(cents: int) -> Decimal:
    """Exact decimal amount for cents, for feeding stored values back into services."""
    return Decimal(cents) / HUNDRED
