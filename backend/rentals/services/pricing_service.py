# Overview: Per-day rental price calculation.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Equipment
from ..validation import MAX_PRICE_CENTS


@dataclass(frozen=True)
class PriceQuote:
    price_per_day_cents: int
    total_price_cents: int


def calculate_rental_price(equipment: Equipment, days: int, quantity: int = 1) -> PriceQuote:
    """
    Price `quantity` units of `equipment` for `days` rental days.

    Only the plain daily rate is supported; rental-period packages are not.
    """
    if days <= 0:
        raise ValueError("days must be > 0")
    if quantity <= 0:
        raise ValueError("quantity must be > 0")
    per_day = equipment.price_per_day_cents or 0
    return PriceQuote(
        price_per_day_cents=per_day,
        total_price_cents=per_day * days * quantity,
    )


def line_total(unit_price_cents: int, quantity: int, days: int) -> int:
    """Total for a line with a caller-supplied per-day unit price."""
    return unit_price_cents * quantity * days


def ensure_within_limit(total_cents: int, label: str = "total_price_cents") -> int:
    """Reject computed totals the price columns cannot hold."""
    if total_cents > MAX_PRICE_CENTS:
        raise ValueError(f"{label} {total_cents} exceeds the maximum of {MAX_PRICE_CENTS}")
    return total_cents
