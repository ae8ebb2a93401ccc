# Overview: Snapshot line pricing and order financials in whole currency units.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

BPS_DENOMINATOR = 10_000


def apply_rate(amount: int, rate_bps: int) -> int:
    """amount x rate, rounded half-up to the nearest whole unit."""
    return (amount * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def price_line(base_price: int, price_modifiers: Iterable[int] = ()) -> int:
    """Unit price captured on the order item: product price plus selected modifiers."""
    price = base_price + sum(price_modifiers)
    if price < 0:
        raise ValueError("Line price cannot be negative")
    return price


@dataclass(frozen=True)
class Financials:
    subtotal: int
    discount: int
    tax: int
    service_charge: int
    total: int


def compute_financials(
    lines: Iterable[tuple[int, int]],
    *,
    tax_rate_bps: int,
    service_charge_rate_bps: int,
    apply_service_charge: bool,
) -> Financials:
    """
    lines are (price_at_moment, qty) pairs.

    Discount is always 0 at creation; total = subtotal - discount + tax + service_charge.
    """
    subtotal = sum(price * qty for price, qty in lines)
    tax = apply_rate(subtotal, tax_rate_bps)
    service_charge = apply_rate(subtotal, service_charge_rate_bps) if apply_service_charge else 0
    discount = 0
    return Financials(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        service_charge=service_charge,
        total=subtotal - discount + tax + service_charge,
    )
