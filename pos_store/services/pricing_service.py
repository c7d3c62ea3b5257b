# Overview: Unit price resolution from bulk price tiers and promotions.

from __future__ import annotations

from datetime import datetime

from ..models import Product
from ..time_utils import normalize_datetime, utcnow


def _field(product, name: str):
    if isinstance(product, dict):
        return product.get(name)
    return getattr(product, name)


def bulk_price_cents(product, quantity: int) -> int:
    """List price, or the price of the largest tier whose threshold <= quantity."""
    price = _field(product, "price_cents") or 0
    best_threshold = 0
    for tier in _field(product, "bulk_prices") or []:
        threshold = tier["quantity"]
        if threshold <= quantity and threshold > best_threshold:
            best_threshold = threshold
            price = tier["price_cents"]
    return price


def active_promotion(product, on: datetime | None = None) -> dict | None:
    """Promotion covering `on` (inclusive on both ends), or None."""
    if isinstance(product, Product):
        start, end = product.promotion_start, product.promotion_end
        discount_type = product.promotion_discount_type
        discount_value = product.promotion_discount_value
    else:
        promotion = product.get("promotion")
        if not promotion:
            return None
        start = normalize_datetime(promotion["start"])
        end = normalize_datetime(promotion["end"])
        discount_type = promotion["discount_type"]
        discount_value = promotion["discount_value"]

    if discount_type is None or start is None or end is None:
        return None

    on = normalize_datetime(on) if on is not None else utcnow()
    if not (start <= on <= end):
        return None
    return {"discount_type": discount_type, "discount_value": discount_value}


def apply_discount(price_cents: int, discount_type: str, discount_value: int) -> int:
    if discount_type == "percentage":
        # nearest-cent rounding (half-up)
        discounted = price_cents * (100 - discount_value)
        return (discounted + 50) // 100
    return max(price_cents - discount_value, 0)


def effective_unit_price_cents(product, quantity: int = 1, on: datetime | None = None) -> int:
    """
    Price one unit of `product` when buying `quantity` units at time `on`.

    Bulk tier first, then the active promotion on top of it.
    """
    price = bulk_price_cents(product, quantity)
    promotion = active_promotion(product, on)
    if promotion is not None:
        price = apply_discount(price, promotion["discount_type"], promotion["discount_value"])
    return price
