from __future__ import annotations
import re

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import normalize_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

ADJUSTMENT_TYPES = ("add", "remove")
PAYMENT_METHODS = ("cash", "card", "mobile")
DISCOUNT_TYPES = ("percentage", "fixed")

_CARD_LAST_FOUR = re.compile(r"^[0-9]{4}$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set
    - required_on_create: fields required when a full record is supplied
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "price_cents", "cost_price_cents",
        "category", "category_id", "stock_quantity", "barcode", "image_url",
        "supplier", "bulk_prices",
    },
    required_on_create={"sku", "name", "price_cents"},
)

# update() is a full replace, so the stock level must be restated explicitly
PRODUCT_REPLACE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_POLICY.writable_fields,
    required_on_create={"sku", "name", "price_cents", "stock_quantity"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "parent_id", "description"},
    required_on_create={"name"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        try:
            dt = normalize_datetime(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # JSON and anything else: leave as-is, rule functions check the shape
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming record against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable and k in required:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_price(field: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def normalize_bulk_prices(tiers) -> list[dict]:
    """
    Bulk price tiers: list of {"quantity": threshold, "price_cents": price}.

    Returned sorted ascending by threshold. Thresholds must be unique and > 0.
    """
    if tiers is None:
        return []
    if not isinstance(tiers, (list, tuple)):
        raise ValidationError("bulk_prices must be a list")

    cleaned = []
    seen = set()
    for tier in tiers:
        if not isinstance(tier, dict):
            raise ValidationError("bulk_prices entries must be objects")
        if "quantity" not in tier or "price_cents" not in tier:
            raise ValidationError("bulk_prices entries need quantity and price_cents")
        qty = _coerce_int("bulk_prices.quantity", tier["quantity"])
        price = _coerce_int("bulk_prices.price_cents", tier["price_cents"])
        if qty <= 0:
            raise ValidationError("bulk_prices.quantity must be > 0")
        _check_price("bulk_prices.price_cents", price)
        if qty in seen:
            raise ValidationError(f"duplicate bulk price threshold: {qty}")
        seen.add(qty)
        cleaned.append({"quantity": qty, "price_cents": price})

    cleaned.sort(key=lambda t: t["quantity"])
    return cleaned


def normalize_promotion(promotion) -> dict:
    """
    Map an optional promotion object onto the four promotion columns.

    None clears the promotion. Otherwise start, end, discount_type and
    discount_value are all required.
    """
    cleared = {
        "promotion_start": None,
        "promotion_end": None,
        "promotion_discount_type": None,
        "promotion_discount_value": None,
    }
    if promotion is None:
        return cleared
    if not isinstance(promotion, dict):
        raise ValidationError("promotion must be an object")

    missing = [k for k in ("start", "end", "discount_type", "discount_value") if promotion.get(k) is None]
    if missing:
        raise ValidationError(f"promotion missing fields: {', '.join(missing)}")

    try:
        start = normalize_datetime(promotion["start"])
        end = normalize_datetime(promotion["end"])
    except ValueError:
        raise ValidationError("promotion dates must be ISO-8601 datetimes")
    if start > end:
        raise ValidationError("promotion start must be on or before end")

    discount_type = promotion["discount_type"]
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"promotion discount_type must be one of {', '.join(DISCOUNT_TYPES)}")

    value = _coerce_int("promotion.discount_value", promotion["discount_value"])
    if value < 0:
        raise ValidationError("promotion discount_value must be >= 0")
    if discount_type == "percentage" and value > 100:
        raise ValidationError("percentage discount cannot exceed 100")

    return {
        "promotion_start": start,
        "promotion_end": end,
        "promotion_discount_type": discount_type,
        "promotion_discount_value": value,
    }


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    _check_price("price_cents", patch.get("price_cents"))
    _check_price("cost_price_cents", patch.get("cost_price_cents"))

    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        raise ValidationError("stock_quantity must be >= 0")

    if "bulk_prices" in patch:
        patch["bulk_prices"] = normalize_bulk_prices(patch["bulk_prices"])

    if patch.get("barcode") == "":
        patch["barcode"] = None


def validate_adjustment(quantity, reason, adjustment_type) -> tuple[int, str, str]:
    """Adjustments take an unsigned magnitude plus a direction."""
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError("adjustment_type must be 'add' or 'remove'")

    qty = _coerce_int("quantity", quantity)
    if qty <= 0:
        raise ValidationError("quantity must be > 0")

    if reason is None or not str(reason).strip():
        raise ValidationError("reason is required")
    reason = str(reason).strip()
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    return qty, reason, adjustment_type


def validate_cart_items(items) -> list[dict]:
    """
    Normalize checkout lines to {product_id, quantity, unit_price_cents}.

    unit_price_cents may be None, in which case the checkout engine prices
    the line itself.
    """
    if not items:
        raise ValidationError("Cannot check out an empty cart")

    cleaned = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("cart items must be objects")
        if item.get("product_id") is None:
            raise ValidationError("product_id is required")
        product_id = _coerce_int("product_id", item["product_id"])
        quantity = _coerce_int("quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")

        unit_price = item.get("unit_price_cents")
        if unit_price is not None:
            unit_price = _coerce_int("unit_price_cents", unit_price)
            _check_price("unit_price_cents", unit_price)

        cleaned.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
        })
    return cleaned


def validate_payment(payment, total_cents: int | None) -> dict:
    """
    Check method-specific payment fields and map them onto Transaction columns.

    total_cents=None checks the fields only (the cart total is not known yet).

    - cash: amount_cents >= total; change is computed
    - card: card_last_four must be exactly four digits
    - mobile: mobile_reference is required
    """
    if not isinstance(payment, dict):
        raise ValidationError("payment details are required")

    method = payment.get("method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment method must be one of {', '.join(PAYMENT_METHODS)}")

    columns = {
        "payment_method": method,
        "payment_amount_cents": total_cents,
        "change_cents": None,
        "card_last_four": None,
        "mobile_reference": None,
    }

    if method == "cash":
        if payment.get("amount_cents") is None:
            raise ValidationError("Invalid cash amount")
        amount = _coerce_int("amount_cents", payment["amount_cents"])
        if amount <= 0 or (total_cents is not None and amount < total_cents):
            raise ValidationError("Invalid cash amount")
        columns["payment_amount_cents"] = amount
        if total_cents is not None:
            columns["change_cents"] = amount - total_cents

    elif method == "card":
        digits = str(payment.get("card_last_four") or "").strip()
        if not _CARD_LAST_FOUR.match(digits):
            raise ValidationError("Invalid card details")
        columns["card_last_four"] = digits

    else:
        reference = str(payment.get("mobile_reference") or "").strip()
        if not reference:
            raise ValidationError("Mobile payment reference is required")
        if len(reference) > 128:
            raise ValidationError("mobile_reference exceeds max length 128")
        columns["mobile_reference"] = reference

    return columns
