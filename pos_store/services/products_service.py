# pos_store/services/products_service.py
"""
Products Service

Record store accessors for products plus the product search used by the
sales screen.

- create_product / update_product take a complete record; update is a full
  replace and refreshes updated_at.
- SKU uniqueness is checked up front and backed by the uq_products_sku index;
  either way the caller sees DuplicateKeyError(field="sku").
- The category name on a product is a cache of Category.name, re-derived from
  category_id on every write when category_id is set.
"""
from __future__ import annotations

from ..errors import DuplicateKeyError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Category
from ..validation import (
    PRODUCT_POLICY,
    PRODUCT_REPLACE_POLICY,
    validate_payload,
    enforce_rules_product,
    normalize_promotion,
)
from ..time_utils import utcnow
from .concurrency import unit_of_work

READ_ONLY_FIELDS = {"id", "version_id", "created_at", "updated_at"}

# Values a full replace falls back to for optional fields the caller omitted
PRODUCT_REPLACE_DEFAULTS = {
    "description": None,
    "cost_price_cents": 0,
    "category": "",
    "category_id": None,
    "barcode": None,
    "image_url": None,
    "supplier": None,
    "bulk_prices": [],
}


def _clean_product_payload(payload: dict | None, *, replace: bool) -> dict:
    payload = dict(payload or {})
    for key in READ_ONLY_FIELDS:
        payload.pop(key, None)
    promotion = payload.pop("promotion", None)

    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_REPLACE_POLICY if replace else PRODUCT_POLICY,
        partial=False,
    )
    enforce_rules_product(patch)
    patch.update(normalize_promotion(promotion))
    return patch


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise DuplicateKeyError("sku", sku, entity="product")


def _sync_category_snapshot(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is None:
        if patch.get("category") is None:
            patch["category"] = ""
        return
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("category", category_id)
    patch["category"] = category.name


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def create_product(payload: dict) -> dict:
    """
    Create a product from a complete record.

    Raises:
        ValidationError: malformed or missing fields
        DuplicateKeyError: SKU already in use
        NotFoundError: category_id does not resolve
    """
    patch = _clean_product_payload(payload, replace=False)

    with unit_of_work() as session:
        _ensure_sku_available(patch["sku"])
        _sync_category_snapshot(patch)

        now = utcnow()
        product = Product(created_at=now, updated_at=now)
        product.stock_quantity = 0
        product.cost_price_cents = 0
        product.bulk_prices = []
        for key, value in patch.items():
            setattr(product, key, value)

        session.add(product)
        session.flush()

    return product.to_dict()


def get_all_products() -> list[dict]:
    """All products in storage order (primary key). Callers sort as needed."""
    products = db.session.query(Product).order_by(Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_product_by_id(product_id: int) -> dict | None:
    product = db.session.get(Product, product_id)
    return product.to_dict() if product else None


def get_product_by_sku(sku: str | None) -> dict | None:
    sku = (sku or "").strip()
    if not sku:
        return None
    product = db.session.query(Product).filter(Product.sku == sku).first()
    return product.to_dict() if product else None


def get_product_by_barcode(barcode: str | None) -> dict | None:
    barcode = (barcode or "").strip()
    if not barcode:
        return None
    product = (
        db.session.query(Product)
        .filter(Product.barcode == barcode)
        .order_by(Product.id.asc())
        .first()
    )
    return product.to_dict() if product else None


def get_products_by_category(category: str) -> list[dict]:
    products = (
        db.session.query(Product)
        .filter(Product.category == category)
        .order_by(Product.id.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def update_product(product_id: int, payload: dict) -> dict:
    """
    Replace a product with the supplied complete record.

    Optional fields left out of `payload` are reset to their defaults;
    `stock_quantity` must be restated. updated_at is refreshed.
    """
    if payload and payload.get("id") is not None and payload["id"] != product_id:
        raise ValidationError("id in payload does not match product_id")

    patch = _clean_product_payload(payload, replace=True)

    with unit_of_work():
        product = _require_product(product_id)
        _ensure_sku_available(patch["sku"], exclude_id=product.id)

        record = dict(PRODUCT_REPLACE_DEFAULTS)
        record.update(patch)
        _sync_category_snapshot(record)

        for key, value in record.items():
            setattr(product, key, value)
        product.updated_at = utcnow()

    return product.to_dict()


def delete_product(product_id: int) -> None:
    """
    Delete a product by id.

    Movements and transactions that reference it are history and are kept.
    """
    with unit_of_work() as session:
        product = _require_product(product_id)
        session.delete(product)


def search_products(query: str | None) -> list[dict]:
    """
    Case-insensitive substring search over name, SKU, category and barcode.

    Linear scan over get_all_products(); a blank query returns everything.
    """
    products = get_all_products()
    needle = (query or "").strip().lower()
    if not needle:
        return products

    def _matches(p: dict) -> bool:
        return (
            needle in (p["name"] or "").lower()
            or needle in (p["sku"] or "").lower()
            or needle in (p["category"] or "").lower()
            or needle in (p["barcode"] or "").lower()
        )

    return [p for p in products if _matches(p)]
