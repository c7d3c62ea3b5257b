from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class Product(db.Model):
    """
    Product master data.

    SKU DESIGN DECISION:
    Product.sku is unique across the store (uq_products_sku). Barcodes are an
    optional secondary lookup key and are not unique.

    CATEGORY SNAPSHOT:
    `category` is a denormalized copy of the category name for display. It is
    re-derived from `category_id` whenever a product is written and the id
    resolves; legacy rows without `category_id` keep whatever snapshot they have.

    STOCK:
    stock_quantity is the on-hand count. It is only mutated by product CRUD,
    the inventory adjustment path and checkout, and may never go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("uq_products_sku", "sku", unique=True),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_price", "price_cents"),
        db.Index("ix_products_promotion", "promotion_start", "promotion_end"),
        db.Index("ix_products_barcode", "barcode"),
        db.Index("ix_products_category_id", "category_id"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Denormalized snapshot + reference (not an enforced foreign key)
    category = db.Column(db.String(120), nullable=False, default="")
    category_id = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(64), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    # Ordered list of {"quantity": int, "price_cents": int}
    bulk_prices = db.Column(db.JSON, nullable=False, default=list)

    # Promotion is all-or-nothing: either every column is set or none is
    promotion_start = db.Column(db.DateTime, nullable=True)
    promotion_end = db.Column(db.DateTime, nullable=True)
    promotion_discount_type = db.Column(db.String(16), nullable=True)  # percentage | fixed
    promotion_discount_value = db.Column(db.Integer, nullable=True)  # percent or cents

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def promotion(self) -> dict | None:
        if self.promotion_discount_type is None:
            return None
        return {
            "start": to_utc_z(self.promotion_start),
            "end": to_utc_z(self.promotion_end),
            "discount_type": self.promotion_discount_type,
            "discount_value": self.promotion_discount_value,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "category": self.category,
            "category_id": self.category_id,
            "stock_quantity": self.stock_quantity,
            "barcode": self.barcode,
            "image_url": self.image_url,
            "supplier": self.supplier,
            "bulk_prices": [dict(tier) for tier in (self.bulk_prices or [])],
            "promotion": self.promotion,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only audit entry for one stock change.

    quantity is always the positive magnitude; the direction lives in
    adjustment_type. new_stock - previous_stock == +quantity for "add" and
    -quantity for "remove".
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_id", "product_id"),
        db.Index("ix_inventory_movements_timestamp", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Reference only; movements outlive deleted products
    product_id = db.Column(db.Integer, nullable=False)

    adjustment_type = db.Column(db.String(16), nullable=False)  # add | remove
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement id={self.id} product_id={self.product_id} "
            f"{self.adjustment_type} {self.quantity} {self.previous_stock}->{self.new_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "adjustment_type": self.adjustment_type,
            "quantity": self.quantity,
            "reason": self.reason,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "timestamp": to_utc_z(self.timestamp),
        }


@event.listens_for(InventoryMovement, "before_update")
def _movement_no_update(mapper, connection, target):
    raise ValueError("inventory movements are append-only")


@event.listens_for(InventoryMovement, "before_delete")
def _movement_no_delete(mapper, connection, target):
    raise ValueError("inventory movements are append-only")
