# Overview: Service-layer operations for inventory; stock adjustments and the movement audit trail.

# pos_store/services/inventory_service.py

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Product, InventoryMovement
from ..time_utils import utcnow
from ..validation import validate_adjustment
from .concurrency import lock_for_update, unit_of_work
"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is the on-hand count and is never negative.
- Every manual change goes through adjust_stock(), which writes the product
  and appends exactly one InventoryMovement in the same unit of work.

Movement records:
- quantity is the unsigned magnitude; adjustment_type carries the direction.
- new_stock - previous_stock == +quantity ("add") or -quantity ("remove").
- After commit, product.stock_quantity == movement.new_stock.
- Movements are append-only (no updates/deletes).

Negative stock:
- A "remove" larger than the stock on hand is rejected with
  InsufficientStockError; nothing is written.

Low stock:
- After a successful commit, new_stock <= LOW_STOCK_THRESHOLD logs a warning.
  This is a side effect only and never changes the outcome of the call.
"""


def _low_stock_threshold() -> int:
    return int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))


def signal_low_stock(*, product_id: int, name: str, stock: int, threshold: int | None = None) -> bool:
    """Log a low-stock warning when `stock` is at or below the threshold."""
    if threshold is None:
        threshold = _low_stock_threshold()
    if stock > threshold:
        return False
    current_app.logger.warning(
        "Low stock alert for %s (product_id=%s): %s items remaining",
        name, product_id, stock,
    )
    return True


def _append_movement(
    *,
    product_id: int,
    adjustment_type: str,
    quantity: int,
    reason: str,
    previous_stock: int,
    new_stock: int,
    timestamp,
) -> InventoryMovement:
    """Core movement insert without commit; the caller owns the unit of work."""
    movement = InventoryMovement(
        product_id=product_id,
        adjustment_type=adjustment_type,
        quantity=quantity,
        reason=reason,
        previous_stock=previous_stock,
        new_stock=new_stock,
        timestamp=timestamp,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(product_id: int, quantity: int, reason: str, adjustment_type: str) -> dict:
    """
    Add or remove stock for a product and record the movement atomically.

    Args:
        product_id: product to adjust
        quantity: unsigned magnitude (> 0)
        reason: free text, required
        adjustment_type: "add" or "remove"

    Returns:
        The created movement as a dict.

    Raises:
        ValidationError: bad quantity, reason or type (before any storage call)
        NotFoundError: unknown product
        InsufficientStockError: a removal would take stock below zero
        StorageFailure: engine error; neither write persisted
    """
    quantity, reason, adjustment_type = validate_adjustment(quantity, reason, adjustment_type)

    with unit_of_work() as session:
        product = lock_for_update(session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("product", product_id)

        previous_stock = product.stock_quantity
        delta = quantity if adjustment_type == "add" else -quantity
        new_stock = previous_stock + delta

        if new_stock < 0:
            raise InsufficientStockError(
                f"Insufficient stock for product: {product.name}",
                items=[{
                    "product_id": product.id,
                    "requested_quantity": quantity,
                    "on_hand": previous_stock,
                }],
            )

        now = utcnow()
        product.stock_quantity = new_stock
        product.updated_at = now
        session.flush()

        movement = _append_movement(
            product_id=product.id,
            adjustment_type=adjustment_type,
            quantity=abs(delta),
            reason=reason,
            previous_stock=previous_stock,
            new_stock=new_stock,
            timestamp=now,
        )
        result = movement.to_dict()
        product_name = product.name

    signal_low_stock(product_id=product_id, name=product_name, stock=new_stock)
    return result


def list_movements(product_id: int) -> list[dict]:
    """Movements for one product, oldest first."""
    movements = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.product_id == product_id)
        .order_by(InventoryMovement.timestamp.asc(), InventoryMovement.id.asc())
        .all()
    )
    return [m.to_dict() for m in movements]


def get_all_movements() -> list[dict]:
    movements = db.session.query(InventoryMovement).order_by(InventoryMovement.id.asc()).all()
    return [m.to_dict() for m in movements]
