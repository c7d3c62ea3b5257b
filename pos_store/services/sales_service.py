"""
Sales Service - checkout and transaction history

WHY: A sale has to decrement stock for every cart line and record the
transaction as one unit. Either the whole cart is sold or nothing changes.

Checkout order of operations:
1. Validate cart lines and payment fields (no storage access).
2. Pre-flight: load every product, fail on the first missing one, collect
   every line short on stock. Nothing is written until all lines pass.
3. Decrement stock for each product.
4. Insert the Transaction with item snapshots and payment details.
5. Commit. Any exception in 2-5 rolls back all of it.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Transaction
from ..time_utils import utcnow
from ..validation import validate_cart_items, validate_payment
from .concurrency import lock_for_update, unit_of_work
from .inventory_service import signal_low_stock
from .pricing_service import effective_unit_price_cents

TRANSACTION_STATUSES = ("completed", "cancelled", "refunded")


def _requested_quantities(lines: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line["product_id"]] = totals.get(line["product_id"], 0) + line["quantity"]
    return totals


def _load_and_check_stock(session, requested: dict[int, int]) -> dict[int, Product]:
    products: dict[int, Product] = {}
    insufficient = []
    for product_id, qty in requested.items():
        product = lock_for_update(session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("product", product_id)
        products[product_id] = product
        if product.stock_quantity < qty:
            insufficient.append({
                "product_id": product_id,
                "name": product.name,
                "requested_quantity": qty,
                "on_hand": product.stock_quantity,
            })

    if insufficient:
        names = ", ".join(item["name"] for item in insufficient)
        raise InsufficientStockError(f"Insufficient stock for product: {names}", items=insufficient)
    return products


def _validate_extras(customer_id, notes) -> tuple[str | None, str | None]:
    if customer_id is not None:
        customer_id = str(customer_id).strip() or None
        if customer_id and len(customer_id) > 64:
            raise ValidationError("customer_id exceeds max length 64")
    if notes is not None:
        notes = str(notes).strip() or None
    return customer_id, notes


def checkout(items: list[dict], payment: dict, *, customer_id=None, notes=None) -> dict:
    """
    Sell a cart: decrement stock for every line and record one transaction.

    Args:
        items: [{product_id, quantity, unit_price_cents?}]; lines without a
            unit price are priced from bulk tiers and promotions
        payment: {method, amount_cents? (cash), card_last_four? (card),
            mobile_reference? (mobile)}

    Returns:
        The stored transaction as a dict (status "completed").

    Raises:
        ValidationError: malformed cart or payment (before storage access)
        NotFoundError: a cart product does not exist
        InsufficientStockError: any line exceeds stock; nothing is written
        StorageFailure: engine error; nothing is written
    """
    lines = validate_cart_items(items)
    customer_id, notes = _validate_extras(customer_id, notes)

    # Lines without a price are priced inside the unit of work, so the cash
    # amount can only be checked against the total there
    upfront_total = None
    if all(line["unit_price_cents"] is not None for line in lines):
        upfront_total = sum(line["unit_price_cents"] * line["quantity"] for line in lines)
    validate_payment(payment, upfront_total)

    requested = _requested_quantities(lines)

    with unit_of_work() as session:
        products = _load_and_check_stock(session, requested)

        now = utcnow()
        snapshot = []
        for line in lines:
            product = products[line["product_id"]]
            unit_price = line["unit_price_cents"]
            if unit_price is None:
                unit_price = effective_unit_price_cents(product, requested[product.id], now)
            snapshot.append({
                "product_id": product.id,
                "name": product.name,
                "quantity": line["quantity"],
                "unit_price_cents": unit_price,
                "subtotal_cents": unit_price * line["quantity"],
            })

        total_cents = sum(item["subtotal_cents"] for item in snapshot)
        payment_columns = validate_payment(payment, total_cents)

        for product_id, qty in requested.items():
            product = products[product_id]
            product.stock_quantity = product.stock_quantity - qty
            product.updated_at = now
        session.flush()

        transaction = Transaction(
            items=snapshot,
            total_amount_cents=total_cents,
            timestamp=now,
            status="completed",
            customer_id=customer_id,
            notes=notes,
            **payment_columns,
        )
        session.add(transaction)
        session.flush()

        result = transaction.to_dict()
        remaining = [(p.id, p.name, p.stock_quantity) for p in products.values()]

    current_app.logger.info(
        "Checkout completed: transaction_id=%s total_cents=%s lines=%s",
        result["id"], result["total_amount_cents"], len(result["items"]),
    )
    for product_id, name, stock in remaining:
        signal_low_stock(product_id=product_id, name=name, stock=stock)
    return result


def get_all_transactions() -> list[dict]:
    transactions = db.session.query(Transaction).order_by(Transaction.id.asc()).all()
    return [t.to_dict() for t in transactions]


def get_transaction_by_id(transaction_id: int) -> dict | None:
    transaction = db.session.get(Transaction, transaction_id)
    return transaction.to_dict() if transaction else None


def get_transactions_by_status(status: str) -> list[dict]:
    if status not in TRANSACTION_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(TRANSACTION_STATUSES)}")
    transactions = (
        db.session.query(Transaction)
        .filter(Transaction.status == status)
        .order_by(Transaction.id.asc())
        .all()
    )
    return [t.to_dict() for t in transactions]
