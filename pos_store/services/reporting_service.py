# Overview: Read-side aggregation over transactions and products for dashboards and reports.

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Transaction
from ..time_utils import day_bounds, normalize_datetime, to_utc_z, utcnow


def _completed_transactions(start=None, end=None) -> list[Transaction]:
    """Completed transactions with start <= timestamp <= end (both optional)."""
    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)

    query = db.session.query(Transaction).filter(Transaction.status == "completed")
    if start_dt:
        query = query.filter(Transaction.timestamp >= start_dt)
    if end_dt:
        query = query.filter(Transaction.timestamp <= end_dt)
    return query.order_by(Transaction.timestamp.asc(), Transaction.id.asc()).all()


def _average(total: int, count: int) -> int:
    if count <= 0:
        return 0
    # nearest-cent rounding (half-up)
    return (total + count // 2) // count


def sales_summary(*, start=None, end=None) -> dict:
    transactions = _completed_transactions(start, end)
    total = sum(t.total_amount_cents for t in transactions)
    return {
        "total_sales_cents": total,
        "transaction_count": len(transactions),
        "average_transaction_cents": _average(total, len(transactions)),
    }


def sales_by_day(*, start=None, end=None) -> list[dict]:
    """Totals per UTC calendar day, oldest day first."""
    days: dict[str, dict] = {}
    for t in _completed_transactions(start, end):
        key = t.timestamp.strftime("%Y-%m-%d")
        row = days.setdefault(key, {
            "day": key,
            "transaction_count": 0,
            "items_sold": 0,
            "total_sales_cents": 0,
        })
        row["transaction_count"] += 1
        row["items_sold"] += sum(item["quantity"] for item in t.items or [])
        row["total_sales_cents"] += t.total_amount_cents
    return [days[key] for key in sorted(days)]


def sales_by_product(*, start=None, end=None) -> list[dict]:
    """
    Units and revenue per product name snapshot.

    Grouped by the name recorded at sale time, so a renamed product shows up
    under each name it was sold as.
    """
    products: dict[str, dict] = {}
    for t in _completed_transactions(start, end):
        for item in t.items or []:
            row = products.setdefault(item["name"], {
                "name": item["name"],
                "quantity": 0,
                "revenue_cents": 0,
            })
            row["quantity"] += item["quantity"]
            row["revenue_cents"] += item["unit_price_cents"] * item["quantity"]
    return list(products.values())


def top_selling_products(*, limit: int = 5, by: str = "quantity", start=None, end=None) -> list[dict]:
    if by not in ("quantity", "revenue"):
        raise ValidationError("by must be quantity or revenue")
    key = "quantity" if by == "quantity" else "revenue_cents"
    rows = sales_by_product(start=start, end=end)
    rows.sort(key=lambda r: (-r[key], r["name"]))
    return rows[:limit]


def get_low_stock_alerts(threshold: int | None = None) -> list[dict]:
    """Products at or below the threshold; zero stock is reported as out_of_stock."""
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))

    products = (
        db.session.query(Product)
        .filter(Product.stock_quantity <= threshold)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )
    now = utcnow()
    return [
        {
            "product_id": p.id,
            "name": p.name,
            "type": "out_of_stock" if p.stock_quantity <= 0 else "low_stock",
            "threshold": threshold,
            "current_stock": p.stock_quantity,
            "timestamp": to_utc_z(now),
        }
        for p in products
    ]


def daily_dashboard(day: date | None = None, *, top: int = 5) -> dict:
    """Figures for one day's dashboard: sales, order count, average order, popular items."""
    if day is None:
        day = utcnow().date()
    elif isinstance(day, datetime):
        day = day.date()

    start, end = day_bounds(day)
    transactions = [t for t in _completed_transactions(start, end) if t.timestamp < end]

    total = sum(t.total_amount_cents for t in transactions)
    sold: dict[str, int] = {}
    for t in transactions:
        for item in t.items or []:
            sold[item["name"]] = sold.get(item["name"], 0) + item["quantity"]

    popular = sorted(sold.items(), key=lambda kv: (-kv[1], kv[0]))[:top]

    return {
        "day": day.isoformat(),
        "daily_sales_cents": total,
        "transaction_count": len(transactions),
        "average_order_value_cents": _average(total, len(transactions)),
        "popular_products": [{"name": name, "sold_count": count} for name, count in popular],
        "low_stock_alerts": get_low_stock_alerts(),
    }
