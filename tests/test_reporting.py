# pos_store Tests - Reporting
#
# Transactions are inserted directly with fixed timestamps so day and range
# boundaries are deterministic.

from datetime import date, datetime

import pytest

from pos_store.errors import ValidationError
from pos_store.extensions import db
from pos_store.models import Transaction
from pos_store.services import reporting_service


def _record_sale(when: datetime, items: list[tuple[str, int, int]], status: str = "completed") -> None:
    lines = [
        {"product_id": None, "name": name, "quantity": qty, "unit_price_cents": price, "subtotal_cents": qty * price}
        for name, qty, price in items
    ]
    total = sum(line["subtotal_cents"] for line in lines)
    db.session.add(Transaction(
        items=lines,
        total_amount_cents=total,
        payment_method="card",
        payment_amount_cents=total,
        card_last_four="4242",
        timestamp=when,
        status=status,
    ))
    db.session.commit()


@pytest.fixture
def sales_history(db_session):
    _record_sale(datetime(2026, 3, 1, 9, 0), [("Coffee", 2, 300), ("Bagel", 1, 250)])
    _record_sale(datetime(2026, 3, 1, 17, 30), [("Coffee", 1, 300)])
    _record_sale(datetime(2026, 3, 1, 23, 59, 59), [("Tea", 3, 200)])
    _record_sale(datetime(2026, 3, 2, 8, 0), [("Bagel", 4, 250)])
    _record_sale(datetime(2026, 3, 2, 9, 0), [("Coffee", 10, 300)], status="refunded")


class TestSalesReports:

    def test_summary_all_time(self, sales_history):
        summary = reporting_service.sales_summary()
        assert summary == {
            "total_sales_cents": 850 + 300 + 600 + 1000,
            "transaction_count": 4,
            "average_transaction_cents": 688,
        }

    def test_summary_inclusive_range(self, sales_history):
        summary = reporting_service.sales_summary(
            start="2026-03-01T17:30:00Z",
            end=datetime(2026, 3, 1, 23, 59, 59),
        )
        assert summary["transaction_count"] == 2
        assert summary["total_sales_cents"] == 900

    def test_empty_range(self, sales_history):
        summary = reporting_service.sales_summary(start=datetime(2027, 1, 1))
        assert summary == {"total_sales_cents": 0, "transaction_count": 0, "average_transaction_cents": 0}

    def test_by_day(self, sales_history):
        rows = reporting_service.sales_by_day()
        assert rows == [
            {"day": "2026-03-01", "transaction_count": 3, "items_sold": 7, "total_sales_cents": 1750},
            {"day": "2026-03-02", "transaction_count": 1, "items_sold": 4, "total_sales_cents": 1000},
        ]

    def test_by_product_excludes_refunded(self, sales_history):
        rows = {r["name"]: r for r in reporting_service.sales_by_product()}
        assert rows["Coffee"] == {"name": "Coffee", "quantity": 3, "revenue_cents": 900}
        assert rows["Bagel"] == {"name": "Bagel", "quantity": 5, "revenue_cents": 1250}
        assert rows["Tea"] == {"name": "Tea", "quantity": 3, "revenue_cents": 600}

    def test_top_selling(self, sales_history):
        by_quantity = reporting_service.top_selling_products(limit=2)
        assert [r["name"] for r in by_quantity] == ["Bagel", "Coffee"]

        by_revenue = reporting_service.top_selling_products(limit=1, by="revenue")
        assert [r["name"] for r in by_revenue] == ["Bagel"]

        with pytest.raises(ValidationError):
            reporting_service.top_selling_products(by="margin")


class TestLowStockAlerts:

    def test_alerts(self, make_product):
        empty = make_product(name="Empty", stock_quantity=0)
        low = make_product(name="Low", stock_quantity=10)
        make_product(name="Fine", stock_quantity=11)

        alerts = reporting_service.get_low_stock_alerts()

        assert [(a["product_id"], a["type"]) for a in alerts] == [
            (empty["id"], "out_of_stock"),
            (low["id"], "low_stock"),
        ]
        assert all(a["threshold"] == 10 for a in alerts)
        assert all(isinstance(a["timestamp"], str) and a["timestamp"].endswith("Z") for a in alerts)

    def test_threshold_override(self, make_product):
        make_product(stock_quantity=10)
        assert reporting_service.get_low_stock_alerts(threshold=5) == []


class TestDailyDashboard:

    def test_dashboard_for_day(self, sales_history):
        dashboard = reporting_service.daily_dashboard(date(2026, 3, 1), top=2)

        assert dashboard["day"] == "2026-03-01"
        assert dashboard["daily_sales_cents"] == 1750
        assert dashboard["transaction_count"] == 3
        assert dashboard["average_order_value_cents"] == 583
        assert dashboard["popular_products"] == [
            {"name": "Coffee", "sold_count": 3},
            {"name": "Tea", "sold_count": 3},
        ]
        assert dashboard["low_stock_alerts"] == []

    def test_dashboard_quiet_day(self, sales_history):
        dashboard = reporting_service.daily_dashboard(datetime(2026, 3, 5, 12, 0))
        assert dashboard["daily_sales_cents"] == 0
        assert dashboard["popular_products"] == []
