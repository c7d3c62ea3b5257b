# pos_store Tests - Checkout Engine
#
# Tests for:
# - Successful sale: stock decremented, transaction recorded
# - Insufficient stock: nothing written
# - Multi-item atomicity and stock conservation
# - Payment validation (cash, card, mobile)
# - Derived pricing for lines without a unit price
# - Transactions as immutable snapshots

import logging
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from pos_store.errors import InsufficientStockError, NotFoundError, StorageFailure, ValidationError
from pos_store.extensions import db
from pos_store.models import Transaction
from pos_store.services import products_service, sales_service

CASH_10 = {"method": "cash", "amount_cents": 1000}

ALWAYS_ON_PROMOTION = {
    "start": "2000-01-01T00:00:00Z",
    "end": "2099-12-31T23:59:59Z",
    "discount_type": "percentage",
    "discount_value": 10,
}


def _stock(product_id: int) -> int:
    return products_service.get_product_by_id(product_id)["stock_quantity"]


@pytest.mark.sales
class TestCheckout:

    def test_successful_sale(self, make_product):
        """
        SCENARIO: Product at stock 5, sell 3 at 1000 cents, pay 3000 cash
        EXPECTED: Transaction total 3000, stock 2
        """
        product = make_product(name="Widget", stock_quantity=5)

        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 3, "unit_price_cents": 1000}],
            {"method": "cash", "amount_cents": 3000},
        )

        assert txn["total_amount_cents"] == 3000
        assert txn["status"] == "completed"
        assert txn["payment"] == {"method": "cash", "amount_cents": 3000, "change_cents": 0}
        assert txn["items"] == [{
            "product_id": product["id"],
            "name": "Widget",
            "quantity": 3,
            "unit_price_cents": 1000,
            "subtotal_cents": 3000,
        }]
        assert _stock(product["id"]) == 2
        assert sales_service.get_transaction_by_id(txn["id"]) == txn

    def test_cash_change(self, make_product):
        product = make_product(stock_quantity=5)
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 250}],
            CASH_10,
        )
        assert txn["payment"]["change_cents"] == 750

    def test_insufficient_stock(self, make_product):
        """
        SCENARIO: Product at stock 2, checkout quantity 5
        EXPECTED: InsufficientStockError, stock 2, no transaction
        """
        product = make_product(name="Gadget", stock_quantity=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.checkout(
                [{"product_id": product["id"], "quantity": 5, "unit_price_cents": 100}],
                CASH_10,
            )

        assert exc_info.value.items == [{
            "product_id": product["id"],
            "name": "Gadget",
            "requested_quantity": 5,
            "on_hand": 2,
        }]
        assert _stock(product["id"]) == 2
        assert sales_service.get_all_transactions() == []

    def test_one_short_line_blocks_whole_cart(self, make_product):
        plenty = make_product(stock_quantity=100)
        scarce = make_product(stock_quantity=1)

        with pytest.raises(InsufficientStockError):
            sales_service.checkout(
                [
                    {"product_id": plenty["id"], "quantity": 10, "unit_price_cents": 10},
                    {"product_id": scarce["id"], "quantity": 2, "unit_price_cents": 10},
                ],
                CASH_10,
            )

        assert _stock(plenty["id"]) == 100
        assert _stock(scarce["id"]) == 1
        assert sales_service.get_all_transactions() == []

    def test_repeated_lines_are_summed_for_stock(self, make_product):
        product = make_product(stock_quantity=5)
        with pytest.raises(InsufficientStockError):
            sales_service.checkout(
                [
                    {"product_id": product["id"], "quantity": 3, "unit_price_cents": 10},
                    {"product_id": product["id"], "quantity": 3, "unit_price_cents": 10},
                ],
                CASH_10,
            )
        assert _stock(product["id"]) == 5

    def test_unknown_product(self, make_product):
        product = make_product(stock_quantity=5)
        with pytest.raises(NotFoundError):
            sales_service.checkout(
                [
                    {"product_id": product["id"], "quantity": 1, "unit_price_cents": 10},
                    {"product_id": 987654, "quantity": 1, "unit_price_cents": 10},
                ],
                CASH_10,
            )
        assert _stock(product["id"]) == 5
        assert sales_service.get_all_transactions() == []

    def test_empty_cart(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.checkout([], CASH_10)

    @pytest.mark.parametrize("quantity", [0, -1, 2.5])
    def test_invalid_quantity(self, make_product, quantity):
        product = make_product(stock_quantity=5)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                [{"product_id": product["id"], "quantity": quantity, "unit_price_cents": 10}],
                CASH_10,
            )
        assert _stock(product["id"]) == 5

    def test_stock_conservation(self, make_product):
        """
        SCENARIO: Several sales, one of them rejected
        EXPECTED: Final stock == initial stock - units in completed transactions
        """
        a = make_product(stock_quantity=10)
        b = make_product(stock_quantity=4)
        carts = [
            [{"product_id": a["id"], "quantity": 3}, {"product_id": b["id"], "quantity": 1}],
            [{"product_id": b["id"], "quantity": 5}],
            [{"product_id": a["id"], "quantity": 2}, {"product_id": b["id"], "quantity": 3}],
        ]
        for cart in carts:
            try:
                sales_service.checkout(cart, {"method": "card", "card_last_four": "4242"})
            except InsufficientStockError:
                pass

        sold = {a["id"]: 0, b["id"]: 0}
        for txn in sales_service.get_all_transactions():
            for item in txn["items"]:
                sold[item["product_id"]] += item["quantity"]

        assert len(sales_service.get_all_transactions()) == 2
        assert _stock(a["id"]) == 10 - sold[a["id"]] == 5
        assert _stock(b["id"]) == 4 - sold[b["id"]] == 0

    def test_storage_failure_after_decrement_rolls_back_cart(self, make_product):
        """
        SCENARIO: Stock decrements are flushed, then recording the transaction fails
        EXPECTED: StorageFailure; every product keeps its stock, no transaction stored
        """
        a = make_product(stock_quantity=5)
        b = make_product(stock_quantity=5)

        with mock.patch.object(
            sales_service,
            "Transaction",
            side_effect=OperationalError("INSERT INTO transactions", {}, Exception("disk full")),
        ):
            with pytest.raises(StorageFailure):
                sales_service.checkout(
                    [
                        {"product_id": a["id"], "quantity": 2, "unit_price_cents": 100},
                        {"product_id": b["id"], "quantity": 3, "unit_price_cents": 100},
                    ],
                    CASH_10,
                )

        assert _stock(a["id"]) == 5
        assert _stock(b["id"]) == 5
        assert sales_service.get_all_transactions() == []


@pytest.mark.sales
class TestPaymentValidation:

    @pytest.fixture
    def line(self, make_product):
        product = make_product(stock_quantity=5)
        return [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 500}]

    @pytest.mark.parametrize("payment", [
        {"method": "cash", "amount_cents": 999},
        {"method": "cash", "amount_cents": 0},
        {"method": "cash"},
        {"method": "card", "card_last_four": "12a4"},
        {"method": "card", "card_last_four": "12345"},
        {"method": "card"},
        {"method": "mobile"},
        {"method": "mobile", "mobile_reference": "   "},
        {"method": "cheque"},
        None,
    ])
    def test_rejected_payments(self, line, payment):
        with pytest.raises(ValidationError):
            sales_service.checkout(line, payment)
        assert _stock(line[0]["product_id"]) == 5
        assert sales_service.get_all_transactions() == []

    def test_card_payment(self, line):
        txn = sales_service.checkout(line, {"method": "card", "card_last_four": "4242"})
        assert txn["payment"] == {"method": "card", "amount_cents": 1000, "card_last_four": "4242"}

    def test_mobile_payment(self, line):
        txn = sales_service.checkout(line, {"method": "mobile", "mobile_reference": "MPESA-77X"})
        assert txn["payment"]["mobile_reference"] == "MPESA-77X"
        assert txn["payment"]["amount_cents"] == 1000

    def test_cash_short_of_derived_total(self, make_product):
        """
        SCENARIO: Line priced by the engine, cash below the derived total
        EXPECTED: ValidationError, nothing written
        """
        product = make_product(price_cents=800, stock_quantity=5)

        with pytest.raises(ValidationError):
            sales_service.checkout(
                [{"product_id": product["id"], "quantity": 2}],
                {"method": "cash", "amount_cents": 1500},
            )

        assert _stock(product["id"]) == 5
        assert sales_service.get_all_transactions() == []


@pytest.mark.sales
class TestDerivedPricing:

    def test_list_price_used_when_unpriced(self, make_product):
        product = make_product(price_cents=450, stock_quantity=5)
        txn = sales_service.checkout([{"product_id": product["id"], "quantity": 2}], CASH_10)
        assert txn["items"][0]["unit_price_cents"] == 450
        assert txn["total_amount_cents"] == 900

    def test_bulk_tier_applies(self, make_product):
        product = make_product(
            price_cents=100,
            stock_quantity=50,
            bulk_prices=[{"quantity": 10, "price_cents": 80}, {"quantity": 20, "price_cents": 70}],
        )
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 12}],
            {"method": "cash", "amount_cents": 5000},
        )
        assert txn["items"][0]["unit_price_cents"] == 80
        assert txn["total_amount_cents"] == 960

    def test_promotion_on_top_of_bulk(self, make_product):
        product = make_product(
            price_cents=1000,
            stock_quantity=50,
            bulk_prices=[{"quantity": 10, "price_cents": 900}],
            promotion=ALWAYS_ON_PROMOTION,
        )
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 10}],
            {"method": "card", "card_last_four": "0001"},
        )
        assert txn["items"][0]["unit_price_cents"] == 810

    def test_explicit_price_wins(self, make_product):
        product = make_product(price_cents=1000, stock_quantity=5, promotion=ALWAYS_ON_PROMOTION)
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 999}],
            CASH_10,
        )
        assert txn["items"][0]["unit_price_cents"] == 999


@pytest.mark.sales
class TestTransactionHistory:

    def test_snapshot_survives_product_edit(self, make_product):
        """
        SCENARIO: Rename and reprice a product after selling it
        EXPECTED: Stored transaction still shows the old name and price
        """
        product = make_product(name="Old Name", price_cents=300, stock_quantity=5)
        txn = sales_service.checkout([{"product_id": product["id"], "quantity": 1}], CASH_10)

        current = products_service.get_product_by_id(product["id"])
        products_service.update_product(product["id"], dict(current, name="New Name", price_cents=999))

        stored = sales_service.get_transaction_by_id(txn["id"])
        assert stored["items"][0]["name"] == "Old Name"
        assert stored["items"][0]["unit_price_cents"] == 300

    def test_transactions_are_immutable(self, make_product):
        product = make_product(stock_quantity=5)
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 10}], CASH_10,
        )

        row = db.session.get(Transaction, txn["id"])
        row.notes = "edited"
        with pytest.raises(ValueError):
            db.session.flush()
        db.session.rollback()

    def test_customer_and_notes(self, make_product):
        product = make_product(stock_quantity=5)
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 10}],
            CASH_10,
            customer_id="C-100",
            notes="  gift wrap  ",
        )
        assert txn["customer_id"] == "C-100"
        assert txn["notes"] == "gift wrap"

    def test_by_status(self, make_product):
        product = make_product(stock_quantity=5)
        txn = sales_service.checkout(
            [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 10}], CASH_10,
        )
        assert [t["id"] for t in sales_service.get_transactions_by_status("completed")] == [txn["id"]]
        assert sales_service.get_transactions_by_status("refunded") == []
        with pytest.raises(ValidationError):
            sales_service.get_transactions_by_status("pending")

    def test_get_unknown_transaction(self, db_session):
        assert sales_service.get_transaction_by_id(123456) is None

    def test_low_stock_logged_after_sale(self, make_product, caplog):
        product = make_product(name="Eggs", stock_quantity=11)
        with caplog.at_level(logging.WARNING, logger="pos_store"):
            sales_service.checkout(
                [{"product_id": product["id"], "quantity": 2, "unit_price_cents": 10}], CASH_10,
            )
        assert "Low stock alert for Eggs" in caplog.text
