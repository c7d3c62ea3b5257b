from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class Transaction(db.Model):
    """
    Completed sale record.

    Items are point-in-time snapshots ({product_id, name, quantity,
    unit_price_cents, subtotal_cents}); later product edits never change
    transaction history. There is no update path once a row is written.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_timestamp", "timestamp"),
        db.Index("ix_transactions_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Payment details (method-specific columns are NULL for other methods)
    payment_method = db.Column(db.String(16), nullable=False)  # cash | card | mobile
    payment_amount_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=True)
    card_last_four = db.Column(db.String(4), nullable=True)
    mobile_reference = db.Column(db.String(128), nullable=True)

    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default="completed")  # completed | cancelled | refunded

    customer_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} total={self.total_amount_cents} status={self.status}>"

    @property
    def payment(self) -> dict:
        payment = {
            "method": self.payment_method,
            "amount_cents": self.payment_amount_cents,
        }
        if self.change_cents is not None:
            payment["change_cents"] = self.change_cents
        if self.card_last_four is not None:
            payment["card_last_four"] = self.card_last_four
        if self.mobile_reference is not None:
            payment["mobile_reference"] = self.mobile_reference
        return payment

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [dict(item) for item in (self.items or [])],
            "total_amount_cents": self.total_amount_cents,
            "payment": self.payment,
            "timestamp": to_utc_z(self.timestamp),
            "status": self.status,
            "customer_id": self.customer_id,
            "notes": self.notes,
        }


@event.listens_for(Transaction, "before_update")
def _transaction_no_update(mapper, connection, target):
    raise ValueError("transactions are immutable once recorded")
