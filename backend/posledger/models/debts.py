from __future__ import annotations

from ..extensions import db
from .base import new_id
from posledger.time_utils import to_utc_z, utcnow

SUPPLEMENT_DEBT_ID = "current"

TXN_DEBT = "debt"
TXN_PAYMENT = "payment"
VALID_TXN_TYPES = (TXN_DEBT, TXN_PAYMENT)


class CustomerPurchase(db.Model):
    """
    Goods taken on credit by a customer.

    LIFECYCLE:
    - unpaid: total_amount_cents may shrink as partial payments land
    - paid: immutable, never resurrected
    """
    __tablename__ = "customer_purchases"
    __event_type__ = "debt-changed"
    __table_args__ = (
        db.Index("ix_customer_purchases_customer_paid", "customer_id", "is_paid", "timestamp"),
        db.Index("ix_customer_purchases_section_paid", "section", "is_paid"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(36), nullable=False)
    customer_name = db.Column(db.String(128), nullable=False)  # snapshot

    # [{item_id, quantity, price_cents, name}]
    items = db.Column(db.JSON, nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    original_amount_cents = db.Column(db.Integer, nullable=False)
    section = db.Column(db.String(16), nullable=False)
    shift_id = db.Column(db.String(36), nullable=True, index=True)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    paid_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "items": self.items,
            "total_amount_cents": self.total_amount_cents,
            "original_amount_cents": self.original_amount_cents,
            "section": self.section,
            "shift_id": self.shift_id,
            "is_paid": self.is_paid,
            "timestamp": to_utc_z(self.timestamp),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }


class CustomerPayment(db.Model):
    """
    Append-only record of a debt payment deposited into a shift drawer.

    IMMUTABLE: Records are never updated.
    """
    __tablename__ = "customer_payments"
    __event_type__ = "debt-changed"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_id = db.Column(db.String(36), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    purchase_ids = db.Column(db.JSON, nullable=False)
    reduced_purchase_id = db.Column(db.String(36), nullable=True)
    shift_id = db.Column(db.String(36), nullable=False, index=True)
    section = db.Column(db.String(16), nullable=False, index=True)
    created_by = db.Column(db.String(128), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "purchase_ids": self.purchase_ids,
            "reduced_purchase_id": self.reduced_purchase_id,
            "shift_id": self.shift_id,
            "section": self.section,
            "created_by": self.created_by,
            "timestamp": to_utc_z(self.timestamp),
        }


class SupplementDebt(db.Model):
    """
    Running balance owed to the supplement supplier.

    Singleton row (id='current'). Never negative.
    """
    __tablename__ = "supplement_debt"
    __event_type__ = "debt-changed"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_supplement_debt_nonneg"),
    )

    id = db.Column(db.String(36), primary_key=True, default=SUPPLEMENT_DEBT_ID)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_by = db.Column(db.String(128), nullable=False, default="system")
    # Number handed to the next transaction; advanced under the row version
    next_sequence = db.Column(db.Integer, nullable=False, default=1)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "amount_cents": self.amount_cents,
            "last_updated": to_utc_z(self.last_updated),
            "updated_by": self.updated_by,
            "version_id": self.version_id,
        }


class SupplementDebtTransaction(db.Model):
    """
    Append-only audit trail of supplier debt changes.

    amount_cents is what was requested; applied_cents is the signed change
    actually applied to the balance (a payment larger than the balance is
    clamped), so the sum of applied_cents always equals the balance.
    """
    __tablename__ = "supplement_debt_transactions"
    __event_type__ = "debt-changed"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_supplement_txn_positive"),
        db.UniqueConstraint("sequence", name="uq_supplement_txn_sequence"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    type = db.Column(db.String(16), nullable=False)  # debt, payment
    sequence = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    applied_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    created_by = db.Column(db.String(128), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "applied_cents": self.applied_cents,
            "balance_after_cents": self.balance_after_cents,
            "note": self.note,
            "timestamp": to_utc_z(self.timestamp),
            "created_by": self.created_by,
        }
