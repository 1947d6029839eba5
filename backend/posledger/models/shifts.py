from __future__ import annotations

from ..extensions import db
from .base import new_id
from posledger.time_utils import to_utc_z, utcnow

SHIFT_ACTIVE = "active"
SHIFT_CLOSED = "closed"

STATUS_BALANCED = "balanced"
STATUS_DISCREPANCY = "discrepancy"


class Shift(db.Model):
    """
    One operator's cash-drawer session for a section.

    LIFECYCLE:
    - active: sales, expenses and external money accumulate
    - closed: reconciled once; immutable afterwards

    INVARIANTS:
    - At most one active shift per section (partial unique index below).
    - total_amount_cents only grows while active: paid sales, external
      money and customer debt payments. Expenses are kept apart and only
      subtracted at reconciliation.
    """
    __tablename__ = "shifts"
    __event_type__ = "shift-changed"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_active_per_section",
            "section",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_shifts_section_start", "section", "start_time"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    section = db.Column(db.String(16), nullable=False, index=True)

    operator_id = db.Column(db.String(64), nullable=False)
    operator_name = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_ACTIVE, index=True)

    # Cash expected in drawer (cents)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_time = db.Column(db.DateTime, nullable=True)

    # Set when closing
    final_cash_cents = db.Column(db.Integer, nullable=True)
    final_inventory = db.Column(db.JSON, nullable=True)  # item_id -> declared count
    discrepancies = db.Column(db.JSON, nullable=True)
    close_reason = db.Column(db.Text, nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)
    validation_status = db.Column(db.String(16), nullable=False, default=STATUS_BALANCED)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sales = db.relationship(
        "ShiftSale",
        backref="shift",
        order_by="ShiftSale.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    expenses = db.relationship(
        "Expense",
        backref="shift",
        order_by="Expense.timestamp",
        cascade="all, delete-orphan",
        lazy=True,
    )
    external_money = db.relationship(
        "ExternalMoney",
        backref="shift",
        order_by="ExternalMoney.timestamp",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == SHIFT_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section": self.section,
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "final_cash_cents": self.final_cash_cents,
            "final_inventory": self.final_inventory,
            "discrepancies": self.discrepancies,
            "close_reason": self.close_reason,
            "closed_by": self.closed_by,
            "validation_status": self.validation_status,
            "version_id": self.version_id,
        }


class ShiftSale(db.Model):
    """
    Sold line item within a shift, in sale order.

    Name, price and cost are snapshots taken at sale time so later catalog
    edits never rewrite history.
    """
    __tablename__ = "shift_sales"
    __table_args__ = (
        db.Index("ix_shift_sales_shift_position", "shift_id", "position"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    item_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    is_paid = db.Column(db.Boolean, nullable=False, default=True)
    customer_purchase_id = db.Column(db.String(36), nullable=True)

    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "position": self.position,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "is_paid": self.is_paid,
            "customer_purchase_id": self.customer_purchase_id,
            "timestamp": to_utc_z(self.timestamp),
        }


class Expense(db.Model):
    """Cash taken out of the drawer during a shift; reconciled at close."""
    __tablename__ = "expenses"
    __event_type__ = "expense-added"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    section = db.Column(db.String(16), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by = db.Column(db.String(128), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "shift_id": self.shift_id,
            "section": self.section,
            "timestamp": to_utc_z(self.timestamp),
            "created_by": self.created_by,
        }


class ExternalMoney(db.Model):
    """Cash physically added to the drawer (e.g. change float top-up)."""
    __tablename__ = "external_money"
    __event_type__ = "shift-changed"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    shift_id = db.Column(db.String(36), db.ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    section = db.Column(db.String(16), nullable=False, index=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by = db.Column(db.String(128), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "shift_id": self.shift_id,
            "section": self.section,
            "timestamp": to_utc_z(self.timestamp),
            "created_by": self.created_by,
        }


class Supply(db.Model):
    """
    Stock delivery. Raises item stock; when a shift is active its cost is
    deducted from that shift's net figures (never from the drawer total).
    """
    __tablename__ = "supplies"
    __event_type__ = "supply-added"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    section = db.Column(db.String(16), nullable=False, index=True)
    items = db.Column(db.JSON, nullable=False)  # item_id -> quantity added
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    shift_id = db.Column(db.String(36), nullable=True, index=True)
    on_credit = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by = db.Column(db.String(128), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section": self.section,
            "items": self.items,
            "total_cost_cents": self.total_cost_cents,
            "shift_id": self.shift_id,
            "on_credit": self.on_credit,
            "timestamp": to_utc_z(self.timestamp),
            "created_by": self.created_by,
        }
