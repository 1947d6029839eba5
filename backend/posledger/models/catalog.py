from __future__ import annotations

from ..extensions import db
from .base import new_id
from posledger.time_utils import to_utc_z, utcnow


class Category(db.Model):
    """
    Item grouping within one section.

    Deleting a category never touches its items; they keep the dangling
    category_id and are shown as uncategorized.
    """
    __tablename__ = "categories"
    __event_type__ = "category-changed"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(128), nullable=False)
    section = db.Column(db.String(16), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "section": self.section,
            "created_at": to_utc_z(self.created_at),
        }


class Item(db.Model):
    """
    Sellable item with its running stock level.

    INVARIANT: current_amount is never negative after a committed operation.
    Sales decrement it with a conditional UPDATE (see shift_service), the
    CHECK constraint is the last line at the store.
    """
    __tablename__ = "items"
    __event_type__ = "item-changed"
    __table_args__ = (
        db.CheckConstraint("current_amount >= 0", name="ck_items_current_amount_nonneg"),
        db.CheckConstraint("sell_price_cents >= 0", name="ck_items_sell_price_nonneg"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_items_cost_price_nonneg"),
        db.Index("ix_items_section_category", "section", "category_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(128), nullable=False)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    current_amount = db.Column(db.Integer, nullable=False, default=0)

    # No FK: a deleted category leaves a dangling reference on purpose
    category_id = db.Column(db.String(36), nullable=True)
    section = db.Column(db.String(16), nullable=False, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sell_price_cents": self.sell_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "current_amount": self.current_amount,
            "category_id": self.category_id,
            "section": self.section,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Customer(db.Model):
    """Credit customer, scoped to one section."""
    __tablename__ = "customers"
    __event_type__ = "customer-changed"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(128), nullable=False)
    section = db.Column(db.String(16), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "section": self.section,
            "created_at": to_utc_z(self.created_at),
        }
