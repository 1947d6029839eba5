from __future__ import annotations

from ..extensions import db
from .base import new_id
from posledger.time_utils import to_utc_z, utcnow


class AdminLog(db.Model):
    """
    Append-only audit record for administrative and ledger actions.

    IMMUTABLE: Records are never updated or deleted (archival keeps them).
    """
    __tablename__ = "admin_logs"
    __event_type__ = "admin-log-added"
    __table_args__ = (
        db.Index("ix_admin_logs_section_timestamp", "section", "timestamp"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    action_type = db.Column(db.String(64), nullable=False, index=True)
    affected = db.Column(db.String(255), nullable=False)
    details = db.Column(db.Text, nullable=False, default="")
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    actor = db.Column(db.String(128), nullable=False)
    section = db.Column(db.String(16), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action_type": self.action_type,
            "affected": self.affected,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
            "actor": self.actor,
            "section": self.section,
        }


class MonthlyArchive(db.Model):
    """
    Aggregated snapshot of one section's period, written by period archival.

    IMMUTABLE: never updated after creation.
    """
    __tablename__ = "monthly_archives"
    __event_type__ = "period-archived"
    __table_args__ = (
        db.UniqueConstraint("section", "month", name="uq_monthly_archives_section_month"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    section = db.Column(db.String(16), nullable=False, index=True)
    month = db.Column(db.String(7), nullable=False)  # YYYY-MM
    year = db.Column(db.Integer, nullable=False)

    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expenses_cents = db.Column(db.Integer, nullable=False, default=0)
    total_external_cents = db.Column(db.Integer, nullable=False, default=0)
    shifts_count = db.Column(db.Integer, nullable=False, default=0)

    # item_id -> {quantity, revenue_cents, name}
    items_sold = db.Column(db.JSON, nullable=False)

    archived_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    archived_by = db.Column(db.String(128), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "section": self.section,
            "month": self.month,
            "year": self.year,
            "total_revenue_cents": self.total_revenue_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "total_external_cents": self.total_external_cents,
            "shifts_count": self.shifts_count,
            "items_sold": self.items_sold,
            "archived_at": to_utc_z(self.archived_at),
            "archived_by": self.archived_by,
        }
