"""
Period Archival Service

WHY: A section's shift history grows without bound. Closing a period rolls
it up into one immutable MonthlyArchive and clears the history, so the
next period starts empty.

DESIGN PRINCIPLES:
- One transaction: the archive row and the purge commit together or not
  at all. There is never a moment where history is gone and no archive
  exists.
- Only the archived section's history is touched. Items, categories,
  customers, supplier debt and the admin log are never purged.
- Outstanding customer debt is carried into the next period by default.
- One archive per section and month; an existing archive is never
  overwritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select

from ..models import (
    CustomerPayment,
    CustomerPurchase,
    Expense,
    ExternalMoney,
    MonthlyArchive,
    Shift,
    ShiftSale,
    Supply,
    new_id,
)
from ..time_utils import month_key, utcnow
from ..validation import ConflictError, ValidationError, require_section, require_text
from .shift_service import find_active_shift, format_cents

logger = logging.getLogger("posledger.archive")


@dataclass
class PeriodSummary:
    section: str
    total_revenue_cents: int = 0
    total_cost_cents: int = 0
    total_expenses_cents: int = 0
    total_external_cents: int = 0
    shifts_count: int = 0
    items_sold: dict[str, dict] = field(default_factory=dict)

    @property
    def total_profit_cents(self) -> int:
        return self.total_revenue_cents - self.total_cost_cents

    def to_dict(self) -> dict:
        return {
            "section": self.section,
            "total_revenue_cents": self.total_revenue_cents,
            "total_cost_cents": self.total_cost_cents,
            "total_profit_cents": self.total_profit_cents,
            "total_expenses_cents": self.total_expenses_cents,
            "total_external_cents": self.total_external_cents,
            "shifts_count": self.shifts_count,
            "items_sold": self.items_sold,
        }


def _validate_month(month: str) -> str:
    try:
        year, mon = month.split("-")
        if len(year) != 4 or not 1 <= int(mon) <= 12:
            raise ValueError(month)
        int(year)
    except (AttributeError, ValueError):
        raise ValidationError("month must look like YYYY-MM")
    return f"{year}-{int(mon):02d}"


class PeriodArchiver:
    def __init__(self, gateway, audit=None):
        self.gateway = gateway
        self.audit = audit

    def _summarize(self, session, section: str) -> PeriodSummary:
        summary = PeriodSummary(section=section)
        shift_ids = select(Shift.id).where(Shift.section == section)

        summary.shifts_count = len(session.scalars(shift_ids).all())

        for line in session.scalars(
            select(ShiftSale).where(ShiftSale.shift_id.in_(shift_ids)).order_by(ShiftSale.timestamp)
        ):
            revenue = line.quantity * line.unit_price_cents
            summary.total_revenue_cents += revenue
            summary.total_cost_cents += line.quantity * line.unit_cost_cents
            entry = summary.items_sold.setdefault(
                line.item_id, {"name": line.name, "quantity": 0, "revenue_cents": 0}
            )
            entry["quantity"] += line.quantity
            entry["revenue_cents"] += revenue

        for amount in session.scalars(select(Expense.amount_cents).where(Expense.section == section)):
            summary.total_expenses_cents += amount
        for amount in session.scalars(select(ExternalMoney.amount_cents).where(ExternalMoney.section == section)):
            summary.total_external_cents += amount
        return summary

    def _purge(self, uow, section: str, *, keep_unpaid_debt: bool) -> None:
        shift_ids = select(Shift.id).where(Shift.section == section)
        uow.purge(ShiftSale, ShiftSale.shift_id.in_(shift_ids))
        uow.purge(Expense, Expense.section == section)
        uow.purge(ExternalMoney, ExternalMoney.section == section)
        uow.purge(Supply, Supply.section == section)
        uow.purge(CustomerPayment, CustomerPayment.section == section)
        if keep_unpaid_debt:
            uow.purge(CustomerPurchase, CustomerPurchase.section == section, CustomerPurchase.is_paid.is_(True))
        else:
            uow.purge(CustomerPurchase, CustomerPurchase.section == section)
        uow.purge(Shift, Shift.section == section)

    def summarize(self, section: str) -> PeriodSummary:
        """Aggregates for the section's current period; writes nothing."""
        require_section(section)
        return self.gateway.run(lambda uow: self._summarize(uow.session, section))

    def reset_period(
        self,
        section: str,
        *,
        actor: str,
        month: Optional[str] = None,
        keep_unpaid_debt: bool = True,
    ) -> MonthlyArchive:
        """
        Archive the section's period and purge its history atomically.

        Raises:
            ConflictError: a shift is still active, or the month is already archived
        """
        require_section(section)
        actor = require_text(actor, "actor")
        month = _validate_month(month) if month else month_key(utcnow())

        def _op(uow):
            session = uow.session
            if find_active_shift(session, section) is not None:
                raise ConflictError(f"Close the active {section} shift before archiving")
            existing = session.scalars(
                select(MonthlyArchive).where(MonthlyArchive.section == section, MonthlyArchive.month == month)
            ).first()
            if existing is not None:
                raise ConflictError(f"{section} is already archived for {month}")

            summary = self._summarize(session, section)
            archive = MonthlyArchive(
                id=new_id(),
                section=section,
                month=month,
                year=int(month[:4]),
                total_revenue_cents=summary.total_revenue_cents,
                total_cost_cents=summary.total_cost_cents,
                total_profit_cents=summary.total_profit_cents,
                total_expenses_cents=summary.total_expenses_cents,
                total_external_cents=summary.total_external_cents,
                shifts_count=summary.shifts_count,
                items_sold=summary.items_sold,
                archived_at=utcnow(),
                archived_by=actor,
            )
            session.add(archive)
            session.flush()

            self._purge(uow, section, keep_unpaid_debt=keep_unpaid_debt)
            uow.emit_entity(archive, actor_id=actor)
            return archive

        archive = self.gateway.run(_op)
        logger.info("Archived %s for %s (%d shifts)", section, month, archive.shifts_count)
        if self.audit is not None:
            self.audit.record(
                "period_archived",
                f"{section} {month}",
                f"{archive.shifts_count} shifts, revenue {format_cents(archive.total_revenue_cents)}",
                actor=actor,
                section=section,
            )
        return archive

    def list_archives(self, section: str) -> list[MonthlyArchive]:
        require_section(section)
        return self.gateway.list(MonthlyArchive, order_by=MonthlyArchive.month.desc(), section=section)

    def get_archive(self, archive_id: str) -> Optional[MonthlyArchive]:
        return self.gateway.get(MonthlyArchive, archive_id)
