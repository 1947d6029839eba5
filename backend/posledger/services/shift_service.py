"""
Shift Ledger Service

WHY: Cash-drawer accountability per section. One active shift per section
accumulates sales, expenses and external money; closing it reconciles the
declared cash and stock against what the ledger expects.

DESIGN PRINCIPLES:
- One active shift per section (pre-check plus a partial unique index, so
  two terminals racing to start a shift cannot both win)
- Sales are all-or-nothing: every line is a conditional decrement that
  refuses to drive stock negative; one refused line rolls back the sale
- total_amount_cents only grows through paid sales, external money and
  debt payments; expenses are subtracted at reconciliation only. The one
  exception is correcting or deleting external money, which moves the
  total by the corrected delta
- Closing is one call with an optional reason and a dry_run preview; a
  discrepancy without a reason is rejected (ReasonRequiredError)
- Closed shifts and their entries are immutable
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ..models import (
    Customer,
    CustomerPurchase,
    Expense,
    ExternalMoney,
    Item,
    Shift,
    ShiftSale,
    Supply,
    new_id,
    SHIFT_ACTIVE,
    SHIFT_CLOSED,
    STATUS_BALANCED,
    STATUS_DISCREPANCY,
    TXN_DEBT,
)
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ReasonRequiredError,
    ValidationError,
    require_amount_cents,
    require_count,
    require_section,
    require_text,
)
from .events import EventTypes

logger = logging.getLogger("posledger.shifts")

# 0.01 currency units
CASH_TOLERANCE_CENTS = 1


def format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class SaleResult:
    shift: Shift
    lines: list[ShiftSale]
    total_cents: int
    customer_purchase: Optional[CustomerPurchase] = None

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
            "customer_purchase": self.customer_purchase.to_dict() if self.customer_purchase else None,
        }


@dataclass
class Reconciliation:
    """Expected vs declared figures for a shift close (or its preview)."""
    shift_id: str
    section: str
    total_amount_cents: int
    expenses_cents: int
    external_cents: int
    supply_cost_cents: int
    expected_cash_cents: int
    final_cash_cents: int
    cash_difference_cents: int
    inventory_differences: dict[str, dict] = field(default_factory=dict)
    discrepancies: list[str] = field(default_factory=list)
    close_reason: Optional[str] = None
    committed: bool = False

    @property
    def validation_status(self) -> str:
        return STATUS_DISCREPANCY if self.discrepancies else STATUS_BALANCED

    @property
    def net_cents(self) -> int:
        return self.expected_cash_cents - self.supply_cost_cents

    def to_dict(self) -> dict:
        return {
            "shift_id": self.shift_id,
            "section": self.section,
            "total_amount_cents": self.total_amount_cents,
            "expenses_cents": self.expenses_cents,
            "external_cents": self.external_cents,
            "supply_cost_cents": self.supply_cost_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "final_cash_cents": self.final_cash_cents,
            "cash_difference_cents": self.cash_difference_cents,
            "net_cents": self.net_cents,
            "inventory_differences": self.inventory_differences,
            "discrepancies": self.discrepancies,
            "validation_status": self.validation_status,
            "close_reason": self.close_reason,
            "committed": self.committed,
        }


# =============================================================================
# SHARED HELPERS (also used by the debt ledger)
# =============================================================================

def find_active_shift(session, section: str) -> Optional[Shift]:
    return session.scalars(
        select(Shift).where(Shift.section == section, Shift.status == SHIFT_ACTIVE)
    ).first()


def require_active_shift(session, section: str) -> Shift:
    shift = find_active_shift(session, section)
    if shift is None:
        raise ConflictError(f"No active shift for section '{section}'")
    return shift


def increment_shift_total(uow, shift: Shift, amount_cents: int) -> Shift:
    """
    Atomically add to the drawer total of a still-active shift.

    Server-side increment, so concurrent terminals never lose an update.
    """
    result = uow.session.execute(
        update(Shift)
        .where(Shift.id == shift.id, Shift.status == SHIFT_ACTIVE)
        .values(
            total_amount_cents=Shift.total_amount_cents + amount_cents,
            version_id=Shift.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Shift {shift.id} is no longer active")
    uow.session.refresh(shift)
    uow.touch(shift)
    return shift


def _normalize_lines(lines: Any) -> dict[str, int]:
    """
    Accepts {item_id: qty}, [(item_id, qty)] or [{"item_id", "quantity"}].
    Duplicate item ids are summed; order of first appearance is kept.
    """
    if isinstance(lines, Mapping):
        pairs: Iterable = lines.items()
    else:
        pairs = lines or []

    quantities: dict[str, int] = {}
    for entry in pairs:
        if isinstance(entry, Mapping):
            item_id, quantity = entry.get("item_id"), entry.get("quantity")
        else:
            try:
                item_id, quantity = entry
            except (TypeError, ValueError):
                raise ValidationError("Each line must be an (item_id, quantity) pair")
        if not item_id:
            raise ValidationError("item_id is required on every line")
        quantities[str(item_id)] = quantities.get(str(item_id), 0) + require_count(quantity)

    if not quantities:
        raise ValidationError("At least one line is required")
    return quantities


def _load_section_items(session, section: str, item_ids: Iterable[str]) -> dict[str, Item]:
    ids = list(item_ids)
    items = {i.id: i for i in session.scalars(select(Item).where(Item.id.in_(ids)))}
    missing = [iid for iid in ids if iid not in items or items[iid].section != section]
    if missing:
        raise ConflictError(f"Unknown items for section '{section}': {', '.join(missing)}")
    return items


def _adjust_stock(uow, item: Item, delta: int, now) -> bool:
    """Conditional stock change; refuses (returns False) rather than go negative."""
    stmt = update(Item).where(Item.id == item.id)
    if delta < 0:
        stmt = stmt.where(Item.current_amount >= -delta)
    result = uow.session.execute(
        stmt.values(
            current_amount=Item.current_amount + delta,
            version_id=Item.version_id + 1,
            updated_at=now,
        ).execution_options(synchronize_session=False)
    )
    uow.session.refresh(item)
    if result.rowcount != 1:
        return False
    uow.touch(item)
    return True


class ShiftLedger:
    """Shift state machine per section: no-active-shift -> active -> closed."""

    def __init__(self, gateway, audit=None, supplier=None):
        self.gateway = gateway
        self.audit = audit
        self.supplier = supplier

    def _log(self, action_type: str, affected: str, details: str, actor: Optional[str], section: Optional[str]) -> None:
        if self.audit is not None:
            self.audit.record(action_type, affected, details, actor=actor, section=section)

    # =========================================================================
    # SHIFT LIFECYCLE
    # =========================================================================

    def start_shift(self, section: str, operator_id: str, operator_name: Optional[str] = None) -> Shift:
        """
        Open a new shift for a section.

        Raises:
            ConflictError: If the section already has an active shift
        """
        require_section(section)
        operator_id = require_text(operator_id, "operator_id")

        def _op(uow):
            existing = find_active_shift(uow.session, section)
            if existing is not None:
                raise ConflictError(f"Section '{section}' already has an active shift ({existing.id})")

            shift = Shift(
                id=new_id(),
                section=section,
                operator_id=operator_id,
                operator_name=operator_name or operator_id,
                status=SHIFT_ACTIVE,
                total_amount_cents=0,
                start_time=utcnow(),
                validation_status=STATUS_BALANCED,
            )
            uow.session.add(shift)
            uow.session.flush()
            uow.emit_entity(shift, actor_id=operator_id)
            return shift

        try:
            shift = self.gateway.run(_op)
        except IntegrityError:
            # Lost the race against another terminal: the partial unique index held
            raise ConflictError(f"Section '{section}' already has an active shift") from None

        logger.info("Shift %s started for %s by %s", shift.id, section, operator_id)
        self._log("shift_started", f"shift {shift.id}", f"operator={shift.operator_name}", operator_id, section)
        return shift

    def get_active_shift(self, section: str) -> Optional[Shift]:
        require_section(section)
        return self.gateway.run(lambda uow: find_active_shift(uow.session, section))

    def get_shift(self, shift_id: str) -> Optional[Shift]:
        return self.gateway.get(Shift, shift_id)

    def list_shifts(self, section: str, status: Optional[str] = None) -> list[Shift]:
        require_section(section)
        filters = {"section": section}
        if status is not None:
            filters["status"] = status
        return self.gateway.list(Shift, order_by=Shift.start_time.desc(), **filters)

    def get_shift_details(self, shift_id: str) -> Optional[dict]:
        """Shift with its sale lines, expenses, external money and supplies."""
        def _op(uow):
            shift = uow.session.get(Shift, shift_id)
            if shift is None:
                return None
            supplies = uow.session.scalars(
                select(Supply).where(Supply.shift_id == shift_id).order_by(Supply.timestamp)
            ).all()
            return {
                "shift": shift.to_dict(),
                "sales": [line.to_dict() for line in shift.sales],
                "expenses": [e.to_dict() for e in shift.expenses],
                "external_money": [e.to_dict() for e in shift.external_money],
                "supplies": [s.to_dict() for s in supplies],
            }

        return self.gateway.run(_op)

    # =========================================================================
    # SALES
    # =========================================================================

    def record_sale(
        self,
        section: str,
        lines: Any,
        *,
        is_paid: bool = True,
        customer_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> SaleResult:
        """
        Sell items against the section's active shift.

        Paid sales add their total to the drawer. Unpaid sales require a
        customer and create an unpaid CustomerPurchase instead.

        Raises:
            ValidationError: Malformed lines, or unpaid sale without customer
            ConflictError: No active shift, unknown item/customer, or any line
                would drive stock negative (nothing is applied)
        """
        require_section(section)
        quantities = _normalize_lines(lines)
        if not is_paid and not customer_id:
            raise ValidationError("customer_id is required for unpaid sales")

        def _op(uow):
            session = uow.session
            now = utcnow()
            shift = require_active_shift(session, section)

            customer = None
            if not is_paid:
                customer = session.get(Customer, customer_id)
                if customer is None or customer.section != section:
                    raise ConflictError(f"Customer {customer_id} not found in section '{section}'")

            items = _load_section_items(session, section, quantities)
            for item_id, quantity in quantities.items():
                item = items[item_id]
                if not _adjust_stock(uow, item, -quantity, now):
                    raise ConflictError(
                        f"Insufficient stock for '{item.name}' "
                        f"(requested {quantity}, available {item.current_amount})"
                    )

            total = sum(items[iid].sell_price_cents * qty for iid, qty in quantities.items())

            purchase = None
            if customer is not None:
                purchase = CustomerPurchase(
                    id=new_id(),
                    customer_id=customer.id,
                    customer_name=customer.name,
                    items=[
                        {
                            "item_id": iid,
                            "quantity": qty,
                            "price_cents": items[iid].sell_price_cents,
                            "name": items[iid].name,
                        }
                        for iid, qty in quantities.items()
                    ],
                    total_amount_cents=total,
                    original_amount_cents=total,
                    section=section,
                    shift_id=shift.id,
                    is_paid=False,
                    timestamp=now,
                )
                session.add(purchase)

            position = session.scalar(
                select(func.coalesce(func.max(ShiftSale.position), 0)).where(ShiftSale.shift_id == shift.id)
            )
            sale_lines = []
            for item_id, quantity in quantities.items():
                position += 1
                item = items[item_id]
                line = ShiftSale(
                    id=new_id(),
                    shift_id=shift.id,
                    position=position,
                    item_id=item_id,
                    name=item.name,
                    quantity=quantity,
                    unit_price_cents=item.sell_price_cents,
                    unit_cost_cents=item.cost_price_cents,
                    is_paid=is_paid,
                    customer_purchase_id=purchase.id if purchase is not None else None,
                    timestamp=now,
                )
                session.add(line)
                sale_lines.append(line)

            if is_paid and total > 0:
                increment_shift_total(uow, shift, total)
            session.flush()

            uow.emit_entity(shift, actor_id=actor, sale_total_cents=total)
            for item in items.values():
                uow.emit_entity(item, actor_id=actor)
            if purchase is not None:
                uow.emit_entity(purchase, actor_id=actor)
            return SaleResult(shift=shift, lines=sale_lines, total_cents=total, customer_purchase=purchase)

        result = self.gateway.run(_op)
        logger.debug("Sale of %s cents recorded on shift %s", result.total_cents, result.shift.id)
        return result

    # =========================================================================
    # EXPENSES / EXTERNAL MONEY
    # =========================================================================

    def record_expense(self, section: str, amount_cents: int, reason: str, *, actor: Optional[str] = None) -> Expense:
        """Cash out of the drawer. Never touches total_amount_cents."""
        return self._record_entry(Expense, section, amount_cents, reason, actor)

    def edit_expense(self, expense_id: str, *, amount_cents: Optional[int] = None, reason: Optional[str] = None, actor: Optional[str] = None) -> Expense:
        return self._edit_entry(Expense, expense_id, amount_cents, reason, actor)

    def delete_expense(self, expense_id: str, *, actor: Optional[str] = None) -> bool:
        return self._delete_entry(Expense, expense_id, actor)

    def record_external_money(self, section: str, amount_cents: int, reason: str, *, actor: Optional[str] = None) -> ExternalMoney:
        """Cash physically added to the drawer; counted in total_amount_cents at once."""
        return self._record_entry(ExternalMoney, section, amount_cents, reason, actor)

    def edit_external_money(self, entry_id: str, *, amount_cents: Optional[int] = None, reason: Optional[str] = None, actor: Optional[str] = None) -> ExternalMoney:
        return self._edit_entry(ExternalMoney, entry_id, amount_cents, reason, actor)

    def delete_external_money(self, entry_id: str, *, actor: Optional[str] = None) -> bool:
        return self._delete_entry(ExternalMoney, entry_id, actor)

    def _record_entry(self, model, section: str, amount_cents: int, reason: str, actor: Optional[str]):
        require_section(section)
        amount_cents = require_amount_cents(amount_cents)
        reason = require_text(reason, "reason")

        def _op(uow):
            shift = require_active_shift(uow.session, section)
            entry = model(
                id=new_id(),
                amount_cents=amount_cents,
                reason=reason[:255],
                shift_id=shift.id,
                section=section,
                timestamp=utcnow(),
                created_by=actor or shift.operator_id,
            )
            uow.session.add(entry)
            if model is ExternalMoney:
                increment_shift_total(uow, shift, amount_cents)
            uow.session.flush()
            uow.emit_entity(entry, actor_id=actor)
            if model is ExternalMoney:
                uow.emit_entity(shift, actor_id=actor)
            return entry

        return self.gateway.run(_op)

    def _load_active_entry(self, session, model, entry_id: str):
        entry = session.get(model, entry_id)
        if entry is None:
            raise ConflictError(f"{model.__name__} {entry_id} not found")
        shift = session.get(Shift, entry.shift_id)
        if shift is None or not shift.is_active:
            raise ConflictError(f"{model.__name__} {entry_id} belongs to a closed shift and cannot change")
        return entry, shift

    def _edit_entry(self, model, entry_id: str, amount_cents: Optional[int], reason: Optional[str], actor: Optional[str]):
        if amount_cents is None and reason is None:
            raise ValidationError("Nothing to change: provide amount_cents and/or reason")
        if amount_cents is not None:
            amount_cents = require_amount_cents(amount_cents)
        if reason is not None:
            reason = require_text(reason, "reason")

        def _op(uow):
            entry, shift = self._load_active_entry(uow.session, model, entry_id)
            before = entry.to_dict()
            if amount_cents is not None and amount_cents != entry.amount_cents:
                delta = amount_cents - entry.amount_cents
                entry.amount_cents = amount_cents
                if model is ExternalMoney:
                    # Drawer correction: the only case where an active shift total
                    # can go down (the recorded amount was wrong, see DESIGN.md)
                    increment_shift_total(uow, shift, delta)
            if reason is not None:
                entry.reason = reason[:255]
            uow.session.flush()
            uow.emit(
                EventTypes.SHIFT_CHANGED,
                {"entity": model.__tablename__, "data": entry.to_dict(), "shift": shift.to_dict()},
                shift.section,
                actor,
            )
            return entry, before

        entry, before = self.gateway.run(_op)
        self._log(
            f"{model.__tablename__}_edited",
            f"shift {entry.shift_id}",
            f"{before['amount_cents']} -> {entry.amount_cents}; {before['reason']!r} -> {entry.reason!r}",
            actor,
            entry.section,
        )
        return entry

    def _delete_entry(self, model, entry_id: str, actor: Optional[str]) -> bool:
        def _op(uow):
            if uow.session.get(model, entry_id) is None:
                return None
            entry, shift = self._load_active_entry(uow.session, model, entry_id)
            snapshot = entry.to_dict()
            if model is ExternalMoney:
                # Same drawer-correction exception to the non-decreasing total
                increment_shift_total(uow, shift, -entry.amount_cents)
            uow.session.delete(entry)
            uow.session.flush()
            uow.emit(
                EventTypes.SHIFT_CHANGED,
                {"entity": model.__tablename__, "id": entry_id, "deleted": True, "shift": shift.to_dict()},
                shift.section,
                actor,
            )
            return snapshot

        snapshot = self.gateway.run(_op)
        if snapshot is None:
            return False
        self._log(
            f"{model.__tablename__}_deleted",
            f"shift {snapshot['shift_id']}",
            f"{snapshot['amount_cents']} ({snapshot['reason']})",
            actor,
            snapshot["section"],
        )
        return True

    # =========================================================================
    # SUPPLIES
    # =========================================================================

    def apply_supply(
        self,
        section: str,
        items: Mapping,
        total_cost_cents: int,
        *,
        actor: str,
        on_credit: bool = False,
    ) -> Supply:
        """
        Receive stock. Links to the active shift (if any) so its cost is
        deducted from that shift's net figures at reconciliation.

        on_credit supplies in the supplement section also raise the
        supplier debt in the same transaction.
        """
        require_section(section)
        quantities = _normalize_lines(items)
        total_cost_cents = require_count(total_cost_cents, "total_cost_cents", allow_zero=True)
        actor = require_text(actor, "actor")
        if on_credit and self.supplier is None:
            raise ValidationError("Supplier account is not configured")

        def _op(uow):
            now = utcnow()
            loaded = _load_section_items(uow.session, section, quantities)
            for item_id, quantity in quantities.items():
                _adjust_stock(uow, loaded[item_id], quantity, now)

            shift = find_active_shift(uow.session, section)
            supply = Supply(
                id=new_id(),
                section=section,
                items=dict(quantities),
                total_cost_cents=total_cost_cents,
                shift_id=shift.id if shift is not None else None,
                on_credit=on_credit,
                timestamp=now,
                created_by=actor,
            )
            uow.session.add(supply)
            uow.session.flush()

            if on_credit and section == "supplement" and total_cost_cents > 0:
                self.supplier.apply_in(uow, TXN_DEBT, total_cost_cents, f"Supply {supply.id}", actor)

            uow.emit_entity(supply, actor_id=actor)
            for item in loaded.values():
                uow.emit_entity(item, actor_id=actor)
            return supply

        supply = self.gateway.run(_op)
        self._log(
            "supply_added",
            f"supply {supply.id}",
            f"{sum(quantities.values())} units, cost {format_cents(total_cost_cents)}",
            actor,
            section,
        )
        return supply

    # =========================================================================
    # CLOSE / RECONCILIATION
    # =========================================================================

    def _reconcile(self, session, shift: Shift, final_cash_cents: int, final_inventory: dict[str, int]) -> Reconciliation:
        expenses = session.scalar(
            select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(Expense.shift_id == shift.id)
        )
        external = session.scalar(
            select(func.coalesce(func.sum(ExternalMoney.amount_cents), 0)).where(ExternalMoney.shift_id == shift.id)
        )
        supply_cost = session.scalar(
            select(func.coalesce(func.sum(Supply.total_cost_cents), 0)).where(Supply.shift_id == shift.id)
        )
        expected = shift.total_amount_cents - expenses
        cash_difference = final_cash_cents - expected

        rec = Reconciliation(
            shift_id=shift.id,
            section=shift.section,
            total_amount_cents=shift.total_amount_cents,
            expenses_cents=expenses,
            external_cents=external,
            supply_cost_cents=supply_cost,
            expected_cash_cents=expected,
            final_cash_cents=final_cash_cents,
            cash_difference_cents=cash_difference,
        )

        if final_inventory:
            items = {i.id: i for i in session.scalars(select(Item).where(Item.id.in_(list(final_inventory))))}
            for item_id, declared in final_inventory.items():
                item = items.get(item_id)
                if item is None or item.section != shift.section:
                    raise ValidationError(f"Unknown item in final inventory: {item_id}")
                difference = declared - item.current_amount
                if difference == 0:
                    continue
                rec.inventory_differences[item_id] = {
                    "name": item.name,
                    "recorded": item.current_amount,
                    "declared": declared,
                    "difference": difference,
                }
                rec.discrepancies.append(f"{abs(difference)} {item.name} {'missing' if difference < 0 else 'extra'}")

        if abs(cash_difference) >= CASH_TOLERANCE_CENTS:
            rec.discrepancies.append(
                f"{format_cents(abs(cash_difference))} cash {'missing' if cash_difference < 0 else 'extra'}"
            )
        return rec

    def _stored_reconciliation(self, session, shift: Shift) -> Reconciliation:
        rec = self._reconcile(session, shift, shift.final_cash_cents or 0, {})
        rec.discrepancies = list(shift.discrepancies or [])
        rec.close_reason = shift.close_reason
        rec.committed = True
        return rec

    def preview_close(self, section: str, final_cash_cents: int, final_inventory: Optional[dict] = None) -> Reconciliation:
        return self.close_shift(section, final_cash_cents, final_inventory, dry_run=True)

    def close_shift(
        self,
        section: str,
        final_cash_cents: int,
        final_inventory: Optional[dict] = None,
        reason: Optional[str] = None,
        *,
        dry_run: bool = False,
        shift_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Reconciliation:
        """
        Close the section's active shift and reconcile it.

        expected cash = total_amount_cents - sum(expenses). A cash discrepancy
        exists when |final_cash - expected| >= 0.01; an inventory discrepancy
        for each declared count that differs from recorded stock.

        - dry_run=True: compute and return the reconciliation, change nothing
        - discrepancies and no reason: ReasonRequiredError, change nothing
        - otherwise: shift closed; declared counts replace recorded stock

        Passing shift_id of an already closed shift returns its stored
        reconciliation without changing anything.
        """
        require_section(section)
        final_cash_cents = require_count(final_cash_cents, "final_cash_cents", allow_zero=True)
        declared = {}
        for item_id, count in (final_inventory or {}).items():
            declared[str(item_id)] = require_count(count, f"final_inventory[{item_id}]", allow_zero=True)
        reason = reason.strip() if isinstance(reason, str) and reason.strip() else None

        def _op(uow):
            session = uow.session
            if shift_id is not None:
                shift = session.get(Shift, shift_id)
                if shift is None or shift.section != section:
                    raise ConflictError(f"Shift {shift_id} not found in section '{section}'")
                if shift.status == SHIFT_CLOSED:
                    return self._stored_reconciliation(session, shift), False
            else:
                shift = require_active_shift(session, section)

            rec = self._reconcile(session, shift, final_cash_cents, declared)
            if dry_run:
                return rec, False
            if rec.discrepancies and reason is None:
                raise ReasonRequiredError(rec.discrepancies, rec)

            now = utcnow()
            shift.status = SHIFT_CLOSED
            shift.end_time = now
            shift.final_cash_cents = final_cash_cents
            shift.final_inventory = dict(declared)
            shift.discrepancies = list(rec.discrepancies)
            shift.validation_status = rec.validation_status
            shift.close_reason = reason if rec.discrepancies else None
            shift.closed_by = actor or shift.operator_id

            # Physical count wins once the operator acknowledged the mismatch
            adjusted = []
            for item_id, diff in rec.inventory_differences.items():
                item = session.get(Item, item_id)
                item.current_amount = diff["declared"]
                item.updated_at = now
                adjusted.append(item)

            session.flush()
            rec.close_reason = shift.close_reason
            rec.committed = True
            uow.emit_entity(shift, actor_id=actor, reconciliation=rec.to_dict())
            for item in adjusted:
                uow.emit_entity(item, actor_id=actor)
            return rec, True

        rec, closed_now = self.gateway.run(_op)
        if closed_now:
            logger.info("Shift %s closed (%s)", rec.shift_id, rec.validation_status)
            self._log(
                "shift_closed",
                f"shift {rec.shift_id}",
                f"{rec.validation_status}: {'; '.join(rec.discrepancies) or 'no discrepancies'}"
                + (f" (reason: {rec.close_reason})" if rec.close_reason else ""),
                actor,
                section,
            )
        return rec
