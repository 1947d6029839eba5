# Overview: Customer credit ledger; unpaid purchases and FIFO debt payments into the open drawer.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select

from ..models import Customer, CustomerPayment, CustomerPurchase, Item, new_id
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ValidationError,
    require_amount_cents,
    require_section,
)
from .concurrency import lock_for_update
from .shift_service import format_cents, increment_shift_total, require_active_shift

logger = logging.getLogger("posledger.debts")


@dataclass
class CustomerDebt:
    """Outstanding debt of one customer. cost/profit are informational only."""
    customer_id: str
    customer_name: str
    total_cents: int = 0
    cost_cents: int = 0
    profit_cents: int = 0
    purchases: list[CustomerPurchase] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "total_cents": self.total_cents,
            "cost_cents": self.cost_cents,
            "profit_cents": self.profit_cents,
            "purchases": [p.to_dict() for p in self.purchases],
        }


@dataclass
class DebtPayment:
    payment: CustomerPayment
    settled_ids: list[str]
    reduced_id: Optional[str]
    remaining_debt_cents: int

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "settled_ids": self.settled_ids,
            "reduced_id": self.reduced_id,
            "remaining_debt_cents": self.remaining_debt_cents,
        }


def _unpaid_query(customer_id: str):
    # Oldest first; id breaks timestamp ties deterministically
    return (
        select(CustomerPurchase)
        .where(CustomerPurchase.customer_id == customer_id, CustomerPurchase.is_paid.is_(False))
        .order_by(CustomerPurchase.timestamp, CustomerPurchase.id)
    )


def _build_debt(session, customer_id: str, customer_name: str, purchases: list[CustomerPurchase]) -> CustomerDebt:
    debt = CustomerDebt(customer_id=customer_id, customer_name=customer_name, purchases=list(purchases))
    item_ids = {line.get("item_id") for p in purchases for line in (p.items or [])}
    costs = {}
    if item_ids:
        costs = {
            row.id: row.cost_price_cents
            for row in session.execute(select(Item.id, Item.cost_price_cents).where(Item.id.in_(item_ids)))
        }
    for purchase in purchases:
        debt.total_cents += purchase.total_amount_cents
        for line in purchase.items or []:
            # Current cost price; items deleted since the sale count as zero cost
            debt.cost_cents += costs.get(line.get("item_id"), 0) * int(line.get("quantity") or 0)
    debt.profit_cents = debt.total_cents - debt.cost_cents
    return debt


class CustomerDebtLedger:
    """
    Customer debt per section.

    INVARIANTS:
    - Payments require an active shift in the customer's section; the full
      amount is deposited into that shift's drawer total
    - Allocation is FIFO: oldest unpaid purchase first
    - A paid purchase is never modified again
    - Every payment leaves a CustomerPayment row and an admin log entry
    """

    def __init__(self, gateway, audit=None):
        self.gateway = gateway
        self.audit = audit

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_unpaid(self, section: str) -> list[CustomerPurchase]:
        require_section(section)

        def _op(uow):
            stmt = (
                select(CustomerPurchase)
                .where(CustomerPurchase.section == section, CustomerPurchase.is_paid.is_(False))
                .order_by(CustomerPurchase.timestamp, CustomerPurchase.id)
            )
            return list(uow.session.scalars(stmt))

        return self.gateway.run(_op)

    def compute_debt(self, customer_id: str) -> Optional[CustomerDebt]:
        """Outstanding debt for one customer, or None if the customer does not exist."""
        def _op(uow):
            customer = uow.session.get(Customer, customer_id)
            if customer is None:
                return None
            purchases = list(uow.session.scalars(_unpaid_query(customer_id)))
            return _build_debt(uow.session, customer.id, customer.name, purchases)

        return self.gateway.run(_op)

    def list_debtors(self, section: str) -> list[CustomerDebt]:
        """Customers of the section with outstanding debt, largest first."""
        require_section(section)

        def _op(uow):
            stmt = (
                select(CustomerPurchase)
                .where(CustomerPurchase.section == section, CustomerPurchase.is_paid.is_(False))
                .order_by(CustomerPurchase.timestamp, CustomerPurchase.id)
            )
            grouped: dict[str, list[CustomerPurchase]] = {}
            for purchase in uow.session.scalars(stmt):
                grouped.setdefault(purchase.customer_id, []).append(purchase)
            debts = [
                _build_debt(uow.session, customer_id, purchases[-1].customer_name, purchases)
                for customer_id, purchases in grouped.items()
            ]
            debts.sort(key=lambda d: (-d.total_cents, d.customer_name))
            return debts

        return self.gateway.run(_op)

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def pay_debt(
        self,
        customer_id: str,
        amount_cents: int,
        *,
        allow_partial: bool = True,
        actor: Optional[str] = None,
    ) -> DebtPayment:
        """
        Pay down a customer's debt, oldest purchase first.

        The last purchase reached may be partially reduced and stay unpaid.
        With allow_partial=False the amount must settle whole purchases only.

        Raises:
            ValidationError: amount <= 0 or larger than the outstanding debt
            ConflictError: unknown customer, no active shift, no debt, or a
                split purchase while allow_partial=False
        """
        amount_cents = require_amount_cents(amount_cents)
        return self._pay(customer_id, amount_cents, allow_partial=allow_partial, actor=actor)

    def settle_all(self, customer_id: str, *, actor: Optional[str] = None) -> DebtPayment:
        """Pay the customer's entire outstanding debt."""
        return self._pay(customer_id, None, allow_partial=True, actor=actor)

    def _pay(self, customer_id: str, amount_cents: Optional[int], *, allow_partial: bool, actor: Optional[str]) -> DebtPayment:
        def _op(uow):
            session = uow.session
            now = utcnow()
            customer = session.get(Customer, customer_id)
            if customer is None:
                raise ConflictError(f"Customer {customer_id} not found")
            shift = require_active_shift(session, customer.section)

            unpaid = list(session.scalars(lock_for_update(_unpaid_query(customer_id))))
            outstanding = sum(p.total_amount_cents for p in unpaid)
            if outstanding <= 0:
                raise ConflictError(f"Customer '{customer.name}' has no unpaid debt")

            amount = outstanding if amount_cents is None else amount_cents
            if amount > outstanding:
                raise ValidationError(
                    f"Payment {format_cents(amount)} exceeds outstanding debt {format_cents(outstanding)}"
                )

            remaining = amount
            settled_ids: list[str] = []
            reduced_id = None
            touched = []
            for purchase in unpaid:
                if remaining <= 0:
                    break
                if remaining >= purchase.total_amount_cents:
                    remaining -= purchase.total_amount_cents
                    purchase.is_paid = True
                    purchase.paid_at = now
                    settled_ids.append(purchase.id)
                else:
                    if not allow_partial:
                        raise ConflictError(
                            f"Payment would only partially cover purchase {purchase.id}; "
                            "pay whole purchases or allow partial payment"
                        )
                    purchase.total_amount_cents -= remaining
                    remaining = 0
                    reduced_id = purchase.id
                touched.append(purchase)

            increment_shift_total(uow, shift, amount)

            payment = CustomerPayment(
                id=new_id(),
                customer_id=customer.id,
                amount_cents=amount,
                purchase_ids=[p.id for p in touched],
                reduced_purchase_id=reduced_id,
                shift_id=shift.id,
                section=customer.section,
                created_by=actor or shift.operator_id,
                timestamp=now,
            )
            session.add(payment)
            session.flush()

            for purchase in touched:
                uow.emit_entity(purchase, actor_id=actor)
            uow.emit_entity(payment, actor_id=actor)
            uow.emit_entity(shift, actor_id=actor)
            return DebtPayment(
                payment=payment,
                settled_ids=settled_ids,
                reduced_id=reduced_id,
                remaining_debt_cents=outstanding - amount,
            ), customer

        result, customer = self.gateway.run(_op)
        logger.info("Debt payment %s from customer %s", result.payment.amount_cents, customer.id)
        if self.audit is not None:
            details = f"{format_cents(result.payment.amount_cents)} into shift {result.payment.shift_id}; settled {len(result.settled_ids)}"
            if result.reduced_id:
                details += f", reduced {result.reduced_id}"
            self.audit.record("debt_payment", customer.name, details, actor=actor, section=customer.section)
        return result

    # =========================================================================
    # ADMIN CORRECTIONS
    # =========================================================================

    def update_purchase(self, purchase_id: str, total_amount_cents: int, *, actor: Optional[str] = None) -> CustomerPurchase:
        """Reduce the outstanding amount of an unpaid purchase (corrections never add debt)."""
        total_amount_cents = require_amount_cents(total_amount_cents, "total_amount_cents")

        def _op(uow):
            purchase = uow.session.get(CustomerPurchase, purchase_id)
            if purchase is None:
                raise ConflictError(f"Purchase {purchase_id} not found")
            if purchase.is_paid:
                raise ConflictError(f"Purchase {purchase_id} is paid and cannot change")
            previous = purchase.total_amount_cents
            if total_amount_cents > previous:
                raise ValidationError(
                    f"Correction can only reduce the amount owed ({format_cents(previous)}); "
                    "record a new sale for additional debt"
                )
            purchase.total_amount_cents = total_amount_cents
            uow.session.flush()
            uow.emit_entity(purchase, actor_id=actor)
            return purchase, previous

        purchase, previous = self.gateway.run(_op)
        if self.audit is not None and previous != total_amount_cents:
            self.audit.record(
                "purchase_corrected",
                purchase.customer_name,
                f"purchase {purchase.id}: {format_cents(previous)} -> {format_cents(total_amount_cents)}",
                actor=actor,
                section=purchase.section,
            )
        return purchase
