# Overview: Service-layer operations for the supplement supplier debt account.

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..models import (
    SupplementDebt,
    SupplementDebtTransaction,
    SUPPLEMENT_DEBT_ID,
    TXN_DEBT,
    TXN_PAYMENT,
    VALID_TXN_TYPES,
    new_id,
)
from ..time_utils import utcnow
from ..validation import ValidationError, require_amount_cents, require_text
from .concurrency import lock_for_update
"""
Supplier Debt Invariants (authoritative)

- One balance row (id='current'), created lazily at zero.
- debt:    balance += amount
- payment: balance = max(0, balance - amount)
- Every change appends a transaction recording the signed change actually
  applied, so sum(applied_cents) == balance at every commit.
- Transactions are numbered from the balance row (next_sequence), so the
  trail has one total order even when timestamps tie.
- Replaying the requested amounts in sequence order with the clamp rule
  reproduces the balance.
"""

logger = logging.getLogger("posledger.supplier")


def replay_balance(transactions: Iterable) -> int:
    """Fold transactions (oldest first) into a balance with the clamp-at-zero rule."""
    balance = 0
    for txn in transactions:
        txn_type = txn["type"] if isinstance(txn, dict) else txn.type
        amount = txn["amount_cents"] if isinstance(txn, dict) else txn.amount_cents
        if txn_type == TXN_DEBT:
            balance += amount
        elif txn_type == TXN_PAYMENT:
            balance = max(0, balance - amount)
        else:
            raise ValidationError(f"Unknown transaction type: {txn_type}")
    return balance


def _load_debt(session, *, for_update: bool = False) -> SupplementDebt:
    stmt = select(SupplementDebt).where(SupplementDebt.id == SUPPLEMENT_DEBT_ID)
    if for_update:
        stmt = lock_for_update(stmt)
    debt = session.scalars(stmt).first()
    if debt is None:
        debt = SupplementDebt(
            id=SUPPLEMENT_DEBT_ID, amount_cents=0, next_sequence=1, last_updated=utcnow(), updated_by="system"
        )
        session.add(debt)
        session.flush()
    return debt


class SupplierDebtAccount:
    def __init__(self, gateway, audit=None):
        self.gateway = gateway
        self.audit = audit

    def _run(self, fn):
        try:
            return self.gateway.run(fn)
        except IntegrityError:
            # Another terminal created the balance row first; it exists now
            return self.gateway.run(fn)

    def get_balance(self) -> SupplementDebt:
        return self._run(lambda uow: _load_debt(uow.session))

    def apply_in(self, uow, txn_type: str, amount_cents: int, note: Optional[str], actor: str) -> SupplementDebtTransaction:
        """Apply one transaction inside an existing unit of work."""
        if txn_type not in VALID_TXN_TYPES:
            raise ValidationError(f"type must be one of {', '.join(VALID_TXN_TYPES)}")
        amount_cents = require_amount_cents(amount_cents)

        now = utcnow()
        debt = _load_debt(uow.session, for_update=True)
        before = debt.amount_cents
        if txn_type == TXN_DEBT:
            after = before + amount_cents
        else:
            after = max(0, before - amount_cents)

        sequence = debt.next_sequence
        debt.next_sequence = sequence + 1
        debt.amount_cents = after
        debt.last_updated = now
        debt.updated_by = actor

        txn = SupplementDebtTransaction(
            id=new_id(),
            type=txn_type,
            sequence=sequence,
            amount_cents=amount_cents,
            applied_cents=after - before,
            balance_after_cents=after,
            note=(note or "")[:255] or None,
            timestamp=now,
            created_by=actor,
        )
        uow.session.add(txn)
        uow.session.flush()
        uow.emit_entity(debt, actor_id=actor, transaction=txn.to_dict())
        return txn

    def apply_transaction(
        self,
        txn_type: str,
        amount_cents: int,
        note: Optional[str] = None,
        *,
        actor: str,
    ) -> SupplementDebtTransaction:
        """
        Record a supplier debt or payment.

        A payment larger than the balance zeroes it; applied_cents records
        the smaller effective change.
        """
        actor = require_text(actor, "actor")
        txn = self._run(lambda uow: self.apply_in(uow, txn_type, amount_cents, note, actor))
        if txn.applied_cents != (txn.amount_cents if txn.type == TXN_DEBT else -txn.amount_cents):
            logger.info("Supplier payment %s clamped to %s", txn.amount_cents, -txn.applied_cents)
        if self.audit is not None:
            self.audit.record(
                f"supplier_{txn.type}",
                "supplement supplier",
                f"{txn.amount_cents} cents; balance {txn.balance_after_cents}" + (f" ({txn.note})" if txn.note else ""),
                actor=actor,
                section="supplement",
            )
        return txn

    def list_transactions(self, limit: Optional[int] = None) -> list[SupplementDebtTransaction]:
        """Oldest first."""
        def _op(uow):
            stmt = select(SupplementDebtTransaction).order_by(SupplementDebtTransaction.sequence)
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(uow.session.scalars(stmt))

        return self.gateway.run(_op)

    replay_balance = staticmethod(replay_balance)

    def verify(self) -> bool:
        """True when the stored balance agrees with its transaction trail."""
        def _op(uow):
            debt = _load_debt(uow.session)
            txns = list(uow.session.scalars(
                select(SupplementDebtTransaction).order_by(SupplementDebtTransaction.sequence)
            ))
            return debt.amount_cents, txns

        balance, txns = self._run(_op)
        applied = sum(t.applied_cents for t in txns)
        replayed = replay_balance(txns)
        if applied != balance or replayed != balance:
            logger.error(
                "Supplier debt mismatch: balance=%s applied_sum=%s replayed=%s",
                balance, applied, replayed,
            )
            return False
        return True
