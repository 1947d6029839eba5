"""
Supplier debt account tests: clamp-at-zero balance and its transaction trail.
"""

import random
from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from posledger.models import SupplementDebtTransaction, TXN_DEBT, TXN_PAYMENT
from posledger.services.supplier_service import replay_balance
from posledger.validation import ValidationError


def test_balance_starts_at_zero(services):
    assert services.supplier.get_balance().amount_cents == 0
    assert services.supplier.verify()


def test_debt_and_payment(services):
    services.supplier.apply_transaction(TXN_DEBT, 10000, "invoice 1", actor="admin")
    txn = services.supplier.apply_transaction(TXN_PAYMENT, 4000, actor="admin")

    assert txn.applied_cents == -4000
    assert txn.balance_after_cents == 6000
    assert services.supplier.get_balance().amount_cents == 6000


def test_overpayment_clamps_at_zero(services):
    services.supplier.apply_transaction(TXN_DEBT, 3000, actor="admin")
    txn = services.supplier.apply_transaction(TXN_PAYMENT, 5000, actor="admin")

    assert txn.amount_cents == 5000
    assert txn.applied_cents == -3000
    assert services.supplier.get_balance().amount_cents == 0

    # A later debt starts from zero, not from -2000
    services.supplier.apply_transaction(TXN_DEBT, 1000, actor="admin")
    assert services.supplier.get_balance().amount_cents == 1000
    assert services.supplier.verify()


def test_transactions_are_listed_oldest_first(services):
    for amount in (100, 200, 300):
        services.supplier.apply_transaction(TXN_DEBT, amount, actor="admin")
    assert [t.amount_cents for t in services.supplier.list_transactions()] == [100, 200, 300]
    assert [t.amount_cents for t in services.supplier.list_transactions(limit=2)] == [100, 200]


def test_applied_sum_matches_balance_for_any_order(services):
    rng = random.Random(20261019)
    for _ in range(25):
        txn_type = rng.choice([TXN_DEBT, TXN_PAYMENT])
        services.supplier.apply_transaction(txn_type, rng.randint(1, 5000), actor="admin")

    balance = services.supplier.get_balance().amount_cents
    txns = services.supplier.list_transactions()
    assert balance >= 0
    assert sum(t.applied_cents for t in txns) == balance
    assert replay_balance(txns) == balance
    assert services.supplier.verify()


def test_audit_entry_per_transaction(services):
    services.supplier.apply_transaction(TXN_DEBT, 500, "invoice", actor="admin")
    logs = services.audit.list(section="supplement")
    assert [log.action_type for log in logs] == ["supplier_debt"]
    assert logs[0].actor == "admin"


@pytest.mark.parametrize("txn_type,amount", [("refund", 100), (TXN_DEBT, 0), (TXN_PAYMENT, -5)])
def test_invalid_transactions(services, txn_type, amount):
    with pytest.raises(ValidationError):
        services.supplier.apply_transaction(txn_type, amount, actor="admin")
    assert services.supplier.list_transactions() == []


def test_actor_is_required(services):
    with pytest.raises(ValidationError):
        services.supplier.apply_transaction(TXN_DEBT, 100, actor="")


def test_replay_balance_on_plain_dicts():
    history = [
        {"type": TXN_DEBT, "amount_cents": 500},
        {"type": TXN_PAYMENT, "amount_cents": 800},
        {"type": TXN_DEBT, "amount_cents": 200},
        {"type": TXN_PAYMENT, "amount_cents": 50},
    ]
    assert replay_balance(history) == 150
    assert replay_balance([]) == 0


def test_replay_order_survives_timestamp_ties(services):
    services.supplier.apply_transaction(TXN_DEBT, 1000, actor="admin")
    services.supplier.apply_transaction(TXN_PAYMENT, 1500, actor="admin")
    services.supplier.apply_transaction(TXN_DEBT, 500, actor="admin")

    # Same instant for all three, ids sorting opposite to the real order
    with Session(services.gateway.remote_engine) as session:
        for sequence, new_id in ((1, "zz-first"), (2, "mm-second"), (3, "aa-third")):
            session.execute(
                update(SupplementDebtTransaction)
                .where(SupplementDebtTransaction.sequence == sequence)
                .values(id=new_id, timestamp=datetime(2026, 10, 1, 12))
            )
        session.commit()

    txns = services.supplier.list_transactions()
    assert [t.sequence for t in txns] == [1, 2, 3]
    assert [t.id for t in txns] == ["zz-first", "mm-second", "aa-third"]
    assert services.supplier.get_balance().amount_cents == 500
    assert services.supplier.verify()


def test_sequence_numbers_are_contiguous(services):
    for amount in (300, 100, 200):
        services.supplier.apply_transaction(TXN_DEBT, amount, actor="admin")
    assert [t.sequence for t in services.supplier.list_transactions()] == [1, 2, 3]
