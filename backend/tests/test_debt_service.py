"""
Customer debt ledger tests: FIFO allocation, drawer deposit, corrections.
"""

from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from posledger.models import CustomerPayment, CustomerPurchase
from posledger.validation import ConflictError, ValidationError


@pytest.fixture
def debtor(services, make_item, make_customer):
    """Customer with P1 (oldest, 10.00) and P2 (15.00) unpaid, active store shift."""
    services.shifts.start_shift("store", "op-1")
    customer = make_customer()
    cheap = make_item(name="Rice", price=1000, cost=700)
    dear = make_item(name="Oil", price=1500, cost=1000)

    # Created newest-first; the explicit timestamps below define the order
    p2 = services.shifts.record_sale("store", {dear.id: 1}, is_paid=False, customer_id=customer.id).customer_purchase
    p1 = services.shifts.record_sale("store", {cheap.id: 1}, is_paid=False, customer_id=customer.id).customer_purchase
    with Session(services.gateway.remote_engine) as session:
        session.execute(update(CustomerPurchase).where(CustomerPurchase.id == p1.id).values(timestamp=datetime(2026, 1, 1, 9)))
        session.execute(update(CustomerPurchase).where(CustomerPurchase.id == p2.id).values(timestamp=datetime(2026, 1, 1, 10)))
        session.commit()
    return customer, p1, p2


def _purchase(services, purchase_id):
    return services.gateway.get(CustomerPurchase, purchase_id)


class TestFifoPayments:
    def test_partial_payment_settles_oldest_first(self, services, debtor):
        customer, p1, p2 = debtor
        result = services.debts.pay_debt(customer.id, 1200, actor="op-1")

        assert result.settled_ids == [p1.id]
        assert result.reduced_id == p2.id
        assert result.remaining_debt_cents == 1300
        assert _purchase(services, p1.id).is_paid is True
        assert _purchase(services, p2.id).is_paid is False
        assert _purchase(services, p2.id).total_amount_cents == 1300
        assert _purchase(services, p2.id).original_amount_cents == 1500

    def test_full_amount_settles_everything(self, services, debtor):
        customer, p1, p2 = debtor
        result = services.debts.pay_debt(customer.id, 2500)

        assert result.settled_ids == [p1.id, p2.id]
        assert result.reduced_id is None
        assert result.remaining_debt_cents == 0
        assert services.debts.compute_debt(customer.id).total_cents == 0

    def test_payment_is_deposited_into_the_drawer(self, services, debtor):
        customer, _, _ = debtor
        services.debts.pay_debt(customer.id, 1200)
        assert services.shifts.get_active_shift("store").total_amount_cents == 1200

    def test_payment_leaves_a_record_and_audit_entry(self, services, debtor):
        customer, p1, p2 = debtor
        result = services.debts.pay_debt(customer.id, 1200, actor="op-1")

        payment = services.gateway.get(CustomerPayment, result.payment.id)
        assert payment.amount_cents == 1200
        assert payment.purchase_ids == [p1.id, p2.id]
        assert payment.reduced_purchase_id == p2.id
        assert "debt_payment" in [log.action_type for log in services.audit.list(section="store")]

    def test_partial_can_be_refused(self, services, debtor):
        customer, p1, _ = debtor
        with pytest.raises(ConflictError):
            services.debts.pay_debt(customer.id, 1200, allow_partial=False)
        # Nothing applied
        assert _purchase(services, p1.id).is_paid is False
        assert services.shifts.get_active_shift("store").total_amount_cents == 0

        result = services.debts.pay_debt(customer.id, 1000, allow_partial=False)
        assert result.settled_ids == [p1.id]

    def test_settle_all(self, services, debtor):
        customer, p1, p2 = debtor
        result = services.debts.settle_all(customer.id)
        assert result.payment.amount_cents == 2500
        assert set(result.settled_ids) == {p1.id, p2.id}


class TestPaymentRejections:
    @pytest.mark.parametrize("amount", [0, -100, 12.5])
    def test_amount_must_be_positive_cents(self, services, debtor, amount):
        customer, _, _ = debtor
        with pytest.raises(ValidationError):
            services.debts.pay_debt(customer.id, amount)

    def test_overpayment_is_rejected(self, services, debtor):
        customer, _, _ = debtor
        with pytest.raises(ValidationError, match="exceeds outstanding"):
            services.debts.pay_debt(customer.id, 2501)

    def test_requires_active_shift(self, services, debtor):
        customer, _, _ = debtor
        services.shifts.close_shift("store", 0)
        with pytest.raises(ConflictError, match="No active shift"):
            services.debts.pay_debt(customer.id, 500)
        assert services.debts.compute_debt(customer.id).total_cents == 2500

    def test_unknown_customer(self, services, debtor):
        with pytest.raises(ConflictError):
            services.debts.pay_debt("ghost", 500)

    def test_customer_without_debt(self, services, debtor, make_customer):
        other = make_customer(name="Sara")
        with pytest.raises(ConflictError, match="no unpaid debt"):
            services.debts.pay_debt(other.id, 500)


class TestQueries:
    def test_compute_debt_with_cost_and_profit(self, services, debtor):
        customer, p1, p2 = debtor
        debt = services.debts.compute_debt(customer.id)

        assert debt.total_cents == 2500
        assert debt.cost_cents == 1700
        assert debt.profit_cents == 800
        assert [p.id for p in debt.purchases] == [p1.id, p2.id]
        assert services.debts.compute_debt("ghost") is None

    def test_unpaid_and_debtors_by_section(self, services, debtor, make_customer):
        customer, p1, p2 = debtor
        make_customer(name="Nobody owes")

        assert [p.id for p in services.debts.get_unpaid("store")] == [p1.id, p2.id]
        assert services.debts.get_unpaid("supplement") == []
        debtors = services.debts.list_debtors("store")
        assert [(d.customer_id, d.total_cents) for d in debtors] == [(customer.id, 2500)]


class TestCorrections:
    def test_update_unpaid_purchase(self, services, debtor):
        customer, _, p2 = debtor
        services.debts.update_purchase(p2.id, 1100, actor="admin")
        assert services.debts.compute_debt(customer.id).total_cents == 2100
        assert "purchase_corrected" in [log.action_type for log in services.audit.list(section="store")]

    def test_correction_cannot_raise_the_debt(self, services, debtor):
        customer, _, p2 = debtor
        with pytest.raises(ValidationError):
            services.debts.update_purchase(p2.id, 50000, actor="admin")

        assert _purchase(services, p2.id).total_amount_cents == 1500
        assert services.debts.compute_debt(customer.id).total_cents == 2500
        # Restating the same amount is allowed and changes nothing
        services.debts.update_purchase(p2.id, 1500, actor="admin")
        assert services.debts.compute_debt(customer.id).total_cents == 2500

    def test_paid_purchase_is_frozen(self, services, debtor):
        customer, p1, _ = debtor
        services.debts.pay_debt(customer.id, 1000)
        with pytest.raises(ConflictError):
            services.debts.update_purchase(p1.id, 900)

    def test_customer_with_debt_cannot_be_deleted(self, services, debtor):
        customer, _, _ = debtor
        with pytest.raises(ConflictError):
            services.catalog.delete_customer(customer.id, actor="admin")

        services.debts.settle_all(customer.id)
        assert services.catalog.delete_customer(customer.id, actor="admin") is True
        assert services.debts.get_unpaid("store") == []
