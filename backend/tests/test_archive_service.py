"""
Period archival tests: aggregate snapshot plus atomic purge of one section.
"""

import pytest

from posledger.models import CustomerPurchase, Expense, Item, Shift, ShiftSale
from posledger.services.archive_service import PeriodArchiver
from posledger.validation import ConflictError, ValidationError


@pytest.fixture
def store_period(services, make_item, make_customer):
    """One closed store shift with sales, an expense, external money and one unpaid purchase."""
    cola = make_item(name="Cola", price=1000, cost=600, stock=20)
    chips = make_item(name="Chips", price=500, cost=200, stock=20)
    customer = make_customer()

    services.shifts.start_shift("store", "op-1")
    services.shifts.record_sale("store", {cola.id: 2, chips.id: 1})
    services.shifts.record_sale("store", {cola.id: 1})
    services.shifts.record_sale("store", {chips.id: 2}, is_paid=False, customer_id=customer.id)
    services.shifts.record_expense("store", 300, "ice")
    services.shifts.record_external_money("store", 1000, "float")
    services.shifts.close_shift("store", 4200)
    return cola, chips, customer


def _count(services, model, **filters):
    return len(services.gateway.list(model, **filters))


def test_summary_without_writing(services, store_period):
    cola, chips, _ = store_period
    summary = services.archiver.summarize("store")

    assert summary.total_revenue_cents == 4500
    assert summary.total_cost_cents == 2400
    assert summary.total_profit_cents == 2100
    assert summary.total_expenses_cents == 300
    assert summary.total_external_cents == 1000
    assert summary.shifts_count == 1
    assert summary.items_sold[cola.id] == {"name": "Cola", "quantity": 3, "revenue_cents": 3000}
    assert summary.items_sold[chips.id]["quantity"] == 3
    assert services.archiver.list_archives("store") == []


def test_reset_period_archives_and_purges(services, store_period):
    _, _, customer = store_period
    archive = services.archiver.reset_period("store", actor="admin", month="2026-09")

    assert archive.month == "2026-09"
    assert archive.year == 2026
    assert archive.total_revenue_cents == 4500
    assert archive.total_profit_cents == 2100
    assert archive.shifts_count == 1

    assert _count(services, Shift, section="store") == 0
    assert _count(services, ShiftSale) == 0
    assert _count(services, Expense, section="store") == 0
    # Catalog and unpaid debt survive the reset
    assert _count(services, Item, section="store") == 2
    assert services.debts.compute_debt(customer.id).total_cents == 1000

    assert services.archiver.get_archive(archive.id).to_dict()["month"] == "2026-09"
    assert [a.id for a in services.archiver.list_archives("store")] == [archive.id]
    assert "period_archived" in [log.action_type for log in services.audit.list(section="store")]


def test_purging_unpaid_debt_on_request(services, store_period):
    services.archiver.reset_period("store", actor="admin", month="2026-09", keep_unpaid_debt=False)
    assert _count(services, CustomerPurchase, section="store") == 0


def test_other_section_is_untouched(services, store_period, make_item):
    item = make_item(section="supplement", price=2000, stock=5)
    services.shifts.start_shift("supplement", "op-2")
    services.shifts.record_sale("supplement", {item.id: 1})

    services.archiver.reset_period("store", actor="admin", month="2026-09")

    assert services.shifts.get_active_shift("supplement").total_amount_cents == 2000
    assert services.archiver.summarize("supplement").total_revenue_cents == 2000


def test_rejected_while_a_shift_is_active(services, store_period):
    services.shifts.start_shift("store", "op-1")
    with pytest.raises(ConflictError):
        services.archiver.reset_period("store", actor="admin", month="2026-09")
    assert services.archiver.list_archives("store") == []


def test_month_can_only_be_archived_once(services, store_period):
    services.archiver.reset_period("store", actor="admin", month="2026-09")
    with pytest.raises(ConflictError):
        services.archiver.reset_period("store", actor="admin", month="2026-09")


@pytest.mark.parametrize("month", ["2026-13", "26-01", "September", "2026/09"])
def test_month_format(services, month):
    with pytest.raises(ValidationError):
        services.archiver.reset_period("store", actor="admin", month=month)


def test_failure_during_purge_leaves_nothing_behind(services, store_period, monkeypatch):
    def broken_purge(self, uow, section, *, keep_unpaid_debt):
        uow.purge(ShiftSale, ShiftSale.id.isnot(None))
        raise RuntimeError("disk full")

    monkeypatch.setattr(PeriodArchiver, "_purge", broken_purge)
    with pytest.raises(RuntimeError):
        services.archiver.reset_period("store", actor="admin", month="2026-09")

    assert services.archiver.list_archives("store") == []
    assert _count(services, Shift, section="store") == 1
    assert _count(services, ShiftSale) == 4
