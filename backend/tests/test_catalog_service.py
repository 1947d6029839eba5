"""
Catalog tests: item, category and customer administration.
"""

import pytest

from posledger.models import Category, Item
from posledger.validation import ConflictError, ValidationError


class TestItems:
    def test_create_and_list(self, services, make_item):
        make_item(name="Water")
        make_item(name="Apple")
        make_item(name="Whey", section="supplement")

        assert [i.name for i in services.catalog.list_items("store")] == ["Apple", "Water"]
        assert [i.name for i in services.catalog.list_items("supplement")] == ["Whey"]

    @pytest.mark.parametrize("payload", [
        {"name": "X", "section": "store", "sell_price_cents": 100},
        {"name": "X", "section": "store", "sell_price_cents": 1.5, "cost_price_cents": 1},
        {"name": "X", "section": "store", "sell_price_cents": -1, "cost_price_cents": 1},
        {"name": "X", "section": "garage", "sell_price_cents": 100, "cost_price_cents": 1},
        {"name": "", "section": "store", "sell_price_cents": 100, "cost_price_cents": 1},
        {"name": "X", "section": "store", "sell_price_cents": 100, "cost_price_cents": 1, "version_id": 9},
    ])
    def test_create_rejects_bad_payloads(self, services, payload):
        with pytest.raises(ValidationError):
            services.catalog.create_item(payload, actor="admin")

    def test_update_item(self, services, make_item):
        item = make_item(price=1000)
        updated = services.catalog.update_item(item.id, {"sell_price_cents": "1250"}, actor="admin")

        assert updated.sell_price_cents == 1250
        assert updated.version_id > item.version_id
        logs = services.audit.list(section="store")
        assert logs[0].action_type == "item_updated"
        assert "sell_price_cents: 1000 -> 1250" in logs[0].details

    def test_update_cannot_move_sections(self, services, make_item):
        item = make_item()
        with pytest.raises(ValidationError):
            services.catalog.update_item(item.id, {"section": "supplement"}, actor="admin")

    def test_update_missing_item(self, services):
        with pytest.raises(ConflictError):
            services.catalog.update_item("ghost", {"name": "X"}, actor="admin")

    def test_noop_update_is_not_logged(self, services, make_item):
        item = make_item(name="Cola")
        before = len(services.audit.list())
        services.catalog.update_item(item.id, {"name": "Cola"}, actor="admin")
        assert len(services.audit.list()) == before

    def test_delete_item(self, services, make_item):
        item = make_item()
        assert services.catalog.delete_item(item.id, actor="admin") is True
        assert services.catalog.get_item(item.id) is None
        assert services.catalog.delete_item(item.id, actor="admin") is False


class TestCategories:
    def test_rename(self, services):
        category = services.catalog.create_category({"name": "Drinks", "section": "store"}, actor="admin")
        services.catalog.rename_category(category.id, "Cold drinks", actor="admin")
        assert [c.name for c in services.catalog.list_categories("store")] == ["Cold drinks"]

    def test_delete_does_not_cascade_to_items(self, services):
        category = services.catalog.create_category({"name": "Drinks", "section": "store"}, actor="admin")
        item = services.catalog.create_item(
            {
                "name": "Cola",
                "section": "store",
                "sell_price_cents": 1000,
                "cost_price_cents": 600,
                "category_id": category.id,
            },
            actor="admin",
        )

        assert services.catalog.delete_category(category.id, actor="admin") is True
        assert services.gateway.get(Category, category.id) is None
        survivor = services.gateway.get(Item, item.id)
        assert survivor is not None
        assert survivor.category_id == category.id

    def test_rename_missing(self, services):
        with pytest.raises(ConflictError):
            services.catalog.rename_category("ghost", "X", actor="admin")


class TestCustomers:
    def test_create_and_list(self, services, make_customer):
        make_customer(name="Sara")
        make_customer(name="Ahmed")
        make_customer(name="Lina", section="supplement")
        assert [c.name for c in services.catalog.list_customers("store")] == ["Ahmed", "Sara"]

    def test_delete_customer_without_debt(self, services, make_customer):
        customer = make_customer()
        assert services.catalog.delete_customer(customer.id, actor="admin") is True
        assert services.catalog.get_customer(customer.id) is None
        assert services.catalog.delete_customer(customer.id, actor="admin") is False


def test_failed_audit_write_does_not_fail_the_mutation(services, monkeypatch):
    def broken_run(fn):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(services.audit, "gateway", type("BrokenGateway", (), {"run": staticmethod(broken_run)})())
    item = services.catalog.create_item(
        {"name": "Tea", "section": "store", "sell_price_cents": 300, "cost_price_cents": 100},
        actor="admin",
    )
    assert services.catalog.get_item(item.id).name == "Tea"
