# Overview: Service-layer operations for items, categories and customers.

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from ..models import Category, Customer, CustomerPurchase, Item
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_item,
    require_section,
    validate_payload,
)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sell_price_cents", "cost_price_cents", "current_amount", "category_id", "section"},
    required_on_create={"name", "sell_price_cents", "cost_price_cents", "section"},
)

# Section is fixed at creation; moving an item across sections would leak
# stock between the two independent stores.
ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "sell_price_cents", "cost_price_cents", "current_amount", "category_id"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "section"},
    required_on_create={"name", "section"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "section"},
    required_on_create={"name", "section"},
)


class Catalog:
    """
    Administrative CRUD for items, categories and customers.

    Writes go through the gateway's upsert so every change is published and
    mirrored like any other entity.
    """

    def __init__(self, gateway, audit=None):
        self.gateway = gateway
        self.audit = audit

    def _log(self, action_type: str, affected: str, details: str, actor: Optional[str], section: Optional[str]) -> None:
        if self.audit is not None:
            self.audit.record(action_type, affected, details, actor=actor, section=section)

    # =========================================================================
    # ITEMS
    # =========================================================================

    def create_item(self, payload: dict, *, actor: Optional[str] = None) -> Item:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
        enforce_rules_item(patch)
        now = utcnow()
        item = Item(
            current_amount=patch.pop("current_amount", 0) or 0,
            created_at=now,
            updated_at=now,
            **patch,
        )
        saved = self.gateway.save(item, actor_id=actor)
        self._log("item_created", saved.name, f"stock={saved.current_amount}", actor, saved.section)
        return saved

    def update_item(self, item_id: str, payload: dict, *, actor: Optional[str] = None) -> Item:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_UPDATE_POLICY, partial=True)
        enforce_rules_item(patch)

        def _op(uow):
            item = uow.session.get(Item, item_id)
            if item is None:
                raise ConflictError(f"Item {item_id} not found")
            before = item.to_dict()
            for key, value in patch.items():
                setattr(item, key, value)
            if item.to_dict() == before:
                return item, {}
            item.updated_at = utcnow()
            uow.session.flush()
            uow.emit_entity(item, actor_id=actor)
            changed = {k: (before[k], v) for k, v in patch.items() if before.get(k) != v}
            return item, changed

        item, changed = self.gateway.run(_op)
        if changed:
            details = ", ".join(f"{k}: {old} -> {new}" for k, (old, new) in sorted(changed.items()))
            self._log("item_updated", item.name, details, actor, item.section)
        return item

    def delete_item(self, item_id: str, *, actor: Optional[str] = None) -> bool:
        item = self.gateway.get(Item, item_id)
        if item is None:
            return False
        deleted = self.gateway.delete(Item, item_id, actor_id=actor)
        if deleted:
            self._log("item_deleted", item.name, "", actor, item.section)
        return deleted

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.gateway.get(Item, item_id)

    def list_items(self, section: str, category_id: Optional[str] = None) -> list[Item]:
        require_section(section)
        filters = {"section": section}
        if category_id is not None:
            filters["category_id"] = category_id
        return self.gateway.list(Item, order_by=Item.name, **filters)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def create_category(self, payload: dict, *, actor: Optional[str] = None) -> Category:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        return self.gateway.save(Category(created_at=utcnow(), **patch), actor_id=actor)

    def rename_category(self, category_id: str, name: str, *, actor: Optional[str] = None) -> Category:
        patch = validate_payload(model=Category, payload={"name": name}, policy=CATEGORY_POLICY, partial=True)
        category = self.gateway.get(Category, category_id)
        if category is None:
            raise ConflictError(f"Category {category_id} not found")
        category.name = patch["name"]
        return self.gateway.save(category, actor_id=actor)

    def delete_category(self, category_id: str, *, actor: Optional[str] = None) -> bool:
        """Remove the category only; its items keep the dangling reference."""
        return self.gateway.delete(Category, category_id, actor_id=actor)

    def list_categories(self, section: str) -> list[Category]:
        require_section(section)
        return self.gateway.list(Category, order_by=Category.name, section=section)

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def create_customer(self, payload: dict, *, actor: Optional[str] = None) -> Customer:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        return self.gateway.save(Customer(created_at=utcnow(), **patch), actor_id=actor)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.gateway.get(Customer, customer_id)

    def list_customers(self, section: str) -> list[Customer]:
        require_section(section)
        return self.gateway.list(Customer, order_by=Customer.name, section=section)

    def delete_customer(self, customer_id: str, *, actor: Optional[str] = None) -> bool:
        """Delete a customer with no outstanding debt, along with their settled purchases."""
        def _op(uow):
            customer = uow.session.get(Customer, customer_id)
            if customer is None:
                return None
            unpaid = uow.session.scalars(
                select(CustomerPurchase.id).where(
                    CustomerPurchase.customer_id == customer_id,
                    CustomerPurchase.is_paid.is_(False),
                ).limit(1)
            ).first()
            if unpaid is not None:
                raise ConflictError(f"Customer '{customer.name}' still has unpaid purchases")
            uow.purge(CustomerPurchase, CustomerPurchase.customer_id == customer_id)
            uow.session.delete(customer)
            uow.emit(
                Customer.__event_type__,
                {"entity": Customer.__tablename__, "id": customer_id, "deleted": True},
                customer.section,
                actor,
            )
            return customer

        customer = self.gateway.run(_op)
        if customer is None:
            return False
        self._log("customer_deleted", customer.name, "", actor, customer.section)
        return True
