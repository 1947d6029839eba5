# Overview: Flask API routes for items, categories and customers; parses input and returns JSON responses.

"""
Catalog API Routes

DESIGN:
- Every list is scoped by ?section=store|supplement
- Writes are attributed to the X-Actor-Id header
- Deleting a category leaves its items in place (dangling category_id)
- Deleting a customer with unpaid debt is rejected (409)
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, with_actor
from ..services import get_services


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# ITEMS
# =============================================================================

@catalog_bp.get("/items")
@api_errors("list items")
def list_items_route():
    section = request.args.get("section")
    category_id = request.args.get("category_id")
    items = get_services().catalog.list_items(section, category_id=category_id)
    return jsonify({"items": [i.to_dict() for i in items]}), 200


@catalog_bp.post("/items")
@with_actor
@api_errors("create item")
def create_item_route():
    """
    Request body:
    {
        "name": "Whey 1kg",
        "section": "supplement",
        "sell_price_cents": 150000,
        "cost_price_cents": 120000,
        "current_amount": 10,       (optional, default 0)
        "category_id": "..."        (optional)
    }
    """
    item = get_services().catalog.create_item(request.get_json(silent=True), actor=g.actor_id)
    return jsonify({"item": item.to_dict()}), 201


@catalog_bp.get("/items/<item_id>")
@api_errors("get item")
def get_item_route(item_id: str):
    item = get_services().catalog.get_item(item_id)
    if not item:
        return jsonify({"error": "Item not found"}), 404
    return jsonify({"item": item.to_dict()}), 200


@catalog_bp.patch("/items/<item_id>")
@catalog_bp.put("/items/<item_id>")
@with_actor
@api_errors("update item")
def update_item_route(item_id: str):
    item = get_services().catalog.update_item(item_id, request.get_json(silent=True), actor=g.actor_id)
    return jsonify({"item": item.to_dict()}), 200


@catalog_bp.delete("/items/<item_id>")
@with_actor
@api_errors("delete item")
def delete_item_route(item_id: str):
    if not get_services().catalog.delete_item(item_id, actor=g.actor_id):
        return jsonify({"error": "Item not found"}), 404
    return jsonify({"deleted": True}), 200


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@api_errors("list categories")
def list_categories_route():
    categories = get_services().catalog.list_categories(request.args.get("section"))
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@catalog_bp.post("/categories")
@with_actor
@api_errors("create category")
def create_category_route():
    category = get_services().catalog.create_category(request.get_json(silent=True), actor=g.actor_id)
    return jsonify({"category": category.to_dict()}), 201


@catalog_bp.patch("/categories/<category_id>")
@with_actor
@api_errors("rename category")
def rename_category_route(category_id: str):
    data = request.get_json(silent=True) or {}
    category = get_services().catalog.rename_category(category_id, data.get("name"), actor=g.actor_id)
    return jsonify({"category": category.to_dict()}), 200


@catalog_bp.delete("/categories/<category_id>")
@with_actor
@api_errors("delete category")
def delete_category_route(category_id: str):
    if not get_services().catalog.delete_category(category_id, actor=g.actor_id):
        return jsonify({"error": "Category not found"}), 404
    return jsonify({"deleted": True}), 200


# =============================================================================
# CUSTOMERS
# =============================================================================

@catalog_bp.get("/customers")
@api_errors("list customers")
def list_customers_route():
    customers = get_services().catalog.list_customers(request.args.get("section"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@catalog_bp.post("/customers")
@with_actor
@api_errors("create customer")
def create_customer_route():
    customer = get_services().catalog.create_customer(request.get_json(silent=True), actor=g.actor_id)
    return jsonify({"customer": customer.to_dict()}), 201


@catalog_bp.get("/customers/<customer_id>")
@api_errors("get customer")
def get_customer_route(customer_id: str):
    customer = get_services().catalog.get_customer(customer_id)
    if not customer:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@catalog_bp.delete("/customers/<customer_id>")
@with_actor
@api_errors("delete customer")
def delete_customer_route(customer_id: str):
    if not get_services().catalog.delete_customer(customer_id, actor=g.actor_id):
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"deleted": True}), 200
