# Overview: Flask API routes for customer debt; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, with_actor
from ..services import get_services


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("/unpaid")
@api_errors("list unpaid purchases")
def list_unpaid_route():
    purchases = get_services().debts.get_unpaid(request.args.get("section"))
    return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200


@debts_bp.get("/debtors")
@api_errors("list debtors")
def list_debtors_route():
    debtors = get_services().debts.list_debtors(request.args.get("section"))
    return jsonify({"debtors": [d.to_dict() for d in debtors]}), 200


@debts_bp.get("/customers/<customer_id>")
@api_errors("compute customer debt")
def get_customer_debt_route(customer_id: str):
    debt = get_services().debts.compute_debt(customer_id)
    if debt is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"debt": debt.to_dict()}), 200


@debts_bp.post("/customers/<customer_id>/payments")
@with_actor
@api_errors("pay customer debt")
def pay_debt_route(customer_id: str):
    """
    Pay down a customer's debt, oldest purchase first.

    Request body:
    {
        "amount_cents": 1200,
        "allow_partial": true       (optional; false rejects splitting a purchase)
    }

    The payment lands in the active shift of the customer's section.
    """
    data = request.get_json(silent=True) or {}
    result = get_services().debts.pay_debt(
        customer_id,
        data.get("amount_cents"),
        allow_partial=bool(data.get("allow_partial", True)),
        actor=g.actor_id,
    )
    return jsonify(result.to_dict()), 201


@debts_bp.post("/customers/<customer_id>/settle")
@with_actor
@api_errors("settle customer debt")
def settle_debt_route(customer_id: str):
    result = get_services().debts.settle_all(customer_id, actor=g.actor_id)
    return jsonify(result.to_dict()), 201


@debts_bp.patch("/purchases/<purchase_id>")
@with_actor
@api_errors("update purchase")
def update_purchase_route(purchase_id: str):
    data = request.get_json(silent=True) or {}
    purchase = get_services().debts.update_purchase(
        purchase_id, data.get("total_amount_cents"), actor=g.actor_id
    )
    return jsonify({"purchase": purchase.to_dict()}), 200
