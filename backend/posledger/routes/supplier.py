# Overview: Flask API routes for the supplement supplier debt account.

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, with_actor
from ..services import get_services


supplier_bp = Blueprint("supplier", __name__, url_prefix="/api/supplier-debt")


@supplier_bp.get("")
@api_errors("get supplier debt")
def get_supplier_debt_route():
    debt = get_services().supplier.get_balance()
    return jsonify({"debt": debt.to_dict()}), 200


@supplier_bp.get("/transactions")
@api_errors("list supplier debt transactions")
def list_transactions_route():
    limit = request.args.get("limit", type=int)
    txns = get_services().supplier.list_transactions(limit=limit)
    return jsonify({"transactions": [t.to_dict() for t in txns]}), 200


@supplier_bp.post("/transactions")
@with_actor
@api_errors("apply supplier debt transaction")
def apply_transaction_route():
    """
    Request body:
    {
        "type": "debt" | "payment",
        "amount_cents": 250000,
        "note": "Invoice 118"       (optional)
    }

    A payment larger than the balance zeroes it.
    """
    data = request.get_json(silent=True) or {}
    txn = get_services().supplier.apply_transaction(
        data.get("type"),
        data.get("amount_cents"),
        data.get("note"),
        actor=g.actor_id,
    )
    debt = get_services().supplier.get_balance()
    return jsonify({"transaction": txn.to_dict(), "debt": debt.to_dict()}), 201


@supplier_bp.get("/verify")
@api_errors("verify supplier debt")
def verify_route():
    return jsonify({"consistent": get_services().supplier.verify()}), 200
