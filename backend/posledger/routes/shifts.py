# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

"""
Shift API Routes

WHY: Cash-drawer accountability per section.

DESIGN:
- Shift lifecycle: start -> close (immutable once closed)
- Sales, expenses, external money and supplies attach to the section's
  active shift; no active shift is a 409
- Close is one endpoint: dry_run previews, a discrepancy without a reason
  is a 409 carrying the discrepancy list, re-posting with a reason commits
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, with_actor
from ..services import get_services


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _body() -> dict:
    return request.get_json(silent=True) or {}


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

@shifts_bp.post("/start")
@with_actor
@api_errors("start shift")
def start_shift_route():
    """
    Request body:
    {
        "section": "store",
        "operator_id": "u-1",       (optional, defaults to X-Actor-Id)
        "operator_name": "Mona"     (optional)
    }
    """
    data = _body()
    shift = get_services().shifts.start_shift(
        data.get("section"),
        data.get("operator_id") or g.actor_id,
        data.get("operator_name") or g.actor_name,
    )
    return jsonify({"shift": shift.to_dict()}), 201


@shifts_bp.get("/active")
@api_errors("get active shift")
def get_active_shift_route():
    shift = get_services().shifts.get_active_shift(request.args.get("section"))
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.get("")
@api_errors("list shifts")
def list_shifts_route():
    shifts = get_services().shifts.list_shifts(request.args.get("section"), status=request.args.get("status"))
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<shift_id>")
@api_errors("get shift")
def get_shift_route(shift_id: str):
    details = get_services().shifts.get_shift_details(shift_id)
    if details is None:
        return jsonify({"error": "Shift not found"}), 404
    return jsonify(details), 200


@shifts_bp.post("/close")
@with_actor
@api_errors("close shift")
def close_shift_route():
    """
    Request body:
    {
        "section": "store",
        "final_cash_cents": 1500,
        "final_inventory": {"<item_id>": 8},
        "reason": "...",            (required only when discrepant)
        "dry_run": false,
        "shift_id": "..."           (optional; re-closing returns the stored result)
    }
    """
    data = _body()
    reconciliation = get_services().shifts.close_shift(
        data.get("section"),
        data.get("final_cash_cents"),
        data.get("final_inventory") or {},
        data.get("reason"),
        dry_run=bool(data.get("dry_run", False)),
        shift_id=data.get("shift_id"),
        actor=g.actor_id,
    )
    return jsonify({"reconciliation": reconciliation.to_dict()}), 200


# =============================================================================
# SALES / SUPPLIES
# =============================================================================

@shifts_bp.post("/sales")
@with_actor
@api_errors("record sale")
def record_sale_route():
    """
    Request body:
    {
        "section": "store",
        "lines": [{"item_id": "...", "quantity": 2}],
        "is_paid": true,
        "customer_id": "..."        (required when is_paid is false)
    }
    """
    data = _body()
    result = get_services().shifts.record_sale(
        data.get("section"),
        data.get("lines"),
        is_paid=bool(data.get("is_paid", True)),
        customer_id=data.get("customer_id"),
        actor=g.actor_id,
    )
    return jsonify(result.to_dict()), 201


@shifts_bp.post("/supplies")
@with_actor
@api_errors("apply supply")
def apply_supply_route():
    """
    Request body:
    {
        "section": "supplement",
        "items": {"<item_id>": 12},
        "total_cost_cents": 500000,
        "on_credit": true
    }
    """
    data = _body()
    supply = get_services().shifts.apply_supply(
        data.get("section"),
        data.get("items"),
        data.get("total_cost_cents", 0),
        actor=g.actor_id,
        on_credit=bool(data.get("on_credit", False)),
    )
    return jsonify({"supply": supply.to_dict()}), 201


# =============================================================================
# EXPENSES / EXTERNAL MONEY
# =============================================================================

@shifts_bp.post("/expenses")
@with_actor
@api_errors("record expense")
def record_expense_route():
    """
    Request body:
    {
        "section": "store",
        "amount_cents": 500,
        "reason": "Cleaning supplies"
    }
    """
    data = _body()
    expense = get_services().shifts.record_expense(
        data.get("section"), data.get("amount_cents"), data.get("reason"), actor=g.actor_id
    )
    return jsonify({"expense": expense.to_dict()}), 201


@shifts_bp.patch("/expenses/<expense_id>")
@with_actor
@api_errors("edit expense")
def edit_expense_route(expense_id: str):
    data = _body()
    expense = get_services().shifts.edit_expense(
        expense_id, amount_cents=data.get("amount_cents"), reason=data.get("reason"), actor=g.actor_id
    )
    return jsonify({"expense": expense.to_dict()}), 200


@shifts_bp.delete("/expenses/<expense_id>")
@with_actor
@api_errors("delete expense")
def delete_expense_route(expense_id: str):
    if not get_services().shifts.delete_expense(expense_id, actor=g.actor_id):
        return jsonify({"error": "Expense not found"}), 404
    return jsonify({"deleted": True}), 200


@shifts_bp.post("/external-money")
@with_actor
@api_errors("record external money")
def record_external_money_route():
    """Cash added to the drawer; counted in the shift total immediately."""
    data = _body()
    entry = get_services().shifts.record_external_money(
        data.get("section"), data.get("amount_cents"), data.get("reason"), actor=g.actor_id
    )
    return jsonify({"external_money": entry.to_dict()}), 201


@shifts_bp.patch("/external-money/<entry_id>")
@with_actor
@api_errors("edit external money")
def edit_external_money_route(entry_id: str):
    data = _body()
    entry = get_services().shifts.edit_external_money(
        entry_id, amount_cents=data.get("amount_cents"), reason=data.get("reason"), actor=g.actor_id
    )
    return jsonify({"external_money": entry.to_dict()}), 200


@shifts_bp.delete("/external-money/<entry_id>")
@with_actor
@api_errors("delete external money")
def delete_external_money_route(entry_id: str):
    if not get_services().shifts.delete_external_money(entry_id, actor=g.actor_id):
        return jsonify({"error": "External money entry not found"}), 404
    return jsonify({"deleted": True}), 200
