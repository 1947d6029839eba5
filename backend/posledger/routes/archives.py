# Overview: Flask API routes for period archival; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import api_errors, with_actor
from ..services import get_services


archives_bp = Blueprint("archives", __name__, url_prefix="/api/archives")


@archives_bp.get("")
@api_errors("list archives")
def list_archives_route():
    archives = get_services().archiver.list_archives(request.args.get("section"))
    return jsonify({"archives": [a.to_dict() for a in archives]}), 200


@archives_bp.get("/summary")
@api_errors("summarize period")
def summarize_route():
    summary = get_services().archiver.summarize(request.args.get("section"))
    return jsonify({"summary": summary.to_dict()}), 200


@archives_bp.post("")
@with_actor
@api_errors("archive period")
def reset_period_route():
    """
    Archive a section's period and purge its shift history.

    Request body:
    {
        "section": "store",
        "month": "2026-03",             (optional, defaults to the current month)
        "keep_unpaid_debt": true        (optional)
    }

    Rejected (409) while a shift is active or when the month is already archived.
    """
    data = request.get_json(silent=True) or {}
    archive = get_services().archiver.reset_period(
        data.get("section"),
        actor=g.actor_id,
        month=data.get("month"),
        keep_unpaid_debt=bool(data.get("keep_unpaid_debt", True)),
    )
    return jsonify({"archive": archive.to_dict()}), 201


@archives_bp.get("/<archive_id>")
@api_errors("get archive")
def get_archive_route(archive_id: str):
    archive = get_services().archiver.get_archive(archive_id)
    if not archive:
        return jsonify({"error": "Archive not found"}), 404
    return jsonify({"archive": archive.to_dict()}), 200
