# Overview: Flask API routes for the peer relay (presence and long-poll event fan-out).

"""
Realtime Relay API Routes

DESIGN:
- POST /peers registers a terminal and broadcasts peer-joined; sending the
  previous peer_id and cursor re-joins and resumes from that cursor
- POST /events relays one event to every other peer
- GET /events long-polls for events after a cursor
- DELETE /peers/<peer_id> leaves and broadcasts peer-left
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import api_errors
from ..services import get_services


realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")

# Upper bound for a single long-poll request (seconds)
MAX_POLL_TIMEOUT = 30.0


@realtime_bp.post("/peers")
@api_errors("join relay")
def join_route():
    data = request.get_json(silent=True) or {}
    actor_id = (data.get("actor_id") or "").strip()
    if not actor_id:
        return jsonify({"error": "actor_id required"}), 400
    cursor = data.get("cursor")
    if cursor is not None and (isinstance(cursor, bool) or not isinstance(cursor, int) or cursor < 0):
        return jsonify({"error": "cursor must be a non-negative integer"}), 400
    peer_id = data.get("peer_id") or None
    if peer_id is not None and (not isinstance(peer_id, str) or len(peer_id) > 64):
        return jsonify({"error": "peer_id must be a string"}), 400
    joined = get_services().relay.join(actor_id, data.get("actor_name"), peer_id=peer_id, cursor=cursor)
    return jsonify(joined), (200 if joined["rejoined"] else 201)


@realtime_bp.get("/peers")
@api_errors("list peers")
def list_peers_route():
    return jsonify({"peers": get_services().relay.peers()}), 200


@realtime_bp.delete("/peers/<peer_id>")
@api_errors("leave relay")
def leave_route(peer_id: str):
    if not get_services().relay.leave(peer_id):
        return jsonify({"error": "Unknown peer"}), 404
    return jsonify({"left": True}), 200


@realtime_bp.post("/events")
@api_errors("relay event")
def publish_route():
    data = request.get_json(silent=True) or {}
    peer_id = data.get("peer_id")
    if not peer_id:
        return jsonify({"error": "peer_id required"}), 400
    cursor = get_services().relay.publish(peer_id, data.get("event"))
    return jsonify({"cursor": cursor}), 202


@realtime_bp.get("/events")
@api_errors("poll events")
def poll_route():
    peer_id = request.args.get("peer_id")
    if not peer_id:
        return jsonify({"error": "peer_id required"}), 400
    cursor = request.args.get("cursor", default=0, type=int)
    limit = min(MAX_POLL_TIMEOUT, float(current_app.config.get("PEER_POLL_TIMEOUT", 25)))
    timeout = max(0.0, min(request.args.get("timeout", default=0.0, type=float), limit))
    events, cursor = get_services().relay.poll(peer_id, cursor, timeout)
    return jsonify({"events": events, "cursor": cursor}), 200
