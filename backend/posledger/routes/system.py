# backend/posledger/routes/system.py
"""
System health, persistence mode and admin log endpoints.

Health reports both stores separately: a degraded terminal keeps selling
from the local cache, so an unreachable remote store is "degraded", not
"unhealthy".
"""

import time
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text

from ..services import get_services
from ..decorators import api_errors
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_engine_health(engine, label: str) -> dict:
    """
    Check connectivity of one store with a trivial query.

    Returns dict with status and latency.
    """
    start_time = time.time()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("%s health check failed", label)
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": f"{label} unreachable",
        }


@system_bp.get("/api/system/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: remote store healthy, or degraded with the local cache healthy
    - 503: the local cache is unusable too
    """
    start_time = time.time()
    services = get_services()

    remote = check_engine_health(services.gateway.remote_engine, "Remote store")
    local = check_engine_health(services.gateway.local_engine, "Local cache")

    if local["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif remote["status"] == "unhealthy" or not services.gateway.is_online:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "persistence": services.gateway.status(),
        "checks": {
            "remote_store": remote,
            "local_cache": local,
        },
        "peers": {
            "enabled": services.peers is not None,
            "connected": bool(services.peers and services.peers.is_connected),
        },
    }
    return response, http_status


@system_bp.get("/api/system/status")
def status():
    """Persistence mode only (online / degraded)."""
    return get_services().gateway.status()


@system_bp.get("/api/admin-logs")
@api_errors("list admin logs")
def list_admin_logs():
    section = request.args.get("section")
    limit = max(1, min(request.args.get("limit", default=100, type=int), 1000))
    logs = get_services().audit.list(section=section, limit=limit)
    return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200
