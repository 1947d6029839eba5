# Overview: Request decorators for API routes (actor context and error mapping).

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.relay import UnknownPeerError
from .validation import ConflictError, ReasonRequiredError, ValidationError


def with_actor(f):
    """
    Establish the acting user for the request.

    Sets on Flask g:
    - g.actor_id: X-Actor-Id header (None when absent)
    - g.actor_name: X-Actor-Name header, falling back to the id
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-Actor-Id") or "").strip() or None
        actor_name = (request.headers.get("X-Actor-Name") or "").strip() or actor_id
        g.actor_id = actor_id
        g.actor_name = actor_name
        return f(*args, **kwargs)

    return decorated_function


def api_errors(action: str):
    """
    Map ledger errors to JSON responses.

    - ReasonRequiredError -> 409 with the discrepancy list
    - ConflictError -> 409
    - ValidationError / ValueError -> 400
    - anything else -> logged, 500 with a generic message
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ReasonRequiredError as e:
                body = {"error": str(e), "reason_required": True, "discrepancies": e.discrepancies}
                if e.reconciliation is not None:
                    body["reconciliation"] = e.reconciliation.to_dict()
                return jsonify(body), 409
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except UnknownPeerError as e:
                return jsonify({"error": f"Unknown peer: {e}"}), 404
            except (ValidationError, ValueError) as e:
                return jsonify({"error": str(e)}), 400
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": f"Failed to {action}"}), 500

        return decorated_function

    return decorator
