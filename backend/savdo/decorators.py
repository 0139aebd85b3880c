# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .context import Actor, ACTOR_EMPLOYEE


def require_caller(f):
    """
    Establish tenant and actor context for a ledger route.

    The upstream auth collaborator has already authenticated the caller and
    forwards who it is in headers:
    - X-Tenant-Id: tenant (required)
    - X-Actor-Type: employee | dealer | customer | system (default employee)
    - X-Actor-Id: id of the employee/dealer/customer

    Sets g.tenant_id and g.actor; routes pass both to services explicitly.
    Returns 401 when the context is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_raw = request.headers.get("X-Tenant-Id")
        if not tenant_raw:
            return jsonify({"error": "Tenant context required"}), 401

        actor_type = request.headers.get("X-Actor-Type", ACTOR_EMPLOYEE)
        actor_raw = request.headers.get("X-Actor-Id")
        try:
            tenant_id = int(tenant_raw)
            actor = Actor(actor_type, int(actor_raw) if actor_raw else None)
        except (TypeError, ValueError):
            current_app.logger.warning(
                "Rejected caller context tenant=%r actor=%r/%r", tenant_raw, actor_type, actor_raw,
            )
            return jsonify({"error": "Invalid caller context"}), 401

        g.tenant_id = tenant_id
        g.actor = actor

        return f(*args, **kwargs)

    return decorated_function
