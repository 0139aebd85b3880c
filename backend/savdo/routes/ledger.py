# Overview: Flask API routes for the ledger event log and invariant audit.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError
from ..services import audit_service
from ..services.ledger_service import list_ledger_events
from .common import error_response, query_int, query_limit, query_since


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/events")
@require_caller
def list_events_route():
    """
    Read-only ledger event feed (newest first).

    Query params: event_type, entity_type, entity_id, since (ISO-8601), limit
    """
    try:
        events = list_ledger_events(
            g.tenant_id,
            event_type=request.args.get("event_type"),
            entity_type=request.args.get("entity_type"),
            entity_id=query_int("entity_id"),
            since=query_since(),
            limit=query_limit(),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list ledger events")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/summary")
@require_caller
def summary_route():
    try:
        return jsonify(audit_service.summarize_tenant(g.tenant_id)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to summarize ledger")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/audit")
@require_caller
def audit_route():
    try:
        report = audit_service.check_invariants(g.tenant_id)
        return jsonify(report), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to run ledger audit")
        return jsonify({"error": "Internal server error"}), 500
