# Overview: Flask API routes for debt payments and debt history.

# backend/savdo/routes/payments.py
"""
Payment API Routes

DESIGN:
- Record payments against customer, dealer or dealer-customer debt
- Payments never exceed the current debt (409 EXCESS_PAYMENT)
- Debt history and reconciliation per debtor
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError, StoreUnavailable
from ..services import debt_service, payment_service
from .common import error_response, json_body, query_int, query_limit


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_caller
def apply_payment_route():
    """
    Record a debt payment.

    Request body:
    {
        "type": "customer" | "dealer" | "dealer_customer",
        "debtor_id": 12,
        "amount": "50.00",
        "method": "cash" | "card" | "transfer",
        "notes": "..."
    }

    Returns:
        201: Payment recorded
        400: Invalid input
        404: Debtor not found
        409: Amount exceeds current debt
    """
    try:
        data = json_body()
        debtor_type = data.get("type")
        debtor_id = data.get("debtor_id")
        if not debtor_type or debtor_id is None:
            return jsonify({"error": "type and debtor_id required"}), 400

        payment = payment_service.apply_payment(
            g.tenant_id,
            g.actor,
            debtor_type,
            debtor_id,
            data.get("amount"),
            method=data.get("method", payment_service.METHOD_CASH),
            notes=data.get("notes"),
        )
        debtor = debt_service.get_debtor(g.tenant_id, debtor_type, debtor_id)
        return jsonify({"payment": payment.to_dict(), "debt_after": str(debtor.debt)}), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_caller
def list_payments_route():
    try:
        payments = payment_service.list_payments(
            g.tenant_id,
            debtor_type=request.args.get("type"),
            debtor_id=query_int("debtor_id"),
            limit=query_limit(),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/debts/<debtor_type>/<int:debtor_id>")
@require_caller
def debt_history_route(debtor_type: str, debtor_id: int):
    """Debt journal plus reconciliation report for one debtor."""
    try:
        debtor = debt_service.get_debtor(g.tenant_id, debtor_type, debtor_id)
        payment_service.check_actor_scope(g.actor, debtor_type, debtor)
        entries = debt_service.get_debt_history(g.tenant_id, debtor_type, debtor_id, limit=query_limit())
        report = debt_service.reconcile_debtor(g.tenant_id, debtor_type, debtor_id)
        return jsonify({"entries": [e.to_dict() for e in entries], "reconciliation": report}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load debt history")
        return jsonify({"error": "Internal server error"}), 500
