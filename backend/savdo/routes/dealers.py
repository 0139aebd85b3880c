# Overview: Flask API routes for dealer consignment; parses input and returns JSON responses.

"""
Dealer Consignment API Routes

DESIGN:
- load:   warehouse -> dealer, with cash/debt/partial settlement
- sell:   dealer -> end customer (dealer actors record their own sales)
- return: dealer -> warehouse, credited against dealer debt
- Dealer actors only see and act on their own dealer id
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError, StoreUnavailable
from ..services import consignment_service
from .common import error_response, json_body, query_limit


dealers_bp = Blueprint("dealers", __name__, url_prefix="/api/dealers")


@dealers_bp.post("/<int:dealer_id>/load")
@require_caller
def load_route(dealer_id: int):
    """
    Load goods to a dealer.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 10}],
        "payment_type": "cash" | "debt" | "partial",
        "paid_amount": "150.00",   (partial only)
        "method": "cash",
        "notes": "..."
    }
    """
    try:
        data = json_body()
        result = consignment_service.load_to_dealer(
            g.tenant_id,
            g.actor,
            dealer_id,
            data.get("items"),
            payment_type=data.get("payment_type", consignment_service.LOAD_DEBT),
            paid_amount=data.get("paid_amount"),
            method=data.get("method", "cash"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load goods to dealer")
        return jsonify({"error": "Internal server error"}), 500


@dealers_bp.post("/<int:dealer_id>/sell")
@require_caller
def sell_route(dealer_id: int):
    """
    Record a dealer sale to an end customer.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "price": "12.00"}],
        "customer_name": "...", "customer_phone": "...",
        "dealer_customer_id": 7,   (required when paid_amount < total)
        "paid_amount": "20.00",    (default: total)
        "notes": "..."
    }
    """
    try:
        data = json_body()
        result = consignment_service.sell_from_dealer(
            g.tenant_id,
            g.actor,
            dealer_id,
            data.get("items"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            dealer_customer_id=data.get("dealer_customer_id"),
            paid_amount=data.get("paid_amount"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record dealer sale")
        return jsonify({"error": "Internal server error"}), 500


@dealers_bp.post("/<int:dealer_id>/return")
@require_caller
def return_route(dealer_id: int):
    """Return goods from a dealer: {"items": [...], "notes": "..."}"""
    try:
        data = json_body()
        result = consignment_service.return_from_dealer(
            g.tenant_id,
            g.actor,
            dealer_id,
            data.get("items"),
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return goods from dealer")
        return jsonify({"error": "Internal server error"}), 500


@dealers_bp.get("/<int:dealer_id>/inventory")
@require_caller
def inventory_route(dealer_id: int):
    try:
        include_empty = request.args.get("include_empty", "false").lower() == "true"
        rows = consignment_service.get_dealer_inventory(
            g.tenant_id, g.actor, dealer_id, include_empty=include_empty,
        )
        return jsonify({"dealer_id": dealer_id, "items": [r.to_dict() for r in rows]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load dealer inventory")
        return jsonify({"error": "Internal server error"}), 500


@dealers_bp.get("/<int:dealer_id>/transactions")
@require_caller
def transactions_route(dealer_id: int):
    try:
        rows = consignment_service.list_dealer_transactions(
            g.tenant_id,
            g.actor,
            dealer_id,
            tx_type=request.args.get("type"),
            batch_ref=request.args.get("batch_ref"),
            limit=query_limit(),
        )
        return jsonify({"dealer_id": dealer_id, "transactions": [r.to_dict() for r in rows]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list dealer transactions")
        return jsonify({"error": "Internal server error"}), 500
