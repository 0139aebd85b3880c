# Overview: Flask API routes for purchase receiving.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError, StoreUnavailable
from ..services import purchase_service
from .common import error_response, json_body, query_int, query_limit


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_caller
def receive_purchase_route():
    """
    Receive a supplier purchase.

    Request body:
    {
        "supplier_id": 2,   (optional)
        "items": [{"product_id": 1, "quantity": 50, "cost_price": "6.10"}],
        "paid_amount": "100.00",
        "notes": "..."
    }
    """
    try:
        data = json_body()
        purchase = purchase_service.receive_purchase(
            g.tenant_id,
            g.actor,
            data.get("items"),
            supplier_id=data.get("supplier_id"),
            paid_amount=data.get("paid_amount"),
            notes=data.get("notes"),
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_caller
def list_purchases_route():
    try:
        purchases = purchase_service.list_purchases(
            g.tenant_id, supplier_id=query_int("supplier_id"), limit=query_limit(),
        )
        return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_caller
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(g.tenant_id, purchase_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return jsonify({"error": "Internal server error"}), 500
