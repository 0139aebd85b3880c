# Overview: Flask API routes for sales and portal orders; parses input and returns JSON responses.

# backend/savdo/routes/sales.py
"""
Sales & Orders API Routes

DESIGN:
- POST /api/sales          POS sale, starts completed
- POST /api/sales/portal   portal order, starts pending (customer actors order for themselves)
- POST /api/sales/<id>/transition {"status": ...} walks the lifecycle
- POST /api/sales/<id>/cancel undoes stock and debt effects
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError, StoreUnavailable, ValidationError
from ..services import sales_service
from .common import error_response, json_body, query_int, query_limit, query_since


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_payload(sale):
    data = sale.to_dict(include_items=True)
    data["allowed_transitions"] = list(sales_service.allowed_transitions(sale.status))
    return data


@sales_bp.post("")
@require_caller
def create_sale_route():
    """
    Create a POS sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "price": "9.50"}],   (price optional)
        "customer_id": 3,            (required for debt/partial)
        "discount": "0.00",
        "payment_type": "cash" | "card" | "debt" | "partial",
        "paid_amount": "10.00"
    }
    """
    try:
        data = json_body()
        sale = sales_service.create_sale(
            g.tenant_id,
            g.actor,
            data.get("items"),
            channel=sales_service.CHANNEL_POS,
            customer_id=data.get("customer_id"),
            discount=data.get("discount", 0),
            payment_type=data.get("payment_type", sales_service.PAY_CASH),
            paid_amount=data.get("paid_amount"),
        )
        return jsonify({"sale": _sale_payload(sale)}), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/portal")
@require_caller
def create_portal_order_route():
    """Place a portal order (status pending, payment_type defaults to debt)."""
    try:
        data = json_body()
        sale = sales_service.create_sale(
            g.tenant_id,
            g.actor,
            data.get("items"),
            channel=sales_service.CHANNEL_PORTAL,
            customer_id=data.get("customer_id"),
            discount=data.get("discount", 0),
            payment_type=data.get("payment_type", sales_service.PAY_DEBT),
            paid_amount=data.get("paid_amount"),
        )
        return jsonify({"sale": _sale_payload(sale)}), 201
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place portal order")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_caller
def list_sales_route():
    try:
        customer_id = query_int("customer_id")
        if g.actor.is_customer:
            customer_id = g.actor.id
        sales = sales_service.list_sales(
            g.tenant_id,
            status=request.args.get("status"),
            customer_id=customer_id,
            channel=request.args.get("channel"),
            since=query_since(),
            limit=query_limit(),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_caller
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.tenant_id, sale_id, actor=g.actor)
        return jsonify({"sale": _sale_payload(sale)}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/transition")
@require_caller
def transition_sale_route(sale_id: int):
    """
    Move a sale through its lifecycle.

    Request body:
    {
        "status": "completed" | "delivering" | "shipped" | "delivered" | "cancelled",
        "dealer_id": 4,      (delivering only, optional)
        "address": "...",    (delivering only, optional)
        "notes": "..."
    }
    """
    try:
        data = json_body()
        status = data.get("status")
        if not status:
            raise ValidationError("status required", details={"field": "status"})
        sale = sales_service.transition_sale(
            g.tenant_id,
            g.actor,
            sale_id,
            status,
            dealer_id=data.get("dealer_id"),
            address=data.get("address"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": _sale_payload(sale)}), 200
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transition sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_caller
def cancel_sale_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.cancel_sale(g.tenant_id, g.actor, sale_id, reason=data.get("reason"))
        return jsonify({"sale": _sale_payload(sale)}), 200
    except (LedgerError, StoreUnavailable) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
