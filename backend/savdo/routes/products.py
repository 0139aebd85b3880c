# Overview: Flask API routes for warehouse stock positions.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_caller
from ..errors import LedgerError
from ..services import stock_service
from .common import error_response


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/low-stock")
@require_caller
def low_stock_route():
    """Active products at or below min_stock."""
    try:
        products = stock_service.list_low_stock(g.tenant_id)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/stock")
@require_caller
def stock_position_route(product_id: int):
    """Central and dealer-held quantities for one product."""
    try:
        return jsonify(stock_service.get_stock_position(g.tenant_id, product_id)), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock position")
        return jsonify({"error": "Internal server error"}), 500
