# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require an actor.
- Reads are open to every role
- Create/update are limited to admin, manager, storekeeper
- Delete is limited to admin, manager
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError
from ..services import products_service, stock_ledger

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
def list_products_route():
    """
    Query params:
    - q: substring of name or sku (optional)
    - category: exact category (optional)
    """
    products = products_service.list_products(
        search=request.args.get("q"),
        category=request.args.get("category"),
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status

    data = product.to_dict()
    if request.args.get("movements") in ("1", "true"):
        data["stock_movements"] = [m.to_dict() for m in stock_ledger.recent_movements(product_id)]
    return jsonify({"product": data}), 200


@products_bp.post("")
@require_actor
@require_role("manager", "storekeeper")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(payload, actor_id=g.actor.user_id)
        return jsonify({"product": product.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_actor
@require_role("manager", "storekeeper")
def update_product_route(product_id: int):
    """
    Update a product. SKU collisions return 409.

    A quantity_in_stock change is journaled as an ADJUSTMENT and re-evaluates
    the product's demand notices.
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(product_id, payload, actor_id=g.actor.user_id)
        return jsonify({"product": product.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_actor
@require_role("manager")
def delete_product_route(product_id: int):
    """Delete a product that no open order, notice or purchase order references."""
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500
