# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order API Routes

DESIGN:
- POST creates an order and deducts stock in one transaction
- PUT records payments and/or advances status (payments applied first)
- DELETE is allowed only before fulfillment and gives stock back
- An order created with linked_demand_notice_id is that notice's conversion

SECURITY:
- Create: salesperson, cashier, manager, admin
- Update: cashier, salesperson, storekeeper, manager, admin
- Delete: manager, admin
"""

from decimal import Decimal

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError, ValidationError
from ..services import order_service
from ..validation import (
    parse_int,
    parse_money,
    parse_payments,
    parse_taxes,
    parse_text,
    require_list,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


CUSTOMER_FIELDS = {
    "customer_name": 255,
    "customer_phone": 64,
    "delivery_address": None,
    "notes": None,
    "primary_salesperson_id": 64,
    "secondary_salesperson_id": 64,
}


def parse_order_lines(value) -> list[dict]:
    lines = []
    for i, entry in enumerate(require_list(value, "items")):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{i}] must be an object", {"index": i})
        if entry.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required", {"index": i})
        lines.append({
            "product_id": parse_int(entry["product_id"], f"items[{i}].product_id", minimum=1),
            "quantity": parse_int(entry.get("quantity"), f"items[{i}].quantity", minimum=1),
            "price_per_unit": (
                parse_money(entry["price_per_unit"], f"items[{i}].price_per_unit")
                if entry.get("price_per_unit") is not None
                else None
            ),
        })
    return lines


def parse_customer(payload: dict) -> dict:
    customer = {
        key: parse_text(payload.get(key), key, max_length=max_length)
        for key, max_length in CUSTOMER_FIELDS.items()
    }
    for key in ("primary_commission_share", "secondary_commission_share"):
        if payload.get(key) is not None:
            share = parse_money(payload[key], key)
            if share > 1:
                raise ValidationError(f"{key} must be between 0 and 1", {"field": key})
            customer[key] = share
    return customer


# =============================================================================
# ORDER CREATION
# =============================================================================

@orders_bp.post("")
@require_actor
@require_role("salesperson", "cashier", "manager")
def create_order_route():
    """
    Create an order (status derived from any payments supplied).

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "price_per_unit": 12.5 (optional)}],
        "customer_name": "...", "customer_phone": "...",
        "discount_amount": 0,
        "taxes": [{"name": "VAT", "rate": 5}],
        "payments": [{"method": "cash", "amount": 10}],
        "total_amount": 26.25,            (optional cross-check)
        "linked_demand_notice_id": "DN-000001"  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        404: Product / demand notice not found
        409: Insufficient stock or notice not convertible
    """
    payload = request.get_json(silent=True) or {}
    try:
        lines = parse_order_lines(payload.get("items"))
        discount = payload.get("discount_amount")
        expected_total = payload.get("total_amount")
        order = order_service.create_order(
            lines,
            customer=parse_customer(payload),
            discount_amount=parse_money(discount, "discount_amount") if discount is not None else Decimal("0"),
            taxes=parse_taxes(payload.get("taxes")),
            payments=parse_payments(payload.get("payments")),
            expected_total=parse_money(expected_total, "total_amount") if expected_total is not None else None,
            linked_demand_notice_id=parse_text(payload.get("linked_demand_notice_id"), "linked_demand_notice_id"),
            actor_id=g.actor.user_id,
        )
        return jsonify({"order": order.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER QUERIES
# =============================================================================

@orders_bp.get("")
@require_actor
def list_orders_route():
    """
    Query params:
    - status: order status (optional)
    - salesperson_id: primary or secondary salesperson (optional)
    """
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            salesperson_id=request.args.get("salesperson_id"),
        )
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"orders": [o.to_dict(include_returns=False) for o in orders]}), 200


@orders_bp.get("/<order_id>")
@require_actor
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id)
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"order": order.to_dict()}), 200


# =============================================================================
# ORDER UPDATES
# =============================================================================

@orders_bp.put("/<order_id>")
@require_actor
@require_role("cashier", "salesperson", "storekeeper", "manager")
def update_order_route(order_id: str):
    """
    Record payments and/or advance status.

    Request body:
    {
        "payments": [{"method": "card", "amount": 50, "reference": "TX-1"}],  (optional)
        "status": "preparing"  (optional: preparing, ready_for_pickup, completed, cancelled)
    }

    Returns:
        200: Updated order
        409: Payment precondition failed or illegal transition
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order(
            order_id,
            payments=parse_payments(payload.get("payments")),
            status=payload.get("status"),
            actor_id=g.actor.user_id,
        )
        return jsonify({"order": order.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<order_id>")
@require_actor
@require_role("manager")
def delete_order_route(order_id: str):
    try:
        order_service.delete_order(order_id, actor_id=g.actor.user_id)
        return jsonify({"ok": True}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
