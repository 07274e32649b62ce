# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

# backend/backoffice/routes/purchase_orders.py
"""
Purchase Order API Routes

LIFECYCLE:
    Draft -> Pending -> Confirmed -> Shipped -> Received
    (Cancelled from any open state; Received only via receiving)

SECURITY:
- Create / confirm: manager, admin
- Update: manager, logistics, admin (field set depends on role, see service)
- Receive: storekeeper, logistics, manager, admin
"""

from decimal import Decimal

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError, ValidationError
from ..services import purchase_order_service
from ..validation import parse_date, parse_int, parse_money, parse_text, require_list

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


def parse_po_items(value) -> list[dict]:
    items = []
    for i, entry in enumerate(require_list(value, "items")):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{i}] must be an object", {"index": i})
        if entry.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required", {"index": i})
        unit_cost = entry.get("unit_cost")
        items.append({
            "product_id": parse_int(entry["product_id"], f"items[{i}].product_id", minimum=1),
            "quantity_ordered": parse_int(entry.get("quantity_ordered"), f"items[{i}].quantity_ordered", minimum=1),
            "unit_cost": parse_money(unit_cost, f"items[{i}].unit_cost") if unit_cost is not None else None,
            "notes": parse_text(entry.get("notes"), f"items[{i}].notes", max_length=255),
        })
    return items


def parse_receipt_lines(value) -> list[dict]:
    lines = []
    for i, entry in enumerate(require_list(value, "items")):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{i}] must be an object", {"index": i})
        lines.append({
            "po_item_id": parse_int(entry.get("po_item_id"), f"items[{i}].po_item_id", minimum=1),
            "received_quantity": parse_int(entry.get("received_quantity"), f"items[{i}].received_quantity", minimum=0),
        })
    return lines


@purchase_orders_bp.post("")
@require_actor
@require_role("manager")
def create_purchase_order_route():
    """
    Request body:
    {
        "supplier_id": "SUP-7",
        "items": [{"product_id": 1, "quantity_ordered": 10, "unit_cost": 4.5}],
        "total_amount": 45,          (optional; computed from unit costs)
        "advance_paid": 10,          (optional)
        "deadline": "2026-11-30",    (optional)
        "expected_delivery": "2026-11-20",  (optional)
        "notes": "..."               (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        total_amount = payload.get("total_amount")
        advance_paid = payload.get("advance_paid")
        po = purchase_order_service.create_purchase_order(
            items=parse_po_items(payload.get("items")),
            supplier_id=parse_text(payload.get("supplier_id"), "supplier_id", max_length=64),
            total_amount=parse_money(total_amount, "total_amount") if total_amount is not None else None,
            advance_paid=parse_money(advance_paid, "advance_paid") if advance_paid is not None else Decimal("0"),
            deadline=parse_date(payload.get("deadline"), "deadline"),
            expected_delivery=parse_date(payload.get("expected_delivery"), "expected_delivery"),
            notes=parse_text(payload.get("notes"), "notes"),
            actor_id=g.actor.user_id,
        )
        return jsonify({"purchase_order": po.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("")
@require_actor
def list_purchase_orders_route():
    try:
        orders = purchase_order_service.list_purchase_orders(status=request.args.get("status"))
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"purchase_orders": [po.to_dict() for po in orders]}), 200


@purchase_orders_bp.get("/<po_id>")
@require_actor
def get_purchase_order_route(po_id: str):
    try:
        po = purchase_order_service.get_purchase_order(po_id)
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.put("/<po_id>")
@require_actor
@require_role("manager", "logistics")
def update_purchase_order_route(po_id: str):
    """
    Partial update. Fields the caller's role may not change are ignored;
    a request with nothing applicable left is rejected with 403.
    """
    payload = request.get_json(silent=True) or {}
    try:
        po = purchase_order_service.update_purchase_order(po_id, payload, actor=g.actor)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update purchase order %s", po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<po_id>/confirm")
@require_actor
@require_role("manager")
def confirm_purchase_order_route(po_id: str):
    try:
        po = purchase_order_service.confirm_purchase_order(po_id)
        return jsonify({"purchase_order": po.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to confirm purchase order %s", po_id)
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.post("/<po_id>/receive")
@require_actor
@require_role("storekeeper", "logistics", "manager")
def receive_items_route(po_id: str):
    """
    Record a delivery against the PO.

    Request body:
    {
        "items": [{"po_item_id": 3, "received_quantity": 5}],
        "notes": "Partial delivery, rest next week"  (optional)
    }

    Returns:
        200: Updated PO (Received once every line is complete)
        409: PO not receivable, or more than outstanding
    """
    payload = request.get_json(silent=True) or {}
    try:
        po = purchase_order_service.receive_items(
            po_id,
            parse_receipt_lines(payload.get("items")),
            actor_id=g.actor.user_id,
            notes=parse_text(payload.get("notes"), "notes"),
        )
        return jsonify({"purchase_order": po.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive items for purchase order %s", po_id)
        return jsonify({"error": "Internal server error"}), 500
