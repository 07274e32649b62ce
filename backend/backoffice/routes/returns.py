# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/backoffice/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- One request = one immutable return transaction on the order
- The caller supplies the refund breakdown; it must equal the returned value
- Stock is restored and demand notices re-evaluated in the same transaction

SECURITY:
- cashier, manager, admin
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError, ValidationError
from ..services import return_service
from ..validation import parse_int, parse_money, parse_text, require_list

returns_bp = Blueprint("returns", __name__, url_prefix="/api/orders")


def parse_return_items(value) -> list[dict]:
    items = []
    for i, entry in enumerate(require_list(value, "items")):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{i}] must be an object", {"index": i})
        if entry.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required", {"index": i})
        quantity = entry.get("quantity_to_return", entry.get("quantity"))
        items.append({
            "product_id": parse_int(entry["product_id"], f"items[{i}].product_id", minimum=1),
            "sku": parse_text(entry.get("sku"), f"items[{i}].sku", max_length=64),
            "quantity": parse_int(quantity, f"items[{i}].quantity_to_return", minimum=1),
            "reason": parse_text(entry.get("reason"), f"items[{i}].reason", max_length=255),
        })
    return items


def parse_refund_breakdown(value) -> list[dict]:
    refunds = []
    for i, entry in enumerate(require_list(value, "refund_payment_details", allow_empty=True)):
        if not isinstance(entry, dict):
            raise ValidationError(f"refund_payment_details[{i}] must be an object", {"index": i})
        refunds.append({
            "method": parse_text(entry.get("method"), f"refund_payment_details[{i}].method", required=True, max_length=32),
            "amount": parse_money(entry.get("amount"), f"refund_payment_details[{i}].amount"),
            "reference": parse_text(entry.get("reference"), f"refund_payment_details[{i}].reference", max_length=128),
        })
    return refunds


@returns_bp.post("/<order_id>/returns")
@require_actor
@require_role("cashier", "manager")
def submit_return_route(order_id: str):
    """
    Submit a return/exchange against an order.

    Request body:
    {
        "items": [{"product_id": 1, "sku": "SKU-1", "quantity_to_return": 1, "reason": "damaged"}],
        "refund_payment_details": [{"method": "cash", "amount": 30.0}],
        "reason": "Customer changed mind",     (optional)
        "exchange_notes": "Swapped for size L"  (optional)
    }

    Returns:
        201: Return transaction recorded (with the updated order)
        404: Order or line not found
        409: Over-return or order not returnable
        422: Refund breakdown does not match returned value
    """
    payload = request.get_json(silent=True) or {}
    try:
        transaction = return_service.submit_return(
            order_id,
            parse_return_items(payload.get("items")),
            parse_refund_breakdown(payload.get("refund_payment_details")),
            reason=parse_text(payload.get("reason"), "reason"),
            exchange_notes=parse_text(payload.get("exchange_notes"), "exchange_notes"),
            actor_id=g.actor.user_id,
        )
        return jsonify({
            "return_transaction": transaction.to_dict(),
            "order": transaction.order.to_dict(),
        }), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process return for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
