# Overview: Flask API routes for demand notice operations; parses input and returns JSON responses.

# backend/backoffice/routes/demand_notices.py
"""
Demand Notice API Routes

DESIGN:
- Create binds to an existing product (status from stock) or creates a
  placeholder product for a new item (status pending_review)
- Convert-to-order re-checks stock and links exactly one order
- Advance payments recorded here are carried into the converted order

SECURITY:
- Create / convert: salesperson, manager, admin
- Status changes: salesperson, storekeeper, manager, admin
- Advance payments: cashier, salesperson, manager, admin
- Re-evaluate: storekeeper, manager, admin
"""

from decimal import Decimal

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError, ValidationError
from ..services import demand_notice_service
from ..validation import (
    parse_date,
    parse_int,
    parse_money,
    parse_payment,
    parse_payments,
    parse_taxes,
    parse_text,
)

demand_notices_bp = Blueprint("demand_notices", __name__, url_prefix="/api/demand-notices")


@demand_notices_bp.post("")
@require_actor
@require_role("salesperson", "manager")
def create_notice_route():
    """
    Request body:
    {
        "customer_contact_number": "+968...",
        "product_id": 4,                (existing product) or
        "product_sku": "SKU-4",         (existing product, or the new product's SKU)
        "product_name": "Blue lamp",    (required when is_new_product)
        "is_new_product": false,
        "quantity_requested": 3,
        "agreed_price": 12.5,
        "expected_availability_date": "2026-11-01",  (optional)
        "notes": "...",                              (optional)
        "payments": [{"method": "cash", "amount": 5}] (optional advance)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        is_new_product = payload.get("is_new_product", False)
        if not isinstance(is_new_product, bool):
            raise ValidationError("is_new_product must be true or false", {"field": "is_new_product"})
        product_id = payload.get("product_id")
        notice = demand_notice_service.create_notice(
            customer_contact_number=parse_text(
                payload.get("customer_contact_number"), "customer_contact_number", required=True, max_length=64
            ),
            quantity_requested=parse_int(payload.get("quantity_requested"), "quantity_requested", minimum=1),
            agreed_price=parse_money(payload.get("agreed_price"), "agreed_price"),
            product_id=parse_int(product_id, "product_id", minimum=1) if product_id is not None else None,
            product_sku=parse_text(payload.get("product_sku"), "product_sku", max_length=64),
            product_name=parse_text(payload.get("product_name"), "product_name", max_length=255),
            is_new_product=is_new_product,
            expected_availability_date=parse_date(
                payload.get("expected_availability_date"), "expected_availability_date"
            ),
            notes=parse_text(payload.get("notes"), "notes"),
            payments=parse_payments(payload.get("payments")),
            salesperson_id=g.actor.user_id,
        )
        return jsonify({"demand_notice": notice.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create demand notice")
        return jsonify({"error": "Internal server error"}), 500


@demand_notices_bp.get("")
@require_actor
def list_notices_route():
    """
    Query params:
    - status (optional)
    - salesperson_id (optional; salespeople only see their own notices)
    - product_id (optional)
    """
    salesperson_id = request.args.get("salesperson_id")
    if g.actor.role == "salesperson":
        salesperson_id = g.actor.user_id
    try:
        notices = demand_notice_service.list_notices(
            status=request.args.get("status"),
            salesperson_id=salesperson_id,
            product_id=request.args.get("product_id", type=int),
        )
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"demand_notices": [n.to_dict() for n in notices]}), 200


@demand_notices_bp.get("/<notice_id>")
@require_actor
def get_notice_route(notice_id: str):
    try:
        notice = demand_notice_service.get_notice(notice_id)
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"demand_notice": notice.to_dict()}), 200


@demand_notices_bp.put("/<notice_id>")
@require_actor
@require_role("salesperson", "storekeeper", "manager")
def update_notice_route(notice_id: str):
    """
    Manual status change: customer_notified_stock, awaiting_customer_action, cancelled.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if "status" not in payload:
            raise ValidationError("status is required", {"field": "status"})
        notice = demand_notice_service.transition_notice(
            notice_id, payload["status"], actor_id=g.actor.user_id
        )
        return jsonify({"demand_notice": notice.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update demand notice %s", notice_id)
        return jsonify({"error": "Internal server error"}), 500


@demand_notices_bp.post("/<notice_id>/payments")
@require_actor
@require_role("cashier", "salesperson", "manager")
def record_notice_payment_route(notice_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        notice = demand_notice_service.record_notice_payment(
            notice_id, parse_payment(payload), actor_id=g.actor.user_id
        )
        return jsonify({"demand_notice": notice.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record payment for demand notice %s", notice_id)
        return jsonify({"error": "Internal server error"}), 500


@demand_notices_bp.post("/<notice_id>/reevaluate")
@require_actor
@require_role("storekeeper", "manager")
def reevaluate_notice_route(notice_id: str):
    try:
        notice = demand_notice_service.reevaluate_notice(notice_id)
        return jsonify({"demand_notice": notice.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to re-evaluate demand notice %s", notice_id)
        return jsonify({"error": "Internal server error"}), 500


@demand_notices_bp.post("/<notice_id>/convert-to-order")
@require_actor
@require_role("salesperson", "manager")
def convert_to_order_route(notice_id: str):
    """
    Convert a fully available notice into an order.

    Optional body: customer_name, delivery_address, discount_amount, taxes, payments.

    Returns:
        201: {"order": ..., "demand_notice": ...}
        409: Already linked, not convertible, or stock went stale
    """
    payload = request.get_json(silent=True) or {}
    try:
        discount = payload.get("discount_amount")
        customer = {
            key: parse_text(payload[key], key, max_length=255)
            for key in ("customer_name", "customer_phone", "delivery_address")
            if payload.get(key) is not None
        }
        order = demand_notice_service.convert_to_order(
            notice_id,
            customer=customer,
            discount_amount=parse_money(discount, "discount_amount") if discount is not None else Decimal("0"),
            taxes=parse_taxes(payload.get("taxes")),
            payments=parse_payments(payload.get("payments")),
            actor_id=g.actor.user_id,
        )
        notice = demand_notice_service.get_notice(notice_id)
        return jsonify({"order": order.to_dict(), "demand_notice": notice.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to convert demand notice %s", notice_id)
        return jsonify({"error": "Internal server error"}), 500
