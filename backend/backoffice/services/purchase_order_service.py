# Overview: Purchase-order lifecycle and receiving engine; supplier deliveries increment stock.

"""
Purchase-Order Receiving Engine

WHY THIS EXISTS:
Supplier goods arrive in several deliveries. Each delivery is recorded
against the PO lines, raises stock by exactly the received amount, and wakes
up any demand notice waiting on that product.

RULES:
1. Receiving is legal only while the PO is Confirmed or Shipped.
2. A line never receives more than quantity_ordered - quantity_received.
3. quantity_received only grows.
4. The PO becomes Received when, and only when, every line is complete.
5. Received is never set by hand; it is the result of receiving.

ROLE-GATED UPDATES:
    admin, or manager with manage_suppliers:
        status, expected_delivery, deadline, advance_paid, total_amount
    logistics:
        status, expected_delivery, transport_details
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OverReceiveError,
    ValidationError,
)
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..models.statuses import (
    PO_RECEIVABLE,
    PURCHASE_ORDER_TRANSITIONS,
    PurchaseOrderStatus,
    parse_status,
    require_transition,
)
from ..validation import parse_date, parse_money, parse_text, quantize_money
from . import demand_notice_service, series_service, stock_ledger
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


PERMISSION_MANAGE_SUPPLIERS = "manage_suppliers"

COMMERCIAL_FIELDS = {"status", "expected_delivery", "deadline", "advance_paid", "total_amount"}
LOGISTICS_FIELDS = {"status", "expected_delivery", "transport_details"}


def get_purchase_order(po_id: str) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found", {"purchase_order_id": po_id})
    return po


def lock_purchase_order(po_id: str) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)).first()
    if po is None:
        raise NotFoundError(f"Purchase order {po_id} not found", {"purchase_order_id": po_id})
    return po


def list_purchase_orders(*, status: str | None = None, limit: int = 200) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == parse_status(PurchaseOrderStatus, status).value)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).limit(limit).all()


def create_purchase_order(
    *,
    items: list[dict],
    supplier_id: str | None = None,
    total_amount: Decimal | None = None,
    advance_paid: Decimal = Decimal("0"),
    deadline=None,
    expected_delivery=None,
    notes: str | None = None,
    actor_id: str | None = None,
) -> PurchaseOrder:
    """
    Create a Draft PO. `items` entries: {"product_id", "quantity_ordered", "unit_cost" (optional)}.
    """
    if not items:
        raise ValidationError("A purchase order needs at least one item")

    with atomic():
        lines = []
        for entry in items:
            product = stock_ledger.lock_product(entry["product_id"])
            lines.append(
                PurchaseOrderItem(
                    product_id=product.id,
                    sku=product.sku,
                    quantity_ordered=entry["quantity_ordered"],
                    quantity_received=0,
                    unit_cost=entry.get("unit_cost"),
                    notes=entry.get("notes"),
                )
            )

        if total_amount is None:
            total_amount = quantize_money(
                sum(
                    (Decimal(line.unit_cost) * line.quantity_ordered for line in lines if line.unit_cost is not None),
                    Decimal("0"),
                )
            )

        po = PurchaseOrder(
            id=series_service.next_series_id(series_service.SERIES_PO),
            supplier_id=supplier_id,
            status=PurchaseOrderStatus.DRAFT.value,
            total_amount=total_amount,
            advance_paid=advance_paid,
            deadline=deadline,
            expected_delivery=expected_delivery,
            notes=notes,
            created_by=actor_id,
        )
        po.items = lines
        db.session.add(po)
        logger.info("Purchase order %s created with %s lines", po.id, len(lines))
    return po


def _set_status(po: PurchaseOrder, target: PurchaseOrderStatus) -> None:
    current = po.status_enum
    if current == target:
        return
    require_transition(PURCHASE_ORDER_TRANSITIONS, current, target, entity="Purchase order", entity_id=po.id)
    po.status = target.value
    logger.info("Purchase order %s moved %s -> %s", po.id, current.value, target.value)


def confirm_purchase_order(po_id: str) -> PurchaseOrder:
    with atomic():
        po = lock_purchase_order(po_id)
        if po.status_enum not in (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.PENDING):
            raise ConflictError(
                f"Purchase order {po.id} is {po.status} and cannot be confirmed",
                {"purchase_order_id": po.id, "current_status": po.status},
            )
        _set_status(po, PurchaseOrderStatus.CONFIRMED)
    return po


def allowed_update_fields(actor) -> set[str]:
    if actor.role == "admin":
        return set(COMMERCIAL_FIELDS)
    if actor.role == "manager" and actor.has_permission(PERMISSION_MANAGE_SUPPLIERS):
        return set(COMMERCIAL_FIELDS)
    if actor.role == "logistics":
        return set(LOGISTICS_FIELDS)
    return set()


def update_purchase_order(po_id: str, patch: dict, *, actor) -> PurchaseOrder:
    """
    Apply the subset of `patch` the actor's role may change.

    Fields outside that subset are ignored (and logged). Nothing applicable
    left is an AuthorizationError.
    """
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields provided for update", {"purchase_order_id": po_id})

    allowed = allowed_update_fields(actor)
    ignored = sorted(set(patch) - allowed)
    if ignored:
        logger.warning(
            "Purchase order %s: ignoring fields %s for %s (%s)", po_id, ignored, actor.user_id, actor.role
        )
    applicable = {k: v for k, v in patch.items() if k in allowed}
    if not applicable:
        raise AuthorizationError(
            "No valid fields provided for update or permission denied",
            {"purchase_order_id": po_id, "role": actor.role, "ignored_fields": ignored},
        )

    target = None
    if "status" in applicable:
        target = parse_status(PurchaseOrderStatus, applicable["status"])
        if target == PurchaseOrderStatus.RECEIVED:
            raise ConflictError(
                "Received is set by receiving goods, not by update",
                {"purchase_order_id": po_id, "requested_status": target.value},
            )

    with atomic():
        po = lock_purchase_order(po_id)
        if target is not None:
            _set_status(po, target)
        if "expected_delivery" in applicable:
            po.expected_delivery = parse_date(applicable["expected_delivery"], "expected_delivery")
        if "deadline" in applicable:
            po.deadline = parse_date(applicable["deadline"], "deadline")
        if "advance_paid" in applicable:
            po.advance_paid = parse_money(applicable["advance_paid"], "advance_paid")
        if "total_amount" in applicable:
            po.total_amount = parse_money(applicable["total_amount"], "total_amount")
        if "transport_details" in applicable:
            details = applicable["transport_details"] or {}
            if not isinstance(details, dict):
                raise ValidationError("transport_details must be an object", {"field": "transport_details"})
            if "vehicle_number" in details:
                po.transport_vehicle_number = parse_text(details["vehicle_number"], "vehicle_number", max_length=64)
            if "driver_contact" in details:
                po.transport_driver_contact = parse_text(details["driver_contact"], "driver_contact", max_length=64)
            if "notes" in details:
                po.transport_notes = parse_text(details["notes"], "notes")
    return po


def receive_items(po_id: str, lines: list[dict], *, actor_id: str | None = None, notes: str | None = None) -> PurchaseOrder:
    """
    Record one delivery. `lines` entries: {"po_item_id", "received_quantity"}.

    Lines naming the same item are applied in order against the running total.
    """
    if not lines:
        raise ValidationError("No items to receive", {"purchase_order_id": po_id})

    with atomic():
        po = lock_purchase_order(po_id)
        current = po.status_enum
        if current not in PO_RECEIVABLE:
            raise ConflictError(
                f"Purchase order {po.id} is {current.value}; goods can only be received when "
                "Confirmed or Shipped",
                {
                    "purchase_order_id": po.id,
                    "current_status": current.value,
                    "allowed": sorted(s.value for s in PO_RECEIVABLE),
                },
            )

        items_by_id = {item.id: item for item in po.items}
        touched = []
        for line in lines:
            item = items_by_id.get(line["po_item_id"])
            if item is None:
                raise NotFoundError(
                    f"Item {line['po_item_id']} is not on purchase order {po.id}",
                    {"purchase_order_id": po.id, "po_item_id": line["po_item_id"]},
                )
            quantity = line["received_quantity"]
            if quantity < 0:
                raise ValidationError(
                    "received_quantity cannot be negative",
                    {"purchase_order_id": po.id, "po_item_id": item.id, "received_quantity": quantity},
                )
            if quantity == 0:
                continue
            if quantity > item.quantity_remaining:
                raise OverReceiveError(
                    f"Cannot receive {quantity} of {item.sku}: only {item.quantity_remaining} outstanding",
                    {
                        "purchase_order_id": po.id,
                        "po_item_id": item.id,
                        "sku": item.sku,
                        "quantity_ordered": item.quantity_ordered,
                        "quantity_received": item.quantity_received,
                        "requested": quantity,
                    },
                )

            item.quantity_received = item.quantity_received + quantity
            if item.product_id is None:
                logger.warning("Purchase order %s item %s has no product; stock not updated", po.id, item.id)
                continue
            product = stock_ledger.lock_product(item.product_id)
            stock_ledger.add_stock(
                product, quantity, stock_ledger.MOVEMENT_PO_RECEIPT,
                reference_type="purchase_order", reference_id=po.id, actor_id=actor_id, note=notes,
            )
            if product.id not in touched:
                touched.append(product.id)

        db.session.flush()
        for product_id in touched:
            demand_notice_service.reconcile_product(product_id)

        if po.is_fully_received():
            _set_status(po, PurchaseOrderStatus.RECEIVED)
            logger.info("Purchase order %s fully received", po.id)
    return po
