# Overview: Order workflow engine; creation, payments, status machine, cancellation and deletion.

"""
Order Workflow Engine

WHY THIS EXISTS:
Orders are the main consumer of the stock ledger. Creation deducts stock,
cancellation/deletion gives it back, and payments drive status. All of this
must happen in one transaction per request so a failure never leaves a
half-deducted order behind.

LIFECYCLE:
    pending_payment -> partial_payment -> paid      (derived from payments)
    paid -> preparing -> ready_for_pickup -> completed   (advance_order)
    cancelled / returned from any non-terminal state

RULES:
1. Stock for every line is checked before any line is deducted.
2. preparing requires some payment; ready_for_pickup and completed require
   full payment (within MONEY_TOLERANCE).
3. Recording a payment never regresses preparing / ready_for_pickup.
4. An order created from a demand notice deducts only the units the notice
   has not already set aside.
5. Cancel/delete of a notice-linked order keeps the units with the notice
   (unlink + reopen) instead of restoring them.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PaymentPreconditionError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    DemandNotice,
    Order,
    OrderItem,
    OrderPayment,
    OrderTax,
)
from ..models.statuses import (
    ORDER_ACCEPTS_PAYMENT,
    ORDER_ADVANCED,
    ORDER_DELETABLE,
    ORDER_MANUAL_TARGETS,
    ORDER_TERMINAL,
    ORDER_TRANSITIONS,
    OrderStatus,
    parse_status,
    require_transition,
)
from ..validation import money_at_least, money_equal, quantize_money
from . import demand_notice_service, series_service, stock_ledger
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def lock_order(order_id: str) -> Order:
    order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def list_orders(*, status: str | None = None, salesperson_id: str | None = None, limit: int = 200) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == parse_status(OrderStatus, status).value)
    if salesperson_id:
        query = query.filter(
            (Order.primary_salesperson_id == salesperson_id)
            | (Order.secondary_salesperson_id == salesperson_id)
        )
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


# =============================================================================
# CREATION
# =============================================================================

def _compute_taxes(taxable: Decimal, taxes: list[dict]) -> list[OrderTax]:
    rows = []
    for tax in taxes or []:
        rate = tax.get("rate") or Decimal("0")
        amount = tax.get("amount")
        if amount is None:
            amount = quantize_money(taxable * rate / Decimal("100"))
        rows.append(OrderTax(name=tax["name"], rate=rate, amount=amount))
    return rows


def _create_order(
    *,
    lines: list[dict],
    customer: dict | None = None,
    discount_amount: Decimal = Decimal("0"),
    taxes: list[dict] | None = None,
    payments: list[dict] | None = None,
    expected_total: Decimal | None = None,
    notice: DemandNotice | None = None,
    actor_id: str | None = None,
) -> Order:
    """
    Build, price and persist an order inside the caller's transaction.

    `lines` entries: {"product_id", "quantity", "price_per_unit" (optional)}.
    When `notice` is given the order is that notice's conversion.
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")
    customer = customer or {}

    if notice is not None:
        demand_notice_service.assert_convertible(notice)
        if len(lines) != 1 or lines[0]["product_id"] != notice.product_id:
            raise ValidationError(
                "An order created from a demand notice must contain exactly the notice's product",
                {"demand_notice_id": notice.id, "product_id": notice.product_id},
            )
        if lines[0]["quantity"] != notice.quantity_requested:
            raise ValidationError(
                "Order quantity must equal the demand notice's requested quantity",
                {
                    "demand_notice_id": notice.id,
                    "requested": notice.quantity_requested,
                    "quantity": lines[0]["quantity"],
                },
            )

    # Resolve and lock every product before any mutation
    resolved = []
    seen = set()
    for line in lines:
        product_id = line["product_id"]
        if product_id in seen:
            raise ValidationError(
                f"Product {product_id} appears on more than one line", {"product_id": product_id}
            )
        seen.add(product_id)
        product = stock_ledger.lock_product(product_id)
        set_aside = notice.quantity_fulfilled if notice is not None else 0
        resolved.append((product, line, line["quantity"] - set_aside))

    shortages = [
        {
            "product_id": product.id,
            "sku": product.sku,
            "requested": need,
            "available": product.quantity_in_stock,
        }
        for product, _line, need in resolved
        if need > product.quantity_in_stock
    ]
    if shortages:
        first = shortages[0]
        raise InsufficientStockError(
            f"Insufficient stock for {first['sku']}: requested {first['requested']}, "
            f"available {first['available']}",
            {"items": shortages},
        )

    # Amounts
    items = []
    subtotal = Decimal("0")
    for position, (product, line, _need) in enumerate(resolved, start=1):
        if line.get("price_per_unit") is not None:
            unit_price = line["price_per_unit"]
        elif notice is not None:
            unit_price = Decimal(notice.agreed_price)
        else:
            unit_price = product.effective_price()
        unit_price = quantize_money(unit_price)
        total_price = quantize_money(unit_price * line["quantity"])
        subtotal += total_price
        items.append(
            OrderItem(
                position=position,
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                quantity=line["quantity"],
                price_per_unit=unit_price,
                total_price=total_price,
            )
        )

    discount_amount = quantize_money(discount_amount or Decimal("0"))
    if discount_amount > subtotal:
        raise ValidationError(
            "discount_amount cannot exceed the subtotal",
            {"subtotal": str(subtotal), "discount_amount": str(discount_amount)},
        )
    tax_rows = _compute_taxes(subtotal - discount_amount, taxes)
    total = subtotal - discount_amount + sum((t.amount for t in tax_rows), Decimal("0"))

    if expected_total is not None and not money_equal(expected_total, total):
        raise ValidationError(
            "total_amount does not match the computed total",
            {"expected_total": str(expected_total), "computed_total": str(total)},
        )

    order = Order(
        id=series_service.next_series_id(series_service.SERIES_INVOICE),
        customer_name=customer.get("customer_name"),
        customer_phone=customer.get("customer_phone"),
        delivery_address=customer.get("delivery_address"),
        notes=customer.get("notes"),
        primary_salesperson_id=customer.get("primary_salesperson_id"),
        secondary_salesperson_id=customer.get("secondary_salesperson_id"),
        primary_commission_share=customer.get("primary_commission_share"),
        secondary_commission_share=customer.get("secondary_commission_share"),
        subtotal=subtotal,
        discount_amount=discount_amount,
        total_amount=total,
        status=(OrderStatus.PAID if total <= 0 else OrderStatus.PENDING_PAYMENT).value,
        linked_demand_notice_id=notice.id if notice is not None else None,
        created_by=actor_id,
    )
    order.items = items
    order.taxes = tax_rows
    db.session.add(order)
    db.session.flush()

    for product, _line, need in resolved:
        if need > 0:
            stock_ledger.remove_stock(
                product, need, stock_ledger.MOVEMENT_SALE,
                reference_type="order", reference_id=order.id, actor_id=actor_id,
            )

    carried = []
    if notice is not None:
        carried = [
            {
                "method": p.method,
                "amount": Decimal(p.amount),
                "reference": p.reference,
                "notes": f"Advance carried over from {notice.id}",
            }
            for p in notice.payments
        ]
    if carried or payments:
        _append_payments(order, carried + list(payments or []), actor_id=actor_id)

    if notice is not None:
        demand_notice_service.link_to_order(notice, order)

    db.session.flush()
    for product, _line, _need in resolved:
        demand_notice_service.reconcile_product(product.id)

    logger.info("Order %s created (%s items, total %s)", order.id, len(items), total)
    return order


def create_order(
    lines: list[dict],
    *,
    customer: dict | None = None,
    discount_amount: Decimal = Decimal("0"),
    taxes: list[dict] | None = None,
    payments: list[dict] | None = None,
    expected_total: Decimal | None = None,
    linked_demand_notice_id: str | None = None,
    actor_id: str | None = None,
) -> Order:
    with atomic():
        notice = None
        if linked_demand_notice_id:
            notice = demand_notice_service.lock_notice(linked_demand_notice_id)
        return _create_order(
            lines=lines,
            customer=customer,
            discount_amount=discount_amount,
            taxes=taxes,
            payments=payments,
            expected_total=expected_total,
            notice=notice,
            actor_id=actor_id,
        )


# =============================================================================
# PAYMENTS
# =============================================================================

def _payment_status(order: Order) -> OrderStatus:
    current = order.status_enum
    if current in ORDER_ADVANCED:
        return current
    paid = order.amount_paid
    if Decimal(order.total_amount) <= 0:
        return OrderStatus.PAID
    if paid <= 0:
        return OrderStatus.PENDING_PAYMENT
    if money_at_least(paid, order.total_amount):
        return OrderStatus.PAID
    return OrderStatus.PARTIAL_PAYMENT


def _append_payments(order: Order, payments: list[dict], *, actor_id: str | None = None) -> None:
    current = order.status_enum
    if current not in ORDER_ACCEPTS_PAYMENT:
        raise ConflictError(
            f"Order {order.id} is {current.value} and cannot take payments",
            {"order_id": order.id, "status": current.value},
        )
    for p in payments:
        order.payments.append(
            OrderPayment(
                method=p["method"],
                amount=p["amount"],
                reference=p.get("reference"),
                notes=p.get("notes"),
                recorded_by=actor_id,
            )
        )

    new_status = _payment_status(order)
    if new_status != current:
        require_transition(ORDER_TRANSITIONS, current, new_status, entity="Order", entity_id=order.id)
        order.status = new_status.value
        logger.info("Order %s moved %s -> %s after payment", order.id, current.value, new_status.value)


def record_payment(order_id: str, payments: list[dict], *, actor_id: str | None = None) -> Order:
    if not payments:
        raise ValidationError("At least one payment is required", {"order_id": order_id})
    with atomic():
        order = lock_order(order_id)
        _append_payments(order, payments, actor_id=actor_id)
    return order


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def _release_order(order: Order, *, actor_id: str | None, reason: str) -> None:
    """Give back everything the order still holds (stock, or a notice link)."""
    notice = None
    if order.linked_demand_notice_id:
        notice = demand_notice_service.lock_notice(order.linked_demand_notice_id)

    if notice is not None and notice.linked_order_id == order.id:
        item = order.items[0]
        kept = item.quantity - order.returned_quantity_for(item.id)
        demand_notice_service.unlink_from_order(notice, order, kept_quantity=kept)
        return

    touched = []
    for item in order.items:
        remaining = item.quantity - order.returned_quantity_for(item.id)
        if remaining <= 0 or item.product_id is None:
            continue
        product = stock_ledger.lock_product(item.product_id)
        stock_ledger.add_stock(
            product, remaining, stock_ledger.MOVEMENT_SALE_REVERSAL,
            reference_type="order", reference_id=order.id, actor_id=actor_id, note=reason,
        )
        touched.append(product.id)
    db.session.flush()
    for product_id in touched:
        demand_notice_service.reconcile_product(product_id)


def _advance(order: Order, target: OrderStatus, *, actor_id: str | None = None) -> None:
    current = order.status_enum
    if current == target:
        return
    if current in ORDER_TERMINAL:
        raise ConflictError(
            f"Order {order.id} is {current.value}",
            {"order_id": order.id, "current_status": current.value, "requested_status": target.value},
        )

    paid = order.amount_paid
    total = Decimal(order.total_amount)
    if target == OrderStatus.PREPARING and paid <= 0 and total > 0:
        raise PaymentPreconditionError(
            f"Order {order.id} needs a payment before preparing",
            {"order_id": order.id, "amount_paid": str(paid), "total_amount": str(total)},
        )
    if target in (OrderStatus.READY_FOR_PICKUP, OrderStatus.COMPLETED) and not money_at_least(paid, total):
        raise PaymentPreconditionError(
            f"Order {order.id} must be fully paid before {target.value}",
            {"order_id": order.id, "amount_paid": str(paid), "total_amount": str(total)},
        )

    require_transition(ORDER_TRANSITIONS, current, target, entity="Order", entity_id=order.id)

    if target == OrderStatus.CANCELLED:
        _release_order(order, actor_id=actor_id, reason="Order cancelled")

    order.status = target.value
    logger.info("Order %s moved %s -> %s", order.id, current.value, target.value)
    demand_notice_service.follow_order(order)


def advance_order(order_id: str, target, *, actor_id: str | None = None) -> Order:
    target = parse_status(OrderStatus, target)
    if target not in ORDER_MANUAL_TARGETS:
        raise ValidationError(
            f"Status {target.value} cannot be set directly",
            {"requested_status": target.value, "allowed": sorted(s.value for s in ORDER_MANUAL_TARGETS)},
        )
    with atomic():
        order = lock_order(order_id)
        _advance(order, target, actor_id=actor_id)
    return order


def update_order(
    order_id: str,
    *,
    payments: list[dict] | None = None,
    status=None,
    actor_id: str | None = None,
) -> Order:
    """Payments first, then the requested status, in one transaction."""
    if not payments and status is None:
        raise ValidationError("Nothing to update: provide payments and/or status", {"order_id": order_id})
    target = None
    if status is not None:
        target = parse_status(OrderStatus, status)
        if target not in ORDER_MANUAL_TARGETS:
            raise ValidationError(
                f"Status {target.value} cannot be set directly",
                {"requested_status": target.value, "allowed": sorted(s.value for s in ORDER_MANUAL_TARGETS)},
            )

    with atomic():
        order = lock_order(order_id)
        if payments:
            _append_payments(order, payments, actor_id=actor_id)
        if target is not None:
            _advance(order, target, actor_id=actor_id)
    return order


def cancel_order(order_id: str, *, actor_id: str | None = None) -> Order:
    return advance_order(order_id, OrderStatus.CANCELLED, actor_id=actor_id)


def delete_order(order_id: str, *, actor_id: str | None = None) -> None:
    """
    Remove an order that is not yet completed, cancelled or returned.

    Stock goes back to the ledger, or stays with the linked demand notice.
    """
    with atomic():
        order = lock_order(order_id)
        current = order.status_enum
        if current not in ORDER_DELETABLE:
            raise ConflictError(
                f"Order {order.id} is {current.value} and cannot be deleted",
                {"order_id": order.id, "status": current.value},
            )
        if order.return_transactions:
            raise ConflictError(
                f"Order {order.id} has recorded returns and cannot be deleted",
                {"order_id": order.id, "return_transactions": len(order.return_transactions)},
            )
        _release_order(order, actor_id=actor_id, reason="Order deleted")
        logger.info("Deleting order %s", order.id)
        db.session.delete(order)
