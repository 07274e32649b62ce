# Overview: Return/exchange processor; validates returns against purchase history and restores stock.

"""
Return / Exchange Processor

WHY THIS EXISTS:
Customers return part of an order, sometimes in several visits. Each visit
must be checked against everything already returned, put the goods back
into stock, and record a refund that matches the returned value exactly.

ALGORITHM (one transaction per request):
1. Match each requested line to an order line (product id + sku).
2. Reject when previously returned + requested exceeds the purchased quantity.
3. Value = original unit price x quantity, summed over lines.
4. Restore stock; placeholder products get a "Return DN" category tag.
5. The caller's refund breakdown must equal the value within MONEY_TOLERANCE.
6. Append an immutable ReturnTransaction.
7. Every line fully returned -> order becomes `returned`.
8. Fully returned and linked to a demand notice -> notice moves to
   awaiting_customer_action.
Any failure rolls back every stock and record change from the request.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from ..errors import (
    ConflictError,
    ItemNotInOrderError,
    OverReturnError,
    RefundMismatchError,
    ValidationError,
)
from ..extensions import db
from ..models import Order, Product, RefundPayment, ReturnedItem, ReturnTransaction
from ..models.statuses import (
    ORDER_RETURNABLE,
    ORDER_TRANSITIONS,
    OrderStatus,
    require_transition,
)
from ..validation import money_equal, quantize_money
from . import demand_notice_service, order_service, stock_ledger
from .concurrency import atomic

logger = logging.getLogger(__name__)


RETURN_ID_PREFIX = "RET-"
RETURN_DN_TAG = "Return DN"


def _tag_returned_placeholder(product: Product) -> None:
    category = product.category or ""
    if RETURN_DN_TAG in category:
        return
    product.category = f"{category}, {RETURN_DN_TAG}" if category else RETURN_DN_TAG


def _match_line(order: Order, product_id: int, sku: str | None):
    for item in order.items:
        if item.product_id == product_id and (sku is None or item.sku == sku):
            return item
    return None


def submit_return(
    order_id: str,
    items: list[dict],
    refund_payments: list[dict],
    *,
    reason: str | None = None,
    exchange_notes: str | None = None,
    actor_id: str | None = None,
) -> ReturnTransaction:
    """
    Record one return against `order_id`.

    `items` entries: {"product_id", "sku" (optional), "quantity", "reason" (optional)}.
    `refund_payments` entries: {"method", "amount", "reference" (optional)}.
    """
    if not items:
        raise ValidationError("At least one item must be returned", {"order_id": order_id})

    with atomic():
        order = order_service.lock_order(order_id)
        current = order.status_enum
        if current not in ORDER_RETURNABLE:
            raise ConflictError(
                f"Order {order.id} is {current.value} and cannot accept returns",
                {
                    "order_id": order.id,
                    "status": current.value,
                    "allowed": sorted(s.value for s in ORDER_RETURNABLE),
                },
            )

        returned_now: dict[int, int] = {}
        lines = []
        total_value = Decimal("0")

        for req in items:
            item = _match_line(order, req["product_id"], req.get("sku"))
            if item is None:
                raise ItemNotInOrderError(
                    f"Product {req['product_id']} is not on order {order.id}",
                    {"order_id": order.id, "product_id": req["product_id"], "sku": req.get("sku")},
                )

            previously = order.returned_quantity_for(item.id) + returned_now.get(item.id, 0)
            quantity = req["quantity"]
            if previously + quantity > item.quantity:
                raise OverReturnError(
                    f"Cannot return {quantity} of {item.sku}: {previously} of {item.quantity} already returned",
                    {
                        "order_id": order.id,
                        "product_id": item.product_id,
                        "sku": item.sku,
                        "purchased": item.quantity,
                        "previously_returned": previously,
                        "requested": quantity,
                    },
                )
            returned_now[item.id] = returned_now.get(item.id, 0) + quantity

            line_value = quantize_money(Decimal(item.price_per_unit) * quantity)
            total_value += line_value
            lines.append((item, quantity, line_value, req.get("reason")))

        refund_total = sum((Decimal(r["amount"]) for r in refund_payments), Decimal("0"))
        if not money_equal(refund_total, total_value):
            raise RefundMismatchError(
                f"Refund breakdown {refund_total} does not match returned value {total_value}",
                {
                    "order_id": order.id,
                    "total_value_of_returned_items": str(total_value),
                    "refund_total": str(refund_total),
                },
            )

        transaction = ReturnTransaction(
            id=f"{RETURN_ID_PREFIX}{uuid.uuid4().hex}",
            order_id=order.id,
            reason=reason,
            exchange_notes=exchange_notes,
            total_value_of_returned_items=total_value,
            net_refund_amount=quantize_money(refund_total),
            processed_by=actor_id,
        )

        touched = []
        for item, quantity, line_value, line_reason in lines:
            transaction.items.append(
                ReturnedItem(
                    order_item_id=item.id,
                    product_id=item.product_id,
                    sku=item.sku,
                    quantity=quantity,
                    price_per_unit=item.price_per_unit,
                    line_value=line_value,
                    reason=line_reason,
                )
            )
            if item.product_id is None:
                logger.warning("Return %s: product for %s no longer exists; stock not restored", transaction.id, item.sku)
                continue
            product = db.session.get(Product, item.product_id)
            if product is None:
                logger.warning("Return %s: product %s no longer exists; stock not restored", transaction.id, item.product_id)
                continue
            product = stock_ledger.lock_product(item.product_id)
            stock_ledger.add_stock(
                product, quantity, stock_ledger.MOVEMENT_RETURN,
                reference_type="return", reference_id=transaction.id, actor_id=actor_id, note=line_reason,
            )
            if product.is_demand_notice_product:
                _tag_returned_placeholder(product)
            if product.id not in touched:
                touched.append(product.id)

        for r in refund_payments:
            transaction.refund_payments.append(
                RefundPayment(method=r["method"], amount=r["amount"], reference=r.get("reference"))
            )

        order.return_transactions.append(transaction)
        db.session.flush()

        if order.is_fully_returned():
            require_transition(ORDER_TRANSITIONS, current, OrderStatus.RETURNED, entity="Order", entity_id=order.id)
            order.status = OrderStatus.RETURNED.value
            logger.info("Order %s fully returned", order.id)
            if order.linked_demand_notice_id:
                notice = demand_notice_service.lock_notice(order.linked_demand_notice_id)
                demand_notice_service.mark_order_returned(notice, order)

        for product_id in touched:
            demand_notice_service.reconcile_product(product_id)

        logger.info("Return %s recorded on order %s (value %s)", transaction.id, order.id, total_value)
    return transaction
