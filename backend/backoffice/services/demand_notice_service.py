# Overview: Demand-notice workflow engine; placeholder products, reconciliation and order conversion.

"""
Demand-Notice Workflow Engine

WHY THIS EXISTS:
Salespeople record customer requests for products that are out of stock or
not cataloged yet. A notice follows the product's stock until enough units
exist, then converts into exactly one order.

RECONCILIATION:
reconcile_product(product_id) is called explicitly by every operation that
changes a product's stock (orders, returns, receiving, product edits). It
recomputes the stock-derived status of each live notice for the product:

    available = product.quantity_in_stock + notice.quantity_fulfilled
    available == 0          -> awaiting_stock
    0 < available < wanted  -> partial_stock_available
    available >= wanted     -> full_stock_available

A full_stock_available status is a hint, not a reservation: conversion checks
stock again and fails with InsufficientStockError when it went stale.

SET-ASIDE UNITS:
quantity_fulfilled counts units already taken out of stock for the notice.
Conversion deducts only the difference and then marks the full quantity as
set aside. When the linked order is cancelled or deleted the units stay with
the notice; when the order is fully returned they are back in stock and the
counter drops to zero.
"""

from __future__ import annotations

import logging
import random
import string
import time
from decimal import Decimal

from ..errors import ConflictError, NotFoundError, ProductNotFoundError, ValidationError
from ..extensions import db
from ..models import DemandNotice, DemandNoticePayment, Order, Product
from ..models.statuses import (
    DEMAND_NOTICE_TRANSITIONS,
    DN_CONVERTIBLE,
    DN_FOLLOWS_ORDER,
    DN_MANUAL_TARGETS,
    DN_RECONCILABLE,
    DN_TERMINAL,
    ORDER_TERMINAL,
    DemandNoticeStatus,
    OrderStatus,
    can_transition,
    parse_status,
    require_transition,
)
from . import series_service, stock_ledger
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


PLACEHOLDER_CATEGORY = "Demand Notice Item"
PLACEHOLDER_SKU_PREFIX = "NEW-"
PLACEHOLDER_SKU_ATTEMPTS = 5
PLACEHOLDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


# =============================================================================
# HELPERS
# =============================================================================

def availability_status(in_stock: int, set_aside: int, requested: int) -> DemandNoticeStatus:
    available = in_stock + set_aside
    if available <= 0:
        return DemandNoticeStatus.AWAITING_STOCK
    if available < requested:
        return DemandNoticeStatus.PARTIAL_STOCK_AVAILABLE
    return DemandNoticeStatus.FULL_STOCK_AVAILABLE


def _base36(number: int) -> str:
    digits = string.digits + string.ascii_uppercase
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_placeholder_sku() -> str:
    """NEW-<base36 ms timestamp>-<5 random>, collision-checked with bounded retries."""
    for _ in range(PLACEHOLDER_SKU_ATTEMPTS):
        suffix = "".join(random.choices(PLACEHOLDER_SUFFIX_ALPHABET, k=5))
        sku = f"{PLACEHOLDER_SKU_PREFIX}{_base36(int(time.time() * 1000))}-{suffix}"
        if not stock_ledger.sku_exists(sku):
            return sku
    raise ConflictError(
        "Could not generate a unique placeholder SKU",
        {"attempts": PLACEHOLDER_SKU_ATTEMPTS},
    )


def get_notice(notice_id: str) -> DemandNotice:
    notice = db.session.get(DemandNotice, notice_id)
    if notice is None:
        raise NotFoundError(f"Demand notice {notice_id} not found", {"demand_notice_id": notice_id})
    return notice


def lock_notice(notice_id: str) -> DemandNotice:
    notice = lock_for_update(db.session.query(DemandNotice).filter(DemandNotice.id == notice_id)).first()
    if notice is None:
        raise NotFoundError(f"Demand notice {notice_id} not found", {"demand_notice_id": notice_id})
    return notice


def list_notices(
    *,
    status: str | None = None,
    salesperson_id: str | None = None,
    product_id: int | None = None,
    limit: int = 200,
) -> list[DemandNotice]:
    query = db.session.query(DemandNotice)
    if status:
        query = query.filter(DemandNotice.status == parse_status(DemandNoticeStatus, status).value)
    if salesperson_id:
        query = query.filter(DemandNotice.salesperson_id == salesperson_id)
    if product_id is not None:
        query = query.filter(DemandNotice.product_id == product_id)
    return query.order_by(DemandNotice.created_at.desc(), DemandNotice.id.desc()).limit(limit).all()


def _set_status(notice: DemandNotice, target: DemandNoticeStatus) -> None:
    current = notice.status_enum
    if current == target:
        return
    require_transition(
        DEMAND_NOTICE_TRANSITIONS, current, target, entity="Demand notice", entity_id=notice.id
    )
    notice.status = target.value
    logger.info("Demand notice %s moved %s -> %s", notice.id, current.value, target.value)


# =============================================================================
# CREATE
# =============================================================================

def create_notice(
    *,
    customer_contact_number: str,
    quantity_requested: int,
    agreed_price: Decimal,
    product_id: int | None = None,
    product_sku: str | None = None,
    product_name: str | None = None,
    is_new_product: bool = False,
    expected_availability_date=None,
    notes: str | None = None,
    payments: list[dict] | None = None,
    salesperson_id: str | None = None,
) -> DemandNotice:
    """
    Record a customer request.

    Existing product: status follows current stock.
    New product: a placeholder product (stock 0) is created and the notice
    waits in pending_review.
    """
    if quantity_requested <= 0:
        raise ValidationError("quantity_requested must be > 0", {"quantity_requested": quantity_requested})

    with atomic():
        if is_new_product:
            if not product_name:
                raise ValidationError("product_name is required for a new product", {"field": "product_name"})
            if product_sku:
                if stock_ledger.sku_exists(product_sku):
                    raise ConflictError(f"SKU {product_sku} already exists", {"sku": product_sku})
                sku = product_sku
            else:
                sku = generate_placeholder_sku()

            product = Product(
                sku=sku,
                name=product_name,
                category=PLACEHOLDER_CATEGORY,
                price=agreed_price,
                quantity_in_stock=0,
                is_demand_notice_product=True,
            )
            db.session.add(product)
            db.session.flush()
            logger.info("Placeholder product %s (%s) created for demand notice", product.id, sku)
            status = DemandNoticeStatus.PENDING_REVIEW
        else:
            if product_id is not None:
                product = stock_ledger.lock_product(product_id)
            elif product_sku:
                product = db.session.query(Product).filter(Product.sku == product_sku).first()
                if product is None:
                    raise ProductNotFoundError(f"Product with SKU {product_sku} not found", {"sku": product_sku})
            else:
                raise ValidationError(
                    "product_id or product_sku is required for an existing product",
                    {"fields": ["product_id", "product_sku"]},
                )
            status = availability_status(product.quantity_in_stock, 0, quantity_requested)

        notice = DemandNotice(
            id=series_service.next_series_id(series_service.SERIES_DEMAND_NOTICE),
            salesperson_id=salesperson_id,
            customer_contact_number=customer_contact_number,
            product_id=product.id,
            product_name=product_name or product.name,
            product_sku=product.sku,
            is_new_product=is_new_product,
            quantity_requested=quantity_requested,
            quantity_fulfilled=0,
            agreed_price=agreed_price,
            expected_availability_date=expected_availability_date,
            notes=notes,
            status=status.value,
        )
        for p in payments or []:
            notice.payments.append(
                DemandNoticePayment(
                    method=p["method"],
                    amount=p["amount"],
                    reference=p.get("reference"),
                    notes=p.get("notes"),
                    recorded_by=salesperson_id,
                )
            )
        db.session.add(notice)
        logger.info("Demand notice %s created at %s", notice.id, status.value)
    return notice


# =============================================================================
# RECONCILE
# =============================================================================

def reconcile_product(product_id: int) -> list[DemandNotice]:
    """
    Recompute stock-derived status for every live notice on the product.

    Runs inside the caller's transaction. Returns the notices that changed.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        return []

    notices = (
        lock_for_update(
            db.session.query(DemandNotice).filter(
                DemandNotice.product_id == product_id,
                DemandNotice.status.in_([s.value for s in DN_RECONCILABLE]),
            )
        )
        .order_by(DemandNotice.created_at.asc(), DemandNotice.id.asc())
        .all()
    )

    changed = []
    for notice in notices:
        current = notice.status_enum
        target = availability_status(
            product.quantity_in_stock, notice.quantity_fulfilled, notice.quantity_requested
        )
        # Customer already told; keep that while stock still covers the request
        if current == DemandNoticeStatus.CUSTOMER_NOTIFIED_STOCK and target == DemandNoticeStatus.FULL_STOCK_AVAILABLE:
            continue
        if current == target:
            continue
        _set_status(notice, target)
        changed.append(notice)
    return changed


def reconcile(product_id: int) -> list[DemandNotice]:
    """Stand-alone Reconcile for one product, in its own transaction."""
    with atomic():
        stock_ledger.lock_product(product_id)
        changed = reconcile_product(product_id)
    return changed


def reconcile_all() -> dict[int, int]:
    """Reconcile every product referenced by a live notice. Returns {product_id: changed count}."""
    product_ids = [
        row[0]
        for row in db.session.query(DemandNotice.product_id)
        .filter(
            DemandNotice.product_id.isnot(None),
            DemandNotice.status.in_([s.value for s in DN_RECONCILABLE]),
        )
        .distinct()
        .all()
    ]
    return {product_id: len(reconcile(product_id)) for product_id in product_ids}


# =============================================================================
# CONVERSION AND ORDER LINKAGE
# =============================================================================

def assert_convertible(notice: DemandNotice) -> None:
    if notice.linked_order_id:
        raise ConflictError(
            f"Demand notice {notice.id} is already linked to order {notice.linked_order_id}",
            {"demand_notice_id": notice.id, "linked_order_id": notice.linked_order_id},
        )
    current = notice.status_enum
    if current not in DN_CONVERTIBLE:
        raise ConflictError(
            f"Demand notice {notice.id} is {current.value} and cannot be converted",
            {
                "demand_notice_id": notice.id,
                "current_status": current.value,
                "allowed": sorted(s.value for s in DN_CONVERTIBLE),
            },
        )
    if notice.product_id is None:
        raise ConflictError(
            f"Demand notice {notice.id} has no product",
            {"demand_notice_id": notice.id},
        )


def link_to_order(notice: DemandNotice, order: Order) -> None:
    """Called by the order engine once the conversion order exists."""
    _set_status(notice, DemandNoticeStatus.ORDER_PROCESSING)
    notice.linked_order_id = order.id
    notice.quantity_fulfilled = notice.quantity_requested


def unlink_from_order(notice: DemandNotice, order: Order, *, kept_quantity: int) -> None:
    """
    Linked order cancelled or deleted: reopen the notice.

    The order's units were never restored, so they stay set aside here.
    """
    if notice.status_enum in DN_TERMINAL:
        logger.warning("Demand notice %s is %s; leaving it unchanged", notice.id, notice.status)
        return
    notice.linked_order_id = None
    notice.quantity_fulfilled = max(0, min(kept_quantity, notice.quantity_requested))
    product = db.session.get(Product, notice.product_id) if notice.product_id else None
    in_stock = product.quantity_in_stock if product is not None else 0
    _set_status(notice, availability_status(in_stock, notice.quantity_fulfilled, notice.quantity_requested))
    logger.info("Demand notice %s unlinked from order %s", notice.id, order.id)


def mark_order_returned(notice: DemandNotice, order: Order) -> None:
    """Linked order fully returned: stock is back in the ledger, a human decides next."""
    if notice.linked_order_id != order.id or notice.status_enum in DN_TERMINAL:
        return
    _set_status(notice, DemandNoticeStatus.AWAITING_CUSTOMER_ACTION)
    notice.linked_order_id = None
    notice.quantity_fulfilled = 0


def follow_order(order: Order) -> None:
    """Move a linked notice along with its order's fulfillment status."""
    target = DN_FOLLOWS_ORDER.get(order.status_enum)
    if target is None or not order.linked_demand_notice_id:
        return
    notice = lock_notice(order.linked_demand_notice_id)
    if notice.linked_order_id != order.id:
        return
    if can_transition(DEMAND_NOTICE_TRANSITIONS, notice.status_enum, target):
        _set_status(notice, target)
    else:
        logger.warning(
            "Demand notice %s stays %s while order %s is %s",
            notice.id, notice.status, order.id, order.status,
        )


def convert_to_order(
    notice_id: str,
    *,
    customer: dict | None = None,
    discount_amount: Decimal = Decimal("0"),
    taxes: list[dict] | None = None,
    payments: list[dict] | None = None,
    actor_id: str | None = None,
) -> Order:
    """
    Turn a fully available notice into an order for its product and quantity.

    Stock is checked again here; a stale full_stock_available status fails
    with InsufficientStockError and nothing changes.
    """
    from . import order_service

    with atomic():
        notice = lock_notice(notice_id)
        assert_convertible(notice)
        order_customer = {
            "customer_phone": notice.customer_contact_number,
            "primary_salesperson_id": notice.salesperson_id,
            "notes": f"Converted from demand notice {notice.id}",
        }
        order_customer.update(customer or {})
        order = order_service._create_order(
            lines=[{
                "product_id": notice.product_id,
                "quantity": notice.quantity_requested,
                "price_per_unit": Decimal(notice.agreed_price),
            }],
            customer=order_customer,
            discount_amount=discount_amount,
            taxes=taxes,
            payments=payments,
            notice=notice,
            actor_id=actor_id,
        )
    return order


# =============================================================================
# PAYMENTS AND MANUAL TRANSITIONS
# =============================================================================

def record_notice_payment(notice_id: str, payment: dict, *, actor_id: str | None = None) -> DemandNotice:
    with atomic():
        notice = lock_notice(notice_id)
        if notice.status_enum in DN_TERMINAL or notice.linked_order_id:
            raise ConflictError(
                f"Demand notice {notice.id} no longer takes advance payments",
                {"demand_notice_id": notice.id, "status": notice.status, "linked_order_id": notice.linked_order_id},
            )
        notice.payments.append(
            DemandNoticePayment(
                method=payment["method"],
                amount=payment["amount"],
                reference=payment.get("reference"),
                notes=payment.get("notes"),
                recorded_by=actor_id,
            )
        )
    return notice


def _linked_order_is_live(notice: DemandNotice) -> bool:
    if not notice.linked_order_id:
        return False
    order = db.session.get(Order, notice.linked_order_id)
    return order is not None and OrderStatus(order.status) not in ORDER_TERMINAL


def transition_notice(notice_id: str, target, *, actor_id: str | None = None) -> DemandNotice:
    target = parse_status(DemandNoticeStatus, target)
    if target not in DN_MANUAL_TARGETS:
        raise ValidationError(
            f"Status {target.value} cannot be set directly",
            {"requested_status": target.value, "allowed": sorted(s.value for s in DN_MANUAL_TARGETS)},
        )

    with atomic():
        notice = lock_notice(notice_id)
        if target == DemandNoticeStatus.CANCELLED:
            if _linked_order_is_live(notice):
                raise ConflictError(
                    f"Demand notice {notice.id} is linked to open order {notice.linked_order_id}",
                    {"demand_notice_id": notice.id, "linked_order_id": notice.linked_order_id},
                )
            _set_status(notice, target)
            if notice.quantity_fulfilled > 0 and notice.product_id is not None:
                product = stock_ledger.lock_product(notice.product_id)
                stock_ledger.add_stock(
                    product, notice.quantity_fulfilled, stock_ledger.MOVEMENT_RESERVATION_RELEASE,
                    reference_type="demand_notice", reference_id=notice.id, actor_id=actor_id,
                    note="Demand notice cancelled",
                )
                notice.quantity_fulfilled = 0
                db.session.flush()
                reconcile_product(product.id)
        else:
            _set_status(notice, target)
    return notice


def reevaluate_notice(notice_id: str) -> DemandNotice:
    """Re-derive the stock status of a notice waiting on review or on the customer."""
    with atomic():
        notice = lock_notice(notice_id)
        current = notice.status_enum
        if current not in (DemandNoticeStatus.PENDING_REVIEW, DemandNoticeStatus.AWAITING_CUSTOMER_ACTION):
            raise ConflictError(
                f"Demand notice {notice.id} is {current.value}; only notices under review "
                "or awaiting the customer can be re-evaluated",
                {"demand_notice_id": notice.id, "current_status": current.value},
            )
        if notice.product_id is None:
            raise ConflictError(f"Demand notice {notice.id} has no product", {"demand_notice_id": notice.id})
        product = stock_ledger.lock_product(notice.product_id)
        _set_status(
            notice,
            availability_status(product.quantity_in_stock, notice.quantity_fulfilled, notice.quantity_requested),
        )
    return notice
