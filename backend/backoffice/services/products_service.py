# Overview: Service-layer operations for products; catalog edits routed through the stock ledger.

from __future__ import annotations

import logging

from ..errors import ConflictError, ProductNotFoundError
from ..extensions import db
from ..models import (
    DemandNotice,
    Order,
    OrderItem,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
)
from ..models.statuses import DN_TERMINAL, ORDER_TERMINAL, PO_CLOSED
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import stock_ledger
from .concurrency import atomic

logger = logging.getLogger(__name__)


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category",
        "price",
        "quantity_in_stock",
        "low_stock_threshold",
        "low_stock_price",
        "is_demand_notice_product",
    },
    required_on_create={"sku", "name", "price"},
)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def list_products(*, search: str | None = None, category: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if search:
        like = f"%{search}%"
        query = query.filter((Product.name.ilike(like)) | (Product.sku.ilike(like)))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(payload: dict, *, actor_id: str | None = None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    opening_stock = patch.pop("quantity_in_stock", None) or 0

    with atomic():
        if stock_ledger.sku_exists(patch["sku"]):
            raise ConflictError(f"SKU {patch['sku']} already exists", {"sku": patch["sku"]})

        product = Product(quantity_in_stock=0, **patch)
        db.session.add(product)
        db.session.flush()

        if opening_stock:
            stock_ledger.set_quantity(product, opening_stock, actor_id=actor_id, note="Opening stock")
    return product


def update_product(product_id: int, payload: dict, *, actor_id: str | None = None) -> Product:
    """
    Apply a catalog patch.

    A stock change is journaled as an ADJUSTMENT and re-evaluates every live
    demand notice for the product.
    """
    from .demand_notice_service import reconcile_product

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    with atomic():
        product = stock_ledger.lock_product(product_id)

        # SKU uniqueness enforcement if changing SKU
        if "sku" in patch and patch["sku"] != product.sku:
            if stock_ledger.sku_exists(patch["sku"], exclude_product_id=product.id):
                raise ConflictError(
                    f"SKU {patch['sku']} already exists",
                    {"sku": patch["sku"], "product_id": product.id},
                )

        new_quantity = patch.pop("quantity_in_stock", None)
        for key, value in patch.items():
            setattr(product, key, value)

        if new_quantity is not None and new_quantity != product.quantity_in_stock:
            stock_ledger.set_quantity(product, new_quantity, actor_id=actor_id, note="Product update")
            reconcile_product(product.id)
    return product


def live_references(product_id: int) -> dict:
    """Count non-terminal orders, notices and purchase orders that still use the product."""
    orders = (
        db.session.query(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            OrderItem.product_id == product_id,
            Order.status.notin_([s.value for s in ORDER_TERMINAL]),
        )
        .distinct()
        .all()
    )
    notices = (
        db.session.query(DemandNotice.id)
        .filter(
            DemandNotice.product_id == product_id,
            DemandNotice.status.notin_([s.value for s in DN_TERMINAL]),
        )
        .all()
    )
    purchase_orders = (
        db.session.query(PurchaseOrder.id)
        .join(PurchaseOrderItem, PurchaseOrderItem.purchase_order_id == PurchaseOrder.id)
        .filter(
            PurchaseOrderItem.product_id == product_id,
            PurchaseOrder.status.notin_([s.value for s in PO_CLOSED]),
        )
        .distinct()
        .all()
    )
    return {
        "orders": [r[0] for r in orders],
        "demand_notices": [r[0] for r in notices],
        "purchase_orders": [r[0] for r in purchase_orders],
    }


def delete_product(product_id: int) -> None:
    with atomic():
        product = stock_ledger.lock_product(product_id)
        refs = live_references(product.id)
        if any(refs.values()):
            raise ConflictError(
                f"Product {product.sku} is still referenced by open documents",
                {"product_id": product.id, "sku": product.sku, **refs},
            )
        logger.info("Deleting product %s (%s)", product.id, product.sku)
        db.session.delete(product)
