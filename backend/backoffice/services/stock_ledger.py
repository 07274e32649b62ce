# Overview: Stock ledger; the only code path that changes Product.quantity_in_stock.

"""
Stock Ledger

WHY THIS EXISTS:
Four workflows (sales orders, demand-notice conversion, returns, PO receiving)
move the same counter. Routing every change through add_stock/remove_stock
gives one place that enforces non-negativity and writes the movement journal.

RULES:
1. Callers hold the transaction (atomic()) and pass a product row loaded with
   lock_for_update(), so the check-then-write below sees committed values.
2. remove_stock() fails with InsufficientStockError before touching anything.
3. Every change appends a StockMovement in the same transaction.
4. The ledger has no workflow knowledge; demand-notice reconciliation is the
   caller's job.
"""

from __future__ import annotations

import logging

from ..errors import InsufficientStockError, ProductNotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_REVERSAL = "SALE_REVERSAL"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_PO_RECEIPT = "PO_RECEIPT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RESERVATION_RELEASE = "RESERVATION_RELEASE"

VALID_MOVEMENT_TYPES = {
    MOVEMENT_SALE,
    MOVEMENT_SALE_REVERSAL,
    MOVEMENT_RETURN,
    MOVEMENT_PO_RECEIPT,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_RESERVATION_RELEASE,
}


def lock_product(product_id: int) -> Product:
    """Load a product row for update or raise ProductNotFoundError."""
    product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return product


def get_quantity(product_id: int) -> int:
    qty = db.session.query(Product.quantity_in_stock).filter(Product.id == product_id).scalar()
    if qty is None:
        raise ProductNotFoundError(f"Product {product_id} not found", {"product_id": product_id})
    return qty


def sku_exists(sku: str, exclude_product_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_product_id is not None:
        query = query.filter(Product.id != exclude_product_id)
    return query.first() is not None


def _record(product: Product, delta: int, movement_type: str, *, reference_type, reference_id, actor_id, note):
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type '{movement_type}'", {"movement_type": movement_type})
    movement = StockMovement(
        product_id=product.id,
        sku=product.sku,
        movement_type=movement_type,
        quantity_delta=delta,
        quantity_after=product.quantity_in_stock,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
        note=note,
    )
    db.session.add(movement)
    logger.info(
        "Stock %s %+d for product %s (%s) -> %s [%s %s]",
        movement_type, delta, product.id, product.sku, product.quantity_in_stock,
        reference_type, reference_id,
    )
    return movement


def add_stock(
    product: Product,
    quantity: int,
    movement_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    actor_id: str | None = None,
    note: str | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise ValidationError("quantity must be positive", {"product_id": product.id, "quantity": quantity})
    product.quantity_in_stock = product.quantity_in_stock + quantity
    return _record(
        product, quantity, movement_type,
        reference_type=reference_type, reference_id=reference_id, actor_id=actor_id, note=note,
    )


def remove_stock(
    product: Product,
    quantity: int,
    movement_type: str,
    *,
    reference_type: str | None = None,
    reference_id: str | None = None,
    actor_id: str | None = None,
    note: str | None = None,
) -> StockMovement:
    if quantity <= 0:
        raise ValidationError("quantity must be positive", {"product_id": product.id, "quantity": quantity})
    if product.quantity_in_stock < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for {product.sku}: requested {quantity}, available {product.quantity_in_stock}",
            {
                "product_id": product.id,
                "sku": product.sku,
                "requested": quantity,
                "available": product.quantity_in_stock,
            },
        )
    product.quantity_in_stock = product.quantity_in_stock - quantity
    return _record(
        product, -quantity, movement_type,
        reference_type=reference_type, reference_id=reference_id, actor_id=actor_id, note=note,
    )


def set_quantity(product: Product, quantity: int, *, actor_id: str | None = None, note: str | None = None):
    """Manual count correction, journaled as an ADJUSTMENT."""
    if quantity < 0:
        raise ValidationError("quantity_in_stock cannot be negative", {"product_id": product.id, "quantity": quantity})
    delta = quantity - product.quantity_in_stock
    if delta == 0:
        return None
    product.quantity_in_stock = quantity
    return _record(
        product, delta, MOVEMENT_ADJUSTMENT,
        reference_type="product", reference_id=str(product.id), actor_id=actor_id, note=note,
    )


def recent_movements(product_id: int, limit: int = 20) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )
