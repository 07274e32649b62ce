from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


def money_out(value) -> float | None:
    """Serialize a Numeric amount for JSON payloads."""
    if value is None:
        return None
    return float(Decimal(value).quantize(Decimal("0.001")))


class Product(db.Model):
    """
    Product master data and the authoritative stock counter.

    STOCK LEDGER:
    quantity_in_stock is the single source of truth for on-hand quantity.
    It is only changed through services.stock_ledger, which appends a
    StockMovement row in the same transaction. The CHECK constraint is the
    last line of defence for non-negativity.

    PLACEHOLDERS:
    is_demand_notice_product marks products created by a demand notice for an
    item that is not cataloged yet (stock 0, price = agreed price).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity_in_stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Globally unique
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    price = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)

    # Alternate price once stock <= threshold
    low_stock_threshold = db.Column(db.Integer, nullable=True)
    low_stock_price = db.Column(db.Numeric(12, 3), nullable=True)

    is_demand_notice_product = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.quantity_in_stock}>"

    def is_low_stock(self) -> bool:
        return self.low_stock_threshold is not None and self.quantity_in_stock <= self.low_stock_threshold

    def effective_price(self) -> Decimal:
        if self.is_low_stock() and self.low_stock_price is not None:
            return Decimal(self.low_stock_price)
        return Decimal(self.price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price": money_out(self.price),
            "effective_price": money_out(self.effective_price()),
            "quantity_in_stock": self.quantity_in_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "low_stock_price": money_out(self.low_stock_price),
            "is_demand_notice_product": self.is_demand_notice_product,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of every stock change.

    quantity_delta is signed; quantity_after is the counter value right after
    the change, so the journal can be replayed or audited without joins.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_time", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Kept after product deletion; sku is the snapshot
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sku = db.Column(db.String(64), nullable=False)

    # SALE, SALE_REVERSAL, RETURN, PO_RECEIPT, ADJUSTMENT, RESERVATION_RELEASE
    movement_type = db.Column(db.String(32), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("stock_movements", lazy=True),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_id": self.actor_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
