from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .catalog import money_out
from .statuses import PurchaseOrderStatus


class PurchaseOrder(db.Model):
    """
    Supplier purchase order.

    RECEIVING:
    Goods arrive in one or more receiving events. Each event raises
    PurchaseOrderItem.quantity_received and the product stock by the same
    amount. The PO becomes Received only when every line is fully received.

    Transport details are plain columns so logistics staff can update them
    without touching commercial fields.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status", "status"),
    )

    id = db.Column(db.String(32), primary_key=True)
    supplier_id = db.Column(db.String(64), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=PurchaseOrderStatus.DRAFT.value)

    total_amount = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    advance_paid = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    deadline = db.Column(db.Date, nullable=True)
    expected_delivery = db.Column(db.Date, nullable=True)

    transport_vehicle_number = db.Column(db.String(64), nullable=True)
    transport_driver_contact = db.Column(db.String(64), nullable=True)
    transport_notes = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status_enum(self) -> PurchaseOrderStatus:
        return PurchaseOrderStatus(self.status)

    def is_fully_received(self) -> bool:
        return bool(self.items) and all(i.quantity_received == i.quantity_ordered for i in self.items)

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "items": [i.to_dict() for i in self.items],
            "total_amount": money_out(self.total_amount),
            "advance_paid": money_out(self.advance_paid),
            "deadline": to_iso_date(self.deadline),
            "expected_delivery": to_iso_date(self.expected_delivery),
            "transport_details": {
                "vehicle_number": self.transport_vehicle_number,
                "driver_contact": self.transport_driver_contact,
                "notes": self.transport_notes,
            },
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity_ordered > 0", name="ck_po_items_ordered_positive"),
        db.CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_po_items_received_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.String(32), db.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    sku = db.Column(db.String(64), nullable=False)

    quantity_ordered = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(12, 3), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product", backref=db.backref("purchase_order_items", lazy=True))

    @property
    def quantity_remaining(self) -> int:
        return self.quantity_ordered - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "quantity_ordered": self.quantity_ordered,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "unit_cost": money_out(self.unit_cost),
            "notes": self.notes,
        }
