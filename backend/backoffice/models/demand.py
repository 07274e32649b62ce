from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .catalog import money_out
from .statuses import DemandNoticeStatus


class DemandNotice(db.Model):
    """
    Customer request for a product that is out of stock or not cataloged yet.

    LIFECYCLE:
    Stock-derived statuses (awaiting_stock / partial / full) are assigned by
    demand_notice_service.reconcile_product(); conversion links exactly one
    live order through linked_order_id.

    SET-ASIDE UNITS:
    quantity_fulfilled counts units already taken out of stock for this
    notice. Conversion deducts only quantity_requested - quantity_fulfilled,
    so units kept after an unlinked order are never deducted twice.

    linked_order_id is a soft reference (no FK) because orders point back at
    notices and an order row may be deleted while the notice lives on.
    """
    __tablename__ = "demand_notices"
    __table_args__ = (
        db.CheckConstraint("quantity_requested > 0", name="ck_demand_notices_quantity_positive"),
        db.CheckConstraint(
            "quantity_fulfilled >= 0 AND quantity_fulfilled <= quantity_requested",
            name="ck_demand_notices_fulfilled_range",
        ),
        db.Index("ix_demand_notices_product_status", "product_id", "status"),
    )

    id = db.Column(db.String(32), primary_key=True)

    salesperson_id = db.Column(db.String(64), nullable=True, index=True)
    customer_contact_number = db.Column(db.String(64), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    is_new_product = db.Column(db.Boolean, nullable=False, default=False)

    quantity_requested = db.Column(db.Integer, nullable=False)
    quantity_fulfilled = db.Column(db.Integer, nullable=False, default=0)
    agreed_price = db.Column(db.Numeric(12, 3), nullable=False)

    expected_availability_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default=DemandNoticeStatus.PENDING_REVIEW.value)

    linked_order_id = db.Column(db.String(32), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("demand_notices", lazy=True))
    payments = db.relationship(
        "DemandNoticePayment",
        backref="demand_notice",
        cascade="all, delete-orphan",
        order_by="DemandNoticePayment.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status_enum(self) -> DemandNoticeStatus:
        return DemandNoticeStatus(self.status)

    @property
    def advance_paid(self) -> Decimal:
        return sum((Decimal(p.amount) for p in self.payments), Decimal("0"))

    def __repr__(self) -> str:
        return f"<DemandNotice id={self.id} status={self.status} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "salesperson_id": self.salesperson_id,
            "customer_contact_number": self.customer_contact_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "is_new_product": self.is_new_product,
            "quantity_requested": self.quantity_requested,
            "quantity_fulfilled": self.quantity_fulfilled,
            "agreed_price": money_out(self.agreed_price),
            "expected_availability_date": to_iso_date(self.expected_availability_date),
            "notes": self.notes,
            "status": self.status,
            "linked_order_id": self.linked_order_id,
            "payments": [p.to_dict() for p in self.payments],
            "advance_paid": money_out(self.advance_paid),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DemandNoticePayment(db.Model):
    """Advance payment taken on a notice; copied into the order on conversion."""
    __tablename__ = "demand_notice_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_demand_notice_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    demand_notice_id = db.Column(
        db.String(32), db.ForeignKey("demand_notices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    method = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 3), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    recorded_by = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount": money_out(self.amount),
            "reference": self.reference,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "paid_at": to_utc_z(self.paid_at),
        }
