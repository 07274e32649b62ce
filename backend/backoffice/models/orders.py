from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from .catalog import money_out
from .statuses import OrderStatus


class Order(db.Model):
    """
    Sales order (invoice series id).

    AMOUNTS:
    total_amount == subtotal - discount_amount + sum(taxes.amount), fixed at
    creation. Items are price snapshots and never follow later product price
    changes.

    STATUS:
    Stored as OrderStatus.value. Payment-derived statuses are recomputed from
    the payments sum; fulfillment statuses only move through
    order_service.advance_order().

    CHILD RECORDS:
    items, taxes, payments and return_transactions are owned rows. Payments
    and return transactions are append-only.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_primary_salesperson", "primary_salesperson_id"),
    )

    id = db.Column(db.String(32), primary_key=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    delivery_address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    primary_salesperson_id = db.Column(db.String(64), nullable=True)
    secondary_salesperson_id = db.Column(db.String(64), nullable=True)
    primary_commission_share = db.Column(db.Numeric(5, 4), nullable=True)
    secondary_commission_share = db.Column(db.Numeric(5, 4), nullable=True)

    subtotal = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    discount_amount = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    total_amount = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.PENDING_PAYMENT.value)

    linked_demand_notice_id = db.Column(
        db.String(32), db.ForeignKey("demand_notices.id"), nullable=True, index=True
    )

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
        "OrderItem", backref="order", cascade="all, delete-orphan", order_by="OrderItem.position"
    )
    taxes = db.relationship("OrderTax", backref="order", cascade="all, delete-orphan", order_by="OrderTax.id")
    payments = db.relationship(
        "OrderPayment", backref="order", cascade="all, delete-orphan", order_by="OrderPayment.id"
    )
    return_transactions = db.relationship(
        "ReturnTransaction", backref="order", cascade="all, delete-orphan", order_by="ReturnTransaction.returned_at"
    )
    linked_demand_notice = db.relationship("DemandNotice", foreign_keys=[linked_demand_notice_id])

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def amount_paid(self) -> Decimal:
        return sum((Decimal(p.amount) for p in self.payments), Decimal("0"))

    @property
    def tax_total(self) -> Decimal:
        return sum((Decimal(t.amount) for t in self.taxes), Decimal("0"))

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total_amount) - self.amount_paid

    def returned_quantity_for(self, order_item_id: int) -> int:
        """Cumulative quantity returned for one line across all return transactions."""
        return sum(
            ri.quantity
            for rt in self.return_transactions
            for ri in rt.items
            if ri.order_item_id == order_item_id
        )

    def is_fully_returned(self) -> bool:
        return bool(self.items) and all(
            self.returned_quantity_for(item.id) >= item.quantity for item in self.items
        )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} total={self.total_amount}>"

    def to_dict(self, include_returns: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "delivery_address": self.delivery_address,
            "notes": self.notes,
            "primary_salesperson_id": self.primary_salesperson_id,
            "secondary_salesperson_id": self.secondary_salesperson_id,
            "primary_commission_share": (
                float(self.primary_commission_share) if self.primary_commission_share is not None else None
            ),
            "secondary_commission_share": (
                float(self.secondary_commission_share) if self.secondary_commission_share is not None else None
            ),
            "items": [i.to_dict() for i in self.items],
            "subtotal": money_out(self.subtotal),
            "discount_amount": money_out(self.discount_amount),
            "taxes": [t.to_dict() for t in self.taxes],
            "total_amount": money_out(self.total_amount),
            "amount_paid": money_out(self.amount_paid),
            "balance_due": money_out(self.balance_due),
            "status": self.status,
            "payments": [p.to_dict() for p in self.payments],
            "linked_demand_notice_id": self.linked_demand_notice_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_returns:
            data["return_transactions"] = [rt.to_dict() for rt in self.return_transactions]
        return data


class OrderItem(db.Model):
    """Immutable price snapshot of one ordered product."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 3), nullable=False)
    total_price = db.Column(db.Numeric(12, 3), nullable=False)

    product = db.relationship("Product", backref=db.backref("order_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "price_per_unit": money_out(self.price_per_unit),
            "total_price": money_out(self.total_price),
        }


class OrderTax(db.Model):
    __tablename__ = "order_taxes"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    rate = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0"))
    amount = db.Column(db.Numeric(12, 3), nullable=False)

    def to_dict(self) -> dict:
        return {"name": self.name, "rate": float(self.rate), "amount": money_out(self.amount)}


class OrderPayment(db.Model):
    """Append-only payment entry. Status thresholds come from the sum of these."""
    __tablename__ = "order_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_order_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # cash, card, bank_transfer, advance_on_dn
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


class ReturnTransaction(db.Model):
    """
    Immutable record of one return/exchange event against an order.

    refund payments always sum to total_value_of_returned_items (within the
    money tolerance); the processor verifies the caller's breakdown, it never
    infers one.
    """
    __tablename__ = "return_transactions"

    id = db.Column(db.String(40), primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    reason = db.Column(db.Text, nullable=True)
    exchange_notes = db.Column(db.Text, nullable=True)

    total_value_of_returned_items = db.Column(db.Numeric(12, 3), nullable=False)
    net_refund_amount = db.Column(db.Numeric(12, 3), nullable=False)

    processed_by = db.Column(db.String(64), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "ReturnedItem", backref="return_transaction", cascade="all, delete-orphan", order_by="ReturnedItem.id"
    )
    refund_payments = db.relationship(
        "RefundPayment", backref="return_transaction", cascade="all, delete-orphan", order_by="RefundPayment.id"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "reason": self.reason,
            "exchange_notes": self.exchange_notes,
            "items_returned": [i.to_dict() for i in self.items],
            "total_value_of_returned_items": money_out(self.total_value_of_returned_items),
            "net_refund_amount": money_out(self.net_refund_amount),
            "refund_payment_details": [r.to_dict() for r in self.refund_payments],
            "processed_by": self.processed_by,
            "returned_at": to_utc_z(self.returned_at),
        }


class ReturnedItem(db.Model):
    __tablename__ = "returned_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_returned_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_transaction_id = db.Column(
        db.String(40), db.ForeignKey("return_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=True)
    sku = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 3), nullable=False)
    line_value = db.Column(db.Numeric(12, 3), nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "quantity": self.quantity,
            "price_per_unit": money_out(self.price_per_unit),
            "line_value": money_out(self.line_value),
            "reason": self.reason,
        }


class RefundPayment(db.Model):
    __tablename__ = "refund_payments"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_refund_payments_amount_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_transaction_id = db.Column(
        db.String(40), db.ForeignKey("return_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    method = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 3), nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {"method": self.method, "amount": money_out(self.amount), "reference": self.reference}
