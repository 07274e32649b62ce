# Overview: Closed status enums and transition tables for every workflow entity.

"""
Workflow state machines.

Each entity status is a closed str Enum persisted as its value in a String
column. Legal moves are listed once, in a transition table keyed by the
current state. Services call `require_transition()` before assigning a new
status, so an unlisted move can never be written.

ORDER:
    pending_payment -> partial_payment -> paid -> preparing -> ready_for_pickup -> completed
    cancelled / returned reachable from every non-terminal state

DEMAND NOTICE:
    pending_review -> awaiting_stock <-> partial_stock_available <-> full_stock_available
    -> customer_notified_stock -> awaiting_customer_action -> order_processing
    -> preparing_stock -> ready_for_collection -> fulfilled
    cancelled reachable from every non-terminal state

PURCHASE ORDER:
    Draft -> Pending -> Confirmed -> Shipped -> Received
    Cancelled reachable until Received
"""

from __future__ import annotations

import enum

from ..errors import ConflictError, ValidationError


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    PARTIAL_PAYMENT = "partial_payment"
    PAID = "paid"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class DemandNoticeStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    AWAITING_STOCK = "awaiting_stock"
    PARTIAL_STOCK_AVAILABLE = "partial_stock_available"
    FULL_STOCK_AVAILABLE = "full_stock_available"
    CUSTOMER_NOTIFIED_STOCK = "customer_notified_stock"
    AWAITING_CUSTOMER_ACTION = "awaiting_customer_action"
    ORDER_PROCESSING = "order_processing"
    PREPARING_STOCK = "preparing_stock"
    READY_FOR_COLLECTION = "ready_for_collection"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    RECEIVED = "Received"
    CANCELLED = "Cancelled"


# =============================================================================
# ORDER
# =============================================================================

_O = OrderStatus

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    _O.PENDING_PAYMENT: frozenset({_O.PARTIAL_PAYMENT, _O.PAID, _O.PREPARING, _O.CANCELLED, _O.RETURNED}),
    _O.PARTIAL_PAYMENT: frozenset({_O.PAID, _O.PREPARING, _O.CANCELLED, _O.RETURNED}),
    _O.PAID: frozenset({_O.PREPARING, _O.CANCELLED, _O.RETURNED}),
    _O.PREPARING: frozenset({_O.READY_FOR_PICKUP, _O.CANCELLED, _O.RETURNED}),
    _O.READY_FOR_PICKUP: frozenset({_O.COMPLETED, _O.CANCELLED, _O.RETURNED}),
    _O.COMPLETED: frozenset({_O.RETURNED}),
    _O.CANCELLED: frozenset(),
    _O.RETURNED: frozenset(),
}

ORDER_TERMINAL = frozenset({_O.CANCELLED, _O.RETURNED})

# Fulfillment statuses that payment recording must not regress
ORDER_ADVANCED = frozenset({_O.PREPARING, _O.READY_FOR_PICKUP, _O.COMPLETED})

ORDER_MANUAL_TARGETS = frozenset({_O.PREPARING, _O.READY_FOR_PICKUP, _O.COMPLETED, _O.CANCELLED})

ORDER_ACCEPTS_PAYMENT = frozenset({
    _O.PENDING_PAYMENT, _O.PARTIAL_PAYMENT, _O.PAID, _O.PREPARING, _O.READY_FOR_PICKUP,
})

# Anything short of completion or a terminal status
ORDER_DELETABLE = frozenset({
    _O.PENDING_PAYMENT, _O.PARTIAL_PAYMENT, _O.PAID, _O.PREPARING, _O.READY_FOR_PICKUP,
})

ORDER_RETURNABLE = frozenset({_O.PARTIAL_PAYMENT, _O.PAID, _O.COMPLETED})


# =============================================================================
# DEMAND NOTICE
# =============================================================================

_D = DemandNoticeStatus

# Stock-derived statuses, i.e. what Reconcile may assign
DN_AVAILABILITY = frozenset({
    _D.AWAITING_STOCK, _D.PARTIAL_STOCK_AVAILABLE, _D.FULL_STOCK_AVAILABLE,
})

DEMAND_NOTICE_TRANSITIONS: dict[DemandNoticeStatus, frozenset[DemandNoticeStatus]] = {
    _D.PENDING_REVIEW: DN_AVAILABILITY | {_D.CANCELLED},
    _D.AWAITING_STOCK: DN_AVAILABILITY - {_D.AWAITING_STOCK} | {_D.CANCELLED},
    _D.PARTIAL_STOCK_AVAILABLE: DN_AVAILABILITY - {_D.PARTIAL_STOCK_AVAILABLE} | {_D.CANCELLED},
    _D.FULL_STOCK_AVAILABLE: frozenset({
        _D.AWAITING_STOCK, _D.PARTIAL_STOCK_AVAILABLE,
        _D.CUSTOMER_NOTIFIED_STOCK, _D.ORDER_PROCESSING, _D.CANCELLED,
    }),
    _D.CUSTOMER_NOTIFIED_STOCK: frozenset({
        _D.AWAITING_STOCK, _D.PARTIAL_STOCK_AVAILABLE, _D.FULL_STOCK_AVAILABLE,
        _D.AWAITING_CUSTOMER_ACTION, _D.ORDER_PROCESSING, _D.CANCELLED,
    }),
    _D.AWAITING_CUSTOMER_ACTION: DN_AVAILABILITY | {_D.CUSTOMER_NOTIFIED_STOCK, _D.CANCELLED},
    _D.ORDER_PROCESSING: frozenset({
        _D.PREPARING_STOCK, _D.AWAITING_CUSTOMER_ACTION, _D.CANCELLED,
    }) | DN_AVAILABILITY,
    _D.PREPARING_STOCK: frozenset({
        _D.READY_FOR_COLLECTION, _D.AWAITING_CUSTOMER_ACTION, _D.CANCELLED,
    }) | DN_AVAILABILITY,
    _D.READY_FOR_COLLECTION: frozenset({
        _D.FULFILLED, _D.AWAITING_CUSTOMER_ACTION, _D.CANCELLED,
    }) | DN_AVAILABILITY,
    _D.FULFILLED: frozenset(),
    _D.CANCELLED: frozenset(),
}

DN_TERMINAL = frozenset({_D.FULFILLED, _D.CANCELLED})

# Statuses Reconcile is allowed to move
DN_RECONCILABLE = DN_AVAILABILITY | {_D.PENDING_REVIEW, _D.CUSTOMER_NOTIFIED_STOCK}

DN_CONVERTIBLE = frozenset({_D.FULL_STOCK_AVAILABLE, _D.CUSTOMER_NOTIFIED_STOCK})

DN_MANUAL_TARGETS = frozenset({
    _D.CUSTOMER_NOTIFIED_STOCK, _D.AWAITING_CUSTOMER_ACTION, _D.CANCELLED,
})

# Order status -> notice status the linked notice follows to
DN_FOLLOWS_ORDER = {
    _O.PREPARING: _D.PREPARING_STOCK,
    _O.READY_FOR_PICKUP: _D.READY_FOR_COLLECTION,
    _O.COMPLETED: _D.FULFILLED,
}


# =============================================================================
# PURCHASE ORDER
# =============================================================================

_P = PurchaseOrderStatus

PURCHASE_ORDER_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    _P.DRAFT: frozenset({_P.PENDING, _P.CONFIRMED, _P.CANCELLED}),
    _P.PENDING: frozenset({_P.CONFIRMED, _P.CANCELLED}),
    _P.CONFIRMED: frozenset({_P.SHIPPED, _P.RECEIVED, _P.CANCELLED}),
    _P.SHIPPED: frozenset({_P.RECEIVED, _P.CANCELLED}),
    _P.RECEIVED: frozenset(),
    _P.CANCELLED: frozenset(),
}

PO_RECEIVABLE = frozenset({_P.CONFIRMED, _P.SHIPPED})

PO_CLOSED = frozenset({_P.RECEIVED, _P.CANCELLED})


# =============================================================================
# HELPERS
# =============================================================================

def parse_status(enum_cls: type[enum.Enum], value) -> enum.Enum:
    """Coerce a raw value into `enum_cls`, raising ValidationError for unknown values."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid status '{value}'. Must be one of: {allowed}",
            {"status": value, "allowed": [m.value for m in enum_cls]},
        ) from None


def can_transition(table: dict, current, target) -> bool:
    return target in table.get(current, frozenset())


def require_transition(table: dict, current, target, *, entity: str, entity_id) -> None:
    """Raise ConflictError unless `current -> target` is listed in `table`."""
    if not can_transition(table, current, target):
        raise ConflictError(
            f"{entity} {entity_id} cannot move from {current.value} to {target.value}",
            {"id": entity_id, "current_status": current.value, "requested_status": target.value},
        )
