from decimal import Decimal

import pytest

from backoffice.errors import (
    ConflictError,
    InsufficientStockError,
    PaymentPreconditionError,
    ProductNotFoundError,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import Order, StockMovement
from backoffice.services import order_service, stock_ledger

from conftest import make_product


def cash(amount):
    return {"method": "cash", "amount": Decimal(amount)}


def _stock(product_id):
    db.session.expire_all()
    return stock_ledger.get_quantity(product_id)


# =============================================================================
# CREATE
# =============================================================================

def test_create_deducts_stock_and_prices_lines(db_session):
    a = make_product("SKU-A", stock=5, price="30.000")
    b = make_product("SKU-B", stock=2, price="40.000")

    order = order_service.create_order(
        [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 1}],
        customer={"customer_name": "Salim"},
        actor_id="sp-1",
    )

    assert order.id == "INV-000001"
    assert order.status == "pending_payment"
    assert order.subtotal == Decimal("100.000")
    assert order.total_amount == Decimal("100.000")
    assert [(i.sku, i.quantity, i.total_price) for i in order.items] == [
        ("SKU-A", 2, Decimal("60.000")),
        ("SKU-B", 1, Decimal("40.000")),
    ]
    assert _stock(a.id) == 3
    assert _stock(b.id) == 1


def test_totals_include_discount_and_taxes(db_session):
    p = make_product("SKU-T", stock=10, price="50.000")

    order = order_service.create_order(
        [{"product_id": p.id, "quantity": 2}],
        discount_amount=Decimal("10"),
        taxes=[{"name": "VAT", "rate": Decimal("5"), "amount": None}],
        expected_total=Decimal("94.5"),
    )

    assert order.subtotal == Decimal("100.000")
    assert order.taxes[0].amount == Decimal("4.500")
    assert order.total_amount == Decimal("94.500")


def test_expected_total_mismatch_rejected(db_session):
    p = make_product("SKU-T2", stock=10, price="50.000")
    with pytest.raises(ValidationError):
        order_service.create_order([{"product_id": p.id, "quantity": 1}], expected_total=Decimal("49"))
    assert _stock(p.id) == 10


def test_low_stock_price_applies(db_session):
    p = make_product("SKU-LOW", stock=3, price="20.000", low_stock_threshold=3, low_stock_price=Decimal("25"))
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}])
    assert order.items[0].price_per_unit == Decimal("25.000")


def test_insufficient_stock_aborts_whole_order(db_session):
    a = make_product("SKU-A", stock=5)
    b = make_product("SKU-B", stock=1)

    with pytest.raises(InsufficientStockError) as exc:
        order_service.create_order(
            [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 3}]
        )

    assert exc.value.details["items"] == [
        {"product_id": b.id, "sku": "SKU-B", "requested": 3, "available": 1}
    ]
    assert _stock(a.id) == 5
    assert _stock(b.id) == 1
    assert db.session.query(Order).count() == 0
    assert db.session.query(StockMovement).count() == 0


def test_unknown_product_aborts_whole_order(db_session):
    a = make_product("SKU-A", stock=5)
    with pytest.raises(ProductNotFoundError):
        order_service.create_order(
            [{"product_id": a.id, "quantity": 1}, {"product_id": 4242, "quantity": 1}]
        )
    assert _stock(a.id) == 5


def test_duplicate_product_lines_rejected(db_session):
    a = make_product("SKU-A", stock=5)
    with pytest.raises(ValidationError):
        order_service.create_order(
            [{"product_id": a.id, "quantity": 1}, {"product_id": a.id, "quantity": 1}]
        )


def test_discount_cannot_exceed_subtotal(db_session):
    a = make_product("SKU-A", stock=5, price="10.000")
    with pytest.raises(ValidationError):
        order_service.create_order([{"product_id": a.id, "quantity": 1}], discount_amount=Decimal("11"))


# =============================================================================
# PAYMENTS
# =============================================================================

def test_payment_status_is_derived_from_sum(db_session):
    p = make_product("SKU-P", stock=5, price="50.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}])

    order = order_service.record_payment(order.id, [cash("40")])
    assert order.status == "partial_payment"

    order = order_service.record_payment(order.id, [cash("59.995")])
    assert order.status == "paid"
    assert order.balance_due == Decimal("0.005")


def test_payment_never_regresses_fulfillment(db_session):
    p = make_product("SKU-P", stock=5, price="50.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}], payments=[cash("10")])
    order = order_service.advance_order(order.id, "preparing")

    order = order_service.record_payment(order.id, [cash("90")])
    assert order.status == "preparing"


def test_payments_rejected_on_completed_order(db_session):
    p = make_product("SKU-P", stock=5, price="50.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}], payments=[cash("50")])
    for target in ("preparing", "ready_for_pickup", "completed"):
        order = order_service.advance_order(order.id, target)

    with pytest.raises(ConflictError):
        order_service.record_payment(order.id, [cash("1")])


# =============================================================================
# ADVANCE
# =============================================================================

def test_preparing_requires_a_payment(db_session):
    p = make_product("SKU-P", stock=5)
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}])
    with pytest.raises(PaymentPreconditionError):
        order_service.advance_order(order.id, "preparing")


def test_ready_requires_full_payment(db_session):
    p = make_product("SKU-P", stock=5, price="50.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}], payments=[cash("50")])
    order = order_service.advance_order(order.id, "preparing")

    with pytest.raises(PaymentPreconditionError) as exc:
        order_service.advance_order(order.id, "ready_for_pickup")
    assert exc.value.details["amount_paid"] == "50.000"

    order = order_service.update_order(order.id, payments=[cash("49.99")], status="ready_for_pickup")
    assert order.status == "ready_for_pickup"


def test_illegal_transition_is_a_conflict(db_session):
    p = make_product("SKU-P", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}], payments=[cash("10")])
    with pytest.raises(ConflictError):
        order_service.advance_order(order.id, "completed")


@pytest.mark.parametrize("target", ["paid", "returned", "partial_payment", "shipped"])
def test_status_that_cannot_be_set_by_hand(db_session, target):
    p = make_product("SKU-P", stock=5)
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}])
    with pytest.raises(ValidationError):
        order_service.advance_order(order.id, target)


def test_cancel_restores_stock(db_session):
    p = make_product("SKU-P", stock=5)
    order = order_service.create_order([{"product_id": p.id, "quantity": 3}])
    assert _stock(p.id) == 2

    order = order_service.cancel_order(order.id, actor_id="mgr")
    assert order.status == "cancelled"
    assert _stock(p.id) == 5
    assert stock_ledger.recent_movements(p.id)[0].movement_type == stock_ledger.MOVEMENT_SALE_REVERSAL

    # Cancelling again changes nothing
    order_service.cancel_order(order.id)
    assert _stock(p.id) == 5

    with pytest.raises(ConflictError):
        order_service.advance_order(order.id, "preparing")


# =============================================================================
# DELETE
# =============================================================================

def test_delete_restores_stock_and_removes_order(db_session):
    p = make_product("SKU-P", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 4}], payments=[cash("5")])
    order_id = order.id

    order_service.delete_order(order_id)

    assert db.session.get(Order, order_id) is None
    assert _stock(p.id) == 5


@pytest.mark.parametrize("fulfillment", [[], ["preparing"], ["preparing", "ready_for_pickup"]])
def test_delete_paid_order_restores_stock(db_session, fulfillment):
    p = make_product("SKU-P", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}], payments=[cash("20")])
    assert order.status == "paid"
    for status in fulfillment:
        order_service.advance_order(order.id, status)
    order_id = order.id

    order_service.delete_order(order_id)

    assert db.session.get(Order, order_id) is None
    assert _stock(p.id) == 5
    assert stock_ledger.recent_movements(p.id)[0].movement_type == stock_ledger.MOVEMENT_SALE_REVERSAL


def test_delete_refused_once_completed(db_session):
    p = make_product("SKU-P", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}], payments=[cash("10")])
    for status in ("preparing", "ready_for_pickup", "completed"):
        order_service.advance_order(order.id, status)

    with pytest.raises(ConflictError):
        order_service.delete_order(order.id)
    assert _stock(p.id) == 4


def test_zero_total_order_is_paid_and_can_be_fulfilled(db_session):
    p = make_product("SKU-P", stock=5, price="10.000")
    order = order_service.create_order(
        [{"product_id": p.id, "quantity": 1}], discount_amount=Decimal("10"),
    )
    assert order.total_amount == Decimal("0.000")
    assert order.status == "paid"

    order = order_service.advance_order(order.id, "preparing")
    assert order.status == "preparing"


def test_list_orders_filters_by_salesperson(db_session):
    p = make_product("SKU-P", stock=5)
    order_service.create_order([{"product_id": p.id, "quantity": 1}], customer={"primary_salesperson_id": "sp-1"})
    order_service.create_order([{"product_id": p.id, "quantity": 1}], customer={"secondary_salesperson_id": "sp-1"})
    order_service.create_order([{"product_id": p.id, "quantity": 1}], customer={"primary_salesperson_id": "sp-2"})

    assert len(order_service.list_orders(salesperson_id="sp-1")) == 2
    assert len(order_service.list_orders(status="pending_payment")) == 3
