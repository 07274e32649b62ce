from decimal import Decimal

import pytest

from backoffice.errors import (
    ConflictError,
    ItemNotInOrderError,
    OverReturnError,
    RefundMismatchError,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import DemandNotice, Order, Product, ReturnTransaction
from backoffice.services import demand_notice_service, order_service, return_service, stock_ledger
from backoffice.services.concurrency import atomic

from conftest import make_product


def refund(amount, method="cash"):
    return [{"method": method, "amount": Decimal(amount)}]


def _stock(product_id):
    db.session.expire_all()
    return stock_ledger.get_quantity(product_id)


@pytest.fixture
def paid_order(db_session):
    a = make_product("SKU-A", stock=5, price="30.000")
    b = make_product("SKU-B", stock=5, price="40.000")
    order = order_service.create_order(
        [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 1}],
        payments=[{"method": "card", "amount": Decimal("100")}],
    )
    assert order.status == "paid"
    return order, a, b


def test_partial_return_restores_stock_and_keeps_status(paid_order):
    order, a, _b = paid_order

    rt = return_service.submit_return(
        order.id, [{"product_id": a.id, "quantity": 1, "reason": "Damaged"}], refund("30"), reason="Damaged",
    )

    assert rt.id.startswith("RET-")
    assert rt.total_value_of_returned_items == Decimal("30.000")
    assert _stock(a.id) == 4
    assert db.session.get(Order, order.id).status == "paid"
    assert stock_ledger.recent_movements(a.id)[0].movement_type == stock_ledger.MOVEMENT_RETURN


def test_returns_accumulate_across_visits(paid_order):
    order, a, _b = paid_order
    return_service.submit_return(order.id, [{"product_id": a.id, "quantity": 1}], refund("30"))
    return_service.submit_return(order.id, [{"product_id": a.id, "sku": "SKU-A", "quantity": 1}], refund("30"))

    with pytest.raises(OverReturnError) as exc:
        return_service.submit_return(order.id, [{"product_id": a.id, "quantity": 1}], refund("30"))

    assert exc.value.details["previously_returned"] == 2
    assert exc.value.details["purchased"] == 2
    assert _stock(a.id) == 5


def test_over_return_within_one_request(paid_order):
    order, a, _b = paid_order
    with pytest.raises(OverReturnError):
        return_service.submit_return(
            order.id,
            [{"product_id": a.id, "quantity": 1}, {"product_id": a.id, "quantity": 2}],
            refund("90"),
        )
    assert _stock(a.id) == 3


def test_item_not_in_order(paid_order):
    order, _a, _b = paid_order
    other = make_product("SKU-OTHER", stock=1)
    with pytest.raises(ItemNotInOrderError):
        return_service.submit_return(order.id, [{"product_id": other.id, "quantity": 1}], refund("10"))


def test_sku_must_match_the_line(paid_order):
    order, a, _b = paid_order
    with pytest.raises(ItemNotInOrderError):
        return_service.submit_return(order.id, [{"product_id": a.id, "sku": "SKU-B", "quantity": 1}], refund("30"))


def test_refund_mismatch_rolls_everything_back(paid_order):
    order, a, b = paid_order

    with pytest.raises(RefundMismatchError) as exc:
        return_service.submit_return(
            order.id,
            [{"product_id": a.id, "quantity": 1}, {"product_id": b.id, "quantity": 1}],
            refund("60"),
        )

    assert exc.value.details["total_value_of_returned_items"] == "70.000"
    assert _stock(a.id) == 3
    assert _stock(b.id) == 4
    assert db.session.query(ReturnTransaction).count() == 0


def test_refund_within_tolerance_accepted(paid_order):
    order, a, _b = paid_order
    rt = return_service.submit_return(
        order.id, [{"product_id": a.id, "quantity": 1}],
        [{"method": "cash", "amount": Decimal("20")}, {"method": "card", "amount": Decimal("9.995")}],
    )
    assert rt.net_refund_amount == Decimal("29.995")
    assert len(rt.refund_payments) == 2


def test_full_return_marks_order_returned(paid_order):
    order, a, b = paid_order
    return_service.submit_return(order.id, [{"product_id": a.id, "quantity": 2}], refund("60"))
    return_service.submit_return(order.id, [{"product_id": b.id, "quantity": 1}], refund("40"))

    db.session.expire_all()
    assert db.session.get(Order, order.id).status == "returned"
    assert _stock(a.id) == 5
    assert _stock(b.id) == 5

    with pytest.raises(ConflictError):
        return_service.submit_return(order.id, [{"product_id": a.id, "quantity": 1}], refund("30"))


def test_unpaid_order_cannot_accept_returns(db_session):
    p = make_product("SKU-A", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 1}])
    with pytest.raises(ConflictError):
        return_service.submit_return(order.id, [{"product_id": p.id, "quantity": 1}], refund("10"))


def test_empty_return_rejected(paid_order):
    order, _a, _b = paid_order
    with pytest.raises(ValidationError):
        return_service.submit_return(order.id, [], refund("0"))


def test_full_return_of_linked_order_hands_notice_back(db_session):
    product = make_product("SKU-DN", stock=2, price="5.000")
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968", quantity_requested=2, agreed_price=Decimal("5"), product_id=product.id,
    )
    order = demand_notice_service.convert_to_order(
        notice.id, payments=[{"method": "cash", "amount": Decimal("10")}]
    )
    assert _stock(product.id) == 0

    return_service.submit_return(order.id, [{"product_id": product.id, "quantity": 2}], refund("10"))

    db.session.expire_all()
    notice = db.session.get(DemandNotice, notice.id)
    assert db.session.get(Order, order.id).status == "returned"
    assert notice.status == "awaiting_customer_action"
    assert notice.linked_order_id is None
    assert notice.quantity_fulfilled == 0
    assert _stock(product.id) == 2


def test_returned_placeholder_product_is_tagged(db_session):
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968",
        quantity_requested=1,
        agreed_price=Decimal("7.5"),
        product_name="Brass lantern",
        is_new_product=True,
    )
    with atomic():
        stock_ledger.set_quantity(stock_ledger.lock_product(notice.product_id), 1)
    demand_notice_service.reconcile(notice.product_id)
    order = demand_notice_service.convert_to_order(
        notice.id, payments=[{"method": "cash", "amount": Decimal("7.5")}]
    )

    return_service.submit_return(order.id, [{"product_id": notice.product_id, "quantity": 1}], refund("7.5"))

    db.session.expire_all()
    product = db.session.get(Product, notice.product_id)
    assert product.category == f"{demand_notice_service.PLACEHOLDER_CATEGORY}, Return DN"
    assert product.quantity_in_stock == 1


def test_returned_stock_wakes_waiting_notice(db_session):
    p = make_product("SKU-W", stock=2, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}], payments=[{"method": "cash", "amount": Decimal("20")}])
    waiting = demand_notice_service.create_notice(
        customer_contact_number="+96891112222", quantity_requested=2, agreed_price=Decimal("10"), product_id=p.id,
    )
    assert waiting.status == "awaiting_stock"

    return_service.submit_return(order.id, [{"product_id": p.id, "quantity": 2}], refund("20"))

    db.session.expire_all()
    assert db.session.get(DemandNotice, waiting.id).status == "full_stock_available"
    assert _stock(p.id) == 2


def test_delete_refused_once_returns_exist(db_session):
    p = make_product("SKU-A", stock=5, price="10.000")
    order = order_service.create_order([{"product_id": p.id, "quantity": 2}], payments=[{"method": "cash", "amount": Decimal("5")}])
    assert order.status == "partial_payment"
    return_service.submit_return(order.id, [{"product_id": p.id, "quantity": 1}], refund("10"))

    with pytest.raises(ConflictError):
        order_service.delete_order(order.id)
