"""
End-to-end flows across notices, purchasing, orders and returns.
"""

from decimal import Decimal

import pytest

from backoffice.errors import OverReturnError
from backoffice.extensions import db
from backoffice.models import DemandNotice, Order
from backoffice.services import (
    demand_notice_service,
    order_service,
    purchase_order_service,
    return_service,
    stock_ledger,
)

from conftest import make_product


def test_new_item_request_through_purchasing_to_order(db_session):
    # Customer asks for an item the catalog does not have yet
    notice = demand_notice_service.create_notice(
        customer_contact_number="+96899887766",
        quantity_requested=10,
        agreed_price=Decimal("3.250"),
        product_name="Handwoven basket",
        is_new_product=True,
        salesperson_id="sp-1",
    )
    assert notice.status == "pending_review"
    product_id = notice.product_id

    demand_notice_service.reconcile(product_id)
    db.session.expire_all()
    assert db.session.get(DemandNotice, notice.id).status == "awaiting_stock"

    po = purchase_order_service.create_purchase_order(
        items=[{"product_id": product_id, "quantity_ordered": 10, "unit_cost": Decimal("1.5")}],
        supplier_id="SUP-BASKETS",
    )
    purchase_order_service.confirm_purchase_order(po.id)
    po = purchase_order_service.receive_items(po.id, [{"po_item_id": po.items[0].id, "received_quantity": 10}])
    assert po.status == "Received"

    db.session.expire_all()
    assert db.session.get(DemandNotice, notice.id).status == "full_stock_available"
    assert stock_ledger.get_quantity(product_id) == 10

    order = demand_notice_service.convert_to_order(notice.id, actor_id="sp-1")

    db.session.expire_all()
    notice = db.session.get(DemandNotice, notice.id)
    assert stock_ledger.get_quantity(product_id) == 0
    assert order.status == "pending_payment"
    assert order.total_amount == Decimal("32.500")
    assert notice.status == "order_processing"
    assert notice.linked_order_id == order.id


def test_partial_return_then_over_return(db_session):
    a = make_product("SKU-30", stock=5, price="30.000")
    b = make_product("SKU-40", stock=5, price="40.000")

    order = order_service.create_order(
        [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 1}],
        expected_total=Decimal("100"),
    )
    order = order_service.record_payment(order.id, [{"method": "cash", "amount": Decimal("100")}])
    assert order.status == "paid"

    rt = return_service.submit_return(
        order.id, [{"product_id": a.id, "quantity": 1}], [{"method": "cash", "amount": Decimal("30")}]
    )
    assert rt.total_value_of_returned_items == Decimal("30.000")

    db.session.expire_all()
    assert db.session.get(Order, order.id).status == "paid"
    assert stock_ledger.get_quantity(a.id) == 4

    return_service.submit_return(
        order.id, [{"product_id": a.id, "quantity": 1}], [{"method": "cash", "amount": Decimal("30")}]
    )
    with pytest.raises(OverReturnError):
        return_service.submit_return(
            order.id, [{"product_id": a.id, "quantity": 1}], [{"method": "cash", "amount": Decimal("30")}]
        )

    db.session.expire_all()
    assert stock_ledger.get_quantity(a.id) == 5
    assert db.session.get(Order, order.id).status == "paid"
