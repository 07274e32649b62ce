from decimal import Decimal

import pytest

from backoffice.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from backoffice.extensions import db
from backoffice.models import DemandNotice, Product
from backoffice.services import demand_notice_service, order_service, stock_ledger
from backoffice.services.concurrency import atomic

from conftest import make_product


def notice_for(product, quantity, **kwargs):
    return demand_notice_service.create_notice(
        customer_contact_number="+96890000000",
        quantity_requested=quantity,
        agreed_price=Decimal(kwargs.pop("agreed_price", "12.000")),
        product_id=product.id,
        salesperson_id=kwargs.pop("salesperson_id", "sp-1"),
        **kwargs,
    )


def set_stock(product_id, quantity):
    with atomic():
        stock_ledger.set_quantity(stock_ledger.lock_product(product_id), quantity)


def reload(notice_id):
    db.session.expire_all()
    return db.session.get(DemandNotice, notice_id)


# =============================================================================
# CREATE
# =============================================================================

@pytest.mark.parametrize(
    "stock,expected",
    [
        (0, "awaiting_stock"),
        (4, "partial_stock_available"),
        (5, "full_stock_available"),
        (9, "full_stock_available"),
    ],
)
def test_initial_status_follows_stock(db_session, stock, expected):
    product = make_product("SKU-D", stock=stock)
    notice = notice_for(product, 5)
    assert notice.id == "DN-000001"
    assert notice.status == expected
    assert notice.product_sku == "SKU-D"


def test_create_by_sku(db_session):
    make_product("SKU-BY-SKU", stock=1)
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968", quantity_requested=2, agreed_price=Decimal("5"), product_sku="SKU-BY-SKU",
    )
    assert notice.status == "partial_stock_available"


def test_create_for_unknown_sku(db_session):
    with pytest.raises(ProductNotFoundError):
        demand_notice_service.create_notice(
            customer_contact_number="+968", quantity_requested=2, agreed_price=Decimal("5"), product_sku="NOPE",
        )


def test_create_needs_a_product_reference(db_session):
    with pytest.raises(ValidationError):
        demand_notice_service.create_notice(
            customer_contact_number="+968", quantity_requested=2, agreed_price=Decimal("5"),
        )


def test_new_product_gets_placeholder(db_session):
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968",
        quantity_requested=3,
        agreed_price=Decimal("7.5"),
        product_name="Brass lantern",
        is_new_product=True,
    )

    assert notice.status == "pending_review"
    product = db.session.get(Product, notice.product_id)
    assert product.sku.startswith("NEW-")
    assert product.sku == notice.product_sku
    assert product.quantity_in_stock == 0
    assert product.is_demand_notice_product is True
    assert product.category == demand_notice_service.PLACEHOLDER_CATEGORY
    assert product.price == Decimal("7.500")


def test_new_product_with_taken_sku_conflicts(db_session):
    make_product("TAKEN")
    with pytest.raises(ConflictError):
        demand_notice_service.create_notice(
            customer_contact_number="+968",
            quantity_requested=1,
            agreed_price=Decimal("1"),
            product_name="Other",
            product_sku="TAKEN",
            is_new_product=True,
        )
    assert db.session.query(DemandNotice).count() == 0


def test_new_product_requires_a_name(db_session):
    with pytest.raises(ValidationError):
        demand_notice_service.create_notice(
            customer_contact_number="+968", quantity_requested=1, agreed_price=Decimal("1"), is_new_product=True,
        )


def test_placeholder_sku_generation_gives_up_after_bounded_attempts(db_session, monkeypatch):
    monkeypatch.setattr(stock_ledger, "sku_exists", lambda sku, exclude_product_id=None: True)
    with pytest.raises(ConflictError) as exc:
        demand_notice_service.generate_placeholder_sku()
    assert exc.value.details["attempts"] == demand_notice_service.PLACEHOLDER_SKU_ATTEMPTS


# =============================================================================
# RECONCILE
# =============================================================================

def test_reconcile_follows_stock_both_ways(db_session):
    product = make_product("SKU-R", stock=0)
    notice = notice_for(product, 4)

    set_stock(product.id, 2)
    demand_notice_service.reconcile(product.id)
    assert reload(notice.id).status == "partial_stock_available"

    set_stock(product.id, 4)
    demand_notice_service.reconcile(product.id)
    assert reload(notice.id).status == "full_stock_available"

    set_stock(product.id, 0)
    changed = demand_notice_service.reconcile(product.id)
    assert [n.id for n in changed] == [notice.id]
    assert reload(notice.id).status == "awaiting_stock"


def test_reconcile_moves_pending_review(db_session):
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968", quantity_requested=2, agreed_price=Decimal("3"),
        product_name="Clay pot", is_new_product=True,
    )
    demand_notice_service.reconcile(notice.product_id)
    assert reload(notice.id).status == "awaiting_stock"


def test_reconcile_keeps_customer_notified_while_stock_is_sufficient(db_session):
    product = make_product("SKU-N", stock=5)
    notice = notice_for(product, 5)
    demand_notice_service.transition_notice(notice.id, "customer_notified_stock")

    set_stock(product.id, 6)
    demand_notice_service.reconcile(product.id)
    assert reload(notice.id).status == "customer_notified_stock"

    set_stock(product.id, 1)
    demand_notice_service.reconcile(product.id)
    assert reload(notice.id).status == "partial_stock_available"


def test_reconcile_leaves_terminal_notices_alone(db_session):
    product = make_product("SKU-X", stock=0)
    notice = notice_for(product, 2)
    demand_notice_service.transition_notice(notice.id, "cancelled")

    set_stock(product.id, 10)
    assert demand_notice_service.reconcile(product.id) == []
    assert reload(notice.id).status == "cancelled"


def test_product_update_reconciles(db_session):
    from backoffice.services import products_service

    product = make_product("SKU-U", stock=0)
    notice = notice_for(product, 3)
    products_service.update_product(product.id, {"quantity_in_stock": 3})
    assert reload(notice.id).status == "full_stock_available"


def test_reconcile_all(db_session):
    p1 = make_product("SKU-1", stock=0)
    p2 = make_product("SKU-2", stock=0)
    n1 = notice_for(p1, 1)
    n2 = notice_for(p2, 1)
    db.session.get(Product, p1.id).quantity_in_stock = 1
    db.session.get(Product, p2.id).quantity_in_stock = 1
    db.session.commit()

    result = demand_notice_service.reconcile_all()
    assert result == {p1.id: 1, p2.id: 1}
    assert reload(n1.id).status == "full_stock_available"
    assert reload(n2.id).status == "full_stock_available"


# =============================================================================
# CONVERT
# =============================================================================

def test_convert_creates_linked_order(db_session):
    product = make_product("SKU-C", stock=6)
    notice = notice_for(product, 4, agreed_price="9.000")
    demand_notice_service.record_notice_payment(notice.id, {"method": "cash", "amount": Decimal("10")})

    order = demand_notice_service.convert_to_order(notice.id, actor_id="sp-1")

    notice = reload(notice.id)
    assert order.status == "partial_payment"
    assert order.linked_demand_notice_id == notice.id
    assert order.customer_phone == notice.customer_contact_number
    assert order.primary_salesperson_id == "sp-1"
    assert [(i.product_id, i.quantity, i.price_per_unit) for i in order.items] == [
        (product.id, 4, Decimal("9.000"))
    ]
    assert order.amount_paid == Decimal("10.000")
    assert notice.status == "order_processing"
    assert notice.linked_order_id == order.id
    assert notice.quantity_fulfilled == 4
    assert stock_ledger.get_quantity(product.id) == 2


def test_convert_twice_conflicts(db_session):
    product = make_product("SKU-C", stock=10)
    notice = notice_for(product, 4)
    first = demand_notice_service.convert_to_order(notice.id)

    with pytest.raises(ConflictError):
        demand_notice_service.convert_to_order(notice.id)

    assert reload(notice.id).linked_order_id == first.id
    assert stock_ledger.get_quantity(product.id) == 6


def test_convert_with_stale_status_fails(db_session):
    product = make_product("SKU-C", stock=4)
    notice = notice_for(product, 4)
    assert notice.status == "full_stock_available"

    # Stock drops without a reconcile
    db.session.get(Product, product.id).quantity_in_stock = 1
    db.session.commit()

    with pytest.raises(InsufficientStockError):
        demand_notice_service.convert_to_order(notice.id)

    notice = reload(notice.id)
    assert notice.status == "full_stock_available"
    assert notice.linked_order_id is None
    assert stock_ledger.get_quantity(product.id) == 1


def test_convert_requires_full_availability(db_session):
    product = make_product("SKU-C", stock=1)
    notice = notice_for(product, 4)
    with pytest.raises(ConflictError):
        demand_notice_service.convert_to_order(notice.id)


def test_convert_unknown_notice(db_session):
    with pytest.raises(NotFoundError):
        demand_notice_service.convert_to_order("DN-999999")


def test_order_create_with_notice_must_match_it(db_session):
    product = make_product("SKU-C", stock=10)
    notice = notice_for(product, 4)
    with pytest.raises(ValidationError):
        order_service.create_order(
            [{"product_id": product.id, "quantity": 3}], linked_demand_notice_id=notice.id
        )
    order = order_service.create_order(
        [{"product_id": product.id, "quantity": 4}], linked_demand_notice_id=notice.id
    )
    assert reload(notice.id).linked_order_id == order.id


# =============================================================================
# LINKED ORDER LIFECYCLE
# =============================================================================

def test_deleting_linked_order_reopens_notice_without_double_deduction(db_session):
    product = make_product("SKU-C", stock=4)
    notice = notice_for(product, 4)
    order = demand_notice_service.convert_to_order(notice.id)
    assert stock_ledger.get_quantity(product.id) == 0

    order_service.delete_order(order.id)

    notice = reload(notice.id)
    assert notice.linked_order_id is None
    assert notice.status == "full_stock_available"
    assert notice.quantity_fulfilled == 4
    assert stock_ledger.get_quantity(product.id) == 0

    # Converting again uses the units still set aside
    second = demand_notice_service.convert_to_order(notice.id)
    assert second.id != order.id
    assert stock_ledger.get_quantity(product.id) == 0


def test_order_fulfillment_moves_notice_along(db_session):
    product = make_product("SKU-C", stock=2, price="5.000")
    notice = notice_for(product, 2, agreed_price="5.000")
    order = demand_notice_service.convert_to_order(
        notice.id, payments=[{"method": "card", "amount": Decimal("10")}]
    )
    assert order.status == "paid"

    order_service.advance_order(order.id, "preparing")
    assert reload(notice.id).status == "preparing_stock"
    order_service.advance_order(order.id, "ready_for_pickup")
    assert reload(notice.id).status == "ready_for_collection"
    order_service.advance_order(order.id, "completed")
    assert reload(notice.id).status == "fulfilled"


def test_cancelling_notice_with_set_aside_units_releases_them(db_session):
    product = make_product("SKU-C", stock=3)
    notice = notice_for(product, 3)
    order = demand_notice_service.convert_to_order(notice.id)

    with pytest.raises(ConflictError):
        demand_notice_service.transition_notice(notice.id, "cancelled")

    order_service.cancel_order(order.id)
    assert stock_ledger.get_quantity(product.id) == 0

    demand_notice_service.transition_notice(notice.id, "cancelled")
    notice = reload(notice.id)
    assert notice.status == "cancelled"
    assert notice.quantity_fulfilled == 0
    assert stock_ledger.get_quantity(product.id) == 3
    assert stock_ledger.recent_movements(product.id)[0].movement_type == stock_ledger.MOVEMENT_RESERVATION_RELEASE


# =============================================================================
# MANUAL TRANSITIONS / PAYMENTS
# =============================================================================

def test_manual_transition_rules(db_session):
    product = make_product("SKU-M", stock=0)
    notice = notice_for(product, 2)

    with pytest.raises(ValidationError):
        demand_notice_service.transition_notice(notice.id, "fulfilled")
    with pytest.raises(ConflictError):
        demand_notice_service.transition_notice(notice.id, "customer_notified_stock")

    set_stock(product.id, 2)
    demand_notice_service.reconcile(product.id)
    demand_notice_service.transition_notice(notice.id, "customer_notified_stock")
    demand_notice_service.transition_notice(notice.id, "awaiting_customer_action")
    assert reload(notice.id).status == "awaiting_customer_action"


def test_reevaluate_awaiting_customer_action(db_session):
    product = make_product("SKU-M", stock=2)
    notice = notice_for(product, 2)
    demand_notice_service.transition_notice(notice.id, "customer_notified_stock")
    demand_notice_service.transition_notice(notice.id, "awaiting_customer_action")
    set_stock(product.id, 1)

    # Reconcile does not touch a notice waiting on the customer
    demand_notice_service.reconcile(product.id)
    assert reload(notice.id).status == "awaiting_customer_action"

    notice = demand_notice_service.reevaluate_notice(notice.id)
    assert notice.status == "partial_stock_available"

    with pytest.raises(ConflictError):
        demand_notice_service.reevaluate_notice(notice.id)


def test_no_payments_on_cancelled_notice(db_session):
    product = make_product("SKU-M", stock=0)
    notice = notice_for(product, 2)
    demand_notice_service.transition_notice(notice.id, "cancelled")
    with pytest.raises(ConflictError):
        demand_notice_service.record_notice_payment(notice.id, {"method": "cash", "amount": Decimal("1")})


def test_list_notices_filters(db_session):
    p1 = make_product("SKU-1", stock=0)
    p2 = make_product("SKU-2", stock=5)
    notice_for(p1, 1, salesperson_id="sp-1")
    notice_for(p2, 1, salesperson_id="sp-2")

    assert len(demand_notice_service.list_notices(salesperson_id="sp-1")) == 1
    assert len(demand_notice_service.list_notices(status="full_stock_available")) == 1
    assert len(demand_notice_service.list_notices(product_id=p1.id)) == 1
    with pytest.raises(ValidationError):
        demand_notice_service.list_notices(status="unknown")
