import pytest

from backoffice.errors import ValidationError
from backoffice.extensions import db
from backoffice.models import SeriesNumberSetting
from backoffice.services import series_service
from backoffice.services.concurrency import atomic

from conftest import make_product


def test_first_allocation_creates_counter(db_session):
    assert series_service.next_series_id_committed("invoice") == "INV-000001"
    assert series_service.next_series_id_committed("invoice") == "INV-000002"

    row = db.session.get(SeriesNumberSetting, "invoice")
    assert row.next_number == 3


def test_series_are_independent(db_session):
    assert series_service.next_series_id_committed("invoice") == "INV-000001"
    assert series_service.next_series_id_committed("demand_notice") == "DN-000001"
    assert series_service.next_series_id_committed("po") == "PO-000001"
    assert series_service.next_series_id_committed("quotation") == "QUO-000001"
    assert series_service.next_series_id_committed("audit") == "AUD-000001"


def test_unknown_series_rejected(db_session):
    with pytest.raises(ValidationError):
        series_service.next_series_id_committed("receipts")


def test_rolled_back_transaction_returns_number(db_session):
    with pytest.raises(RuntimeError):
        with atomic():
            series_service.next_series_id("invoice")
            raise RuntimeError("abort")

    assert series_service.next_series_id_committed("invoice") == "INV-000001"


def test_set_next_number_moves_counter(db_session):
    series_service.set_next_number("invoice", 500)
    assert series_service.next_series_id_committed("invoice") == "INV-000500"


@pytest.mark.parametrize("value", [0, -3, "12", True, 1.5])
def test_set_next_number_rejects_invalid_values(db_session, value):
    with pytest.raises(ValidationError):
        series_service.set_next_number("invoice", value)


def test_ids_already_in_use_are_skipped(db_session):
    from backoffice.services import order_service

    product = make_product("SKU-SKIP", stock=5)
    order = order_service.create_order([{"product_id": product.id, "quantity": 1}])
    assert order.id == "INV-000001"

    # Counter moved back by hand: the existing invoice id must not be reissued
    series_service.set_next_number("invoice", 1)
    assert series_service.next_series_id_committed("invoice") == "INV-000002"


def test_list_series_reports_defaults_and_counters(db_session):
    series_service.next_series_id_committed("po")
    rows = {row["id"]: row for row in series_service.list_series()}

    assert rows["po"]["next_number"] == 2
    assert rows["po"]["next_id"] == "PO-000002"
    assert rows["invoice"]["next_number"] == 1
    assert rows["invoice"]["prefix"] == "INV-"
