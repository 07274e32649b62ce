from backoffice.extensions import db
from backoffice.models import DemandNotice, Product, SeriesNumberSetting
from backoffice.services import demand_notice_service, series_service

from conftest import make_product


def test_system_init_creates_series_counters(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init"])

    assert result.exit_code == 0, result.output
    assert "PASS" in result.output
    assert db.session.query(SeriesNumberSetting).count() == len(series_service.SERIES_PREFIXES)


def test_series_set_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["series", "set", "po", "77"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=["series", "list"])
    assert "PO-000077" in result.output

    result = runner.invoke(args=["series", "set", "nope", "1"])
    assert result.exit_code != 0
    assert "Unknown series" in result.output


def test_stock_show(app, db_session):
    make_product("SKU-CLI", stock=3)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "show", "SKU-CLI"])
    assert result.exit_code == 0, result.output
    assert "in stock: 3" in result.output

    result = runner.invoke(args=["stock", "show", "MISSING"])
    assert result.exit_code != 0


def test_notices_reconcile(app, db_session):
    product = make_product("SKU-CLI", stock=0)
    notice = demand_notice_service.create_notice(
        customer_contact_number="+968", quantity_requested=2, agreed_price=product.price, product_id=product.id,
    )
    db.session.get(Product, product.id).quantity_in_stock = 2
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["notices", "reconcile"])

    assert result.exit_code == 0, result.output
    assert "1 notice(s) updated" in result.output
    db.session.expire_all()
    assert db.session.get(DemandNotice, notice.id).status == "full_stock_available"
