"""
Pytest fixtures for back-office tests.

Provides a file-backed SQLite database (BEGIN IMMEDIATE needs a real file),
per-test table cleanup, a test client and actor header helpers.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Product


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "backoffice-test.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test; the app context stays pushed for the test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.remove()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


def make_product(sku="SKU-1", *, stock=0, price="10.000", name=None, **extra) -> Product:
    product = Product(
        sku=sku,
        name=name or f"Product {sku}",
        price=Decimal(price),
        quantity_in_stock=stock,
        **extra,
    )
    db.session.add(product)
    db.session.commit()
    return product


def actor_headers(role: str, user_id: str | None = None, permissions=()) -> dict:
    """Identity headers as forwarded by the upstream auth gateway."""
    headers = {
        'X-User-Id': user_id or f"{role}-1",
        'X-User-Role': role,
    }
    if permissions:
        headers['X-User-Permissions'] = ",".join(permissions)
    return headers


@pytest.fixture
def product_factory(db_session):
    return make_product


@pytest.fixture
def admin_headers():
    return actor_headers("admin")


@pytest.fixture
def manager_headers():
    return actor_headers("manager", permissions=("manage_suppliers",))


@pytest.fixture
def salesperson_headers():
    return actor_headers("salesperson", user_id="sp-1")


@pytest.fixture
def cashier_headers():
    return actor_headers("cashier")


@pytest.fixture
def storekeeper_headers():
    return actor_headers("storekeeper")


@pytest.fixture
def logistics_headers():
    return actor_headers("logistics")
