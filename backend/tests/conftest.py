"""
Pytest fixtures for the market backend tests.

Provides test database setup, a stocked branch and an open sale.
"""

import pytest
from market import create_app
from market.extensions import db
from market.services import catalog_service, sale_lifecycle, stock_ledger


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONCURRENCY_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    """Create the branch every sale in a test belongs to."""
    return catalog_service.create_branch("Branch A", address="1 Main St")


@pytest.fixture(scope='function')
def other_branch(db_session):
    return catalog_service.create_branch("Branch B")


@pytest.fixture(scope='function')
def product(db_session):
    """Product priced at 250 cents."""
    return catalog_service.create_product("Milk 1L", 250, barcode="4000000000017")


@pytest.fixture(scope='function')
def second_product(db_session):
    return catalog_service.create_product("Bread", 100, barcode="4000000000024")


@pytest.fixture(scope='function')
def stock(db_session, product, branch):
    """10 units of `product` at `branch`."""
    return stock_ledger.create_stock_record(product.id, branch.id, 10)


@pytest.fixture(scope='function')
def sale(db_session, branch):
    """Open in_process sale at `branch`."""
    return sale_lifecycle.create_sale(branch.id, client_name="Walk-in")
