"""
Pytest fixtures for shopledger backend tests.

Provides an in-memory database, per-test table wipe, staff users, a small
catalog and helpers for recording purchases and sales.
"""

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.models import Category, Product, Supplier, User
from shopledger.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_TECHNICIAN
from shopledger.services import purchase_service, sales_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_BACKEND': 'log',
        'MAIL_SUPPRESS_SEND': True,
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
        # Core deletes: the undo-log tables refuse ORM deletes
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


def _user(db_session, username, role):
    user = User(username=username, email=f"{username}@shop.test", role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    return _user(db_session, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _user(db_session, "cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def technician(db_session):
    return _user(db_session, "technician", ROLE_TECHNICIAN)


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Tech Distributors", shop_name="Tech Wholesale", phone="0112345678")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Accessories")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def mouse(db_session, supplier, category):
    """Plain product, no serial numbers."""
    product = Product(name="Wireless Mouse", category_id=category.id, supplier_id=supplier.id)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def laptop(db_session, supplier):
    """Serial-tracked product."""
    product = Product(name="Laptop 14", supplier_id=supplier.id, requires_serial=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def make_batch(db_session, admin):
    """Record a purchase batch through the service layer."""
    def _make(product, quantity=10, buying_price="100", selling_price="150", warranty=12, date=None, actor=None):
        payload = {
            "product_id": product.id,
            "quantity": quantity,
            "buying_price": buying_price,
            "selling_price": selling_price,
            "warranty": warranty,
        }
        if date is not None:
            payload["date"] = date
        return purchase_service.create_batch(payload, actor_user_id=(actor or admin).id)
    return _make


@pytest.fixture(scope='function')
def make_sale(db_session, cashier):
    """Check out items for a walk-in customer."""
    def _make(items, phone="0771234567", email=None, actor=None):
        customer = {"phone": phone, "name": "Nimal Perera"}
        if email is not None:
            customer["email"] = email
        return sales_service.create_sale(
            {"customer": customer, "items": items, "payment_method": "Cash"},
            actor_user_id=(actor or cashier).id,
        )
    return _make


def actor_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}
