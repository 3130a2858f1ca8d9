"""
Pytest fixtures for storefront backend tests.

Provides an in-memory database, profile/catalog/order factories and
logged-in test clients.
"""

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Profile, Product, ProductVariant, Order, OrderItem
from storefront.services.auth_service import create_profile


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SESSION_TOKEN_COOKIE_SECURE': False,
        'SESSION_FAILURE_POLICY': 'fail_open',
        'ORDER_STATUS_ENFORCE_TRANSITIONS': True,
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
def shopper(db_session):
    """Customer profile with a real bcrypt password (usable for login)."""
    return create_profile("shopper@example.com", PASSWORD, full_name="Sam Shopper")


@pytest.fixture(scope='function')
def admin(db_session):
    """Back-office profile with a real bcrypt password."""
    return create_profile("admin@example.com", PASSWORD, full_name="Ada Admin", is_admin=True)


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer profile for service-level tests (no usable password)."""
    profile = Profile(email="customer@example.com", password_hash="x")
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def variant_factory(db_session):
    """Create product variants with a given stock level."""
    product = Product(name="Mango Ice", brand="Cloud Nine")
    db_session.add(product)
    db_session.commit()
    counter = {"n": 0}

    def _make(stock: int = 10, name: str | None = None) -> ProductVariant:
        counter["n"] += 1
        variant = ProductVariant(
            product_id=product.id,
            name=name or f"Mango Ice {counter['n']}",
            sku=f"MANGO-{counter['n']:03d}",
            price_cents=1999,
            stock_quantity=stock,
        )
        db_session.add(variant)
        db_session.commit()
        return variant

    return _make


@pytest.fixture(scope='function')
def order_factory(db_session):
    """
    Create orders. items is a list of (variant_or_variant_id, quantity).
    """
    def _make(user, status="pending_payment", items=(), created_at=None, shipping_address=None) -> Order:
        order = Order(user_id=user.id, status=status, shipping_address=shipping_address)
        if created_at is not None:
            order.created_at = created_at
        for variant, quantity in items:
            variant_id = variant if isinstance(variant, int) else variant.id
            order.items.append(OrderItem(product_variant_id=variant_id, quantity=quantity, unit_price_cents=1999))
        db_session.add(order)
        db_session.commit()
        return order

    return _make


def _login(client, email: str, password: str = PASSWORD):
    return client.post('/api/auth/login', json={'email': email, 'password': password})


@pytest.fixture(scope='function')
def login():
    """Helper to log a test client in."""
    return _login


@pytest.fixture(scope='function')
def admin_client(app, admin):
    """Test client signed in as the admin profile."""
    client = app.test_client()
    response = _login(client, admin.email)
    assert response.status_code == 200
    return client


@pytest.fixture(scope='function')
def shopper_client(app, shopper):
    """Test client signed in as the shopper profile."""
    client = app.test_client()
    response = _login(client, shopper.email)
    assert response.status_code == 200
    return client
