"""Pytest fixtures for storefront tests."""

from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db as _db
from storefront.model import Coupon, Product, User
from storefront.utils.dates import utcnow
from storefront.utils.money import D


@pytest.fixture
def app():
    """App on an in-memory database, with the fake gateway and email adapter."""
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()

    yield app

    app.extensions["notifications"].shutdown()
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def gateway(app):
    return app.extensions["payment_gateway"]


@pytest.fixture
def email(app):
    return app.extensions["email"]


@pytest.fixture
def dispatcher(app):
    return app.extensions["notifications"]


def _user(email, role="user", name=None):
    u = User(email=email, name=name or email.split("@")[0].title(), role=role)
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture
def customer(app):
    return _user("alice@example.com", name="Alice")


@pytest.fixture
def other_customer(app):
    return _user("bob@example.com", name="Bob")


@pytest.fixture
def admin(app):
    return _user("admin@example.com", role="admin", name="Admin")


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}
    return _headers


@pytest.fixture
def make_product(app):
    def _make(name="Widget", price=50.0, quantity=10, discount_price=None, subtract_stock="yes", status=True):
        p = Product(
            name=name,
            price=price,
            discount_price=discount_price,
            quantity=quantity,
            subtract_stock=subtract_stock,
            status=status,
        )
        _db.session.add(p)
        _db.session.commit()
        return p
    return _make


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE5", discount_type="fixed", discount_value=5, min_purchase=0, max_uses=0,
              usage_count=0, is_active=True, valid_from=None, valid_until=None):
        now = utcnow()
        c = Coupon(
            code=code.upper(),
            discount_type=discount_type,
            discount_value=D(discount_value),
            min_purchase=D(min_purchase),
            max_uses=max_uses,
            usage_count=usage_count,
            is_active=is_active,
            valid_from=valid_from or now - timedelta(days=1),
            valid_until=valid_until or now + timedelta(days=30),
        )
        _db.session.add(c)
        _db.session.commit()
        return c
    return _make


@pytest.fixture
def shipping():
    return {
        "fullName": "Alice Smith",
        "email": "alice@example.com",
        "phone": "0781234567",
        "address": "12 Market Street",
        "city": "Phnom Penh",
        "state": "",
        "postalCode": "12000",
        "country": "KH",
    }


@pytest.fixture
def basket(make_product):
    """Two products: 2 x 50 + 1 x 20, subtotal 120."""
    from storefront.services.cart_service import CartLine

    shirt = make_product(name="Shirt", price=50.0, quantity=10)
    socks = make_product(name="Socks", price=20.0, quantity=10)
    return [CartLine(shirt.id, 2), CartLine(socks.id, 1)]
