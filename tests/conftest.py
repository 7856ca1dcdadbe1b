import os
from datetime import datetime
from decimal import Decimal

# must be set before app.py is imported
os.environ["SHOP_SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["SHOP_SEED_SAMPLE_DATA"] = "false"
os.environ["SHOP_SECRET_KEY"] = "test-secret"
os.environ["SHOP_LOG_LEVEL"] = "WARNING"

import pytest

from app import app as flask_app
from database import db
from models.order import Order, OrderItem
from models.product import Product
from models.user import User


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(
        TESTING=True,
        UPLOAD_FOLDER=str(tmp_path / "uploads"),
        AUTH_PROVIDER_URL="https://id.example.test/userinfo",
    )
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="ada@example.com", name="Ada", created_at=None):
        user = User(email=email, name=name, created_at=created_at or datetime(2026, 1, 1))
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_product(app):
    def _make(name="Classic Tee", price="24.00", stock=20, image=None):
        product = Product(
            name=name, description=f"{name} description", price=Decimal(price),
            stock=stock, image=image,
        )
        db.session.add(product)
        db.session.commit()
        return product
    return _make


@pytest.fixture
def make_order(app):
    def _make(user, items=(), total=None, status="PENDING", created_at=None):
        order = Order(user=user, status=status, created_at=created_at or datetime(2026, 10, 1))
        for product, quantity in items:
            order.items.append(OrderItem(product=product, quantity=quantity, price=product.price))
        if total is None:
            total = sum((Decimal(p.price) * q for p, q in items), Decimal("0"))
        order.total = Decimal(str(total))
        db.session.add(order)
        db.session.commit()
        return order
    return _make


@pytest.fixture
def admin(client, make_user):
    user = make_user(email="admin@example.com", name="Admin")
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
    return user
