"""Shared fixtures: a fresh SQLite file per test, plus a TestClient wired to it."""

import os

# The app module creates its tables on import; keep that off disk.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("RABBITMQ_HOST", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from order_service.app.database import Base, get_db, make_engine
from order_service.app.main import app
from order_service.app.messaging.producer import get_producer
from order_service.app.models import AdminUser, Order, OrderItem, Product
from order_service.app.order_status import OrderStatus


class RecordingProducer:
    def __init__(self):
        self.events = []

    def publish_event(self, event_data, routing_key="order.status_changed"):
        self.events.append((routing_key, event_data))


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def admin(db):
    admin = AdminUser(username="test-admin-order-status")
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(name="Test Product", inventory=10, price=100.0, published=True):
        counter["n"] += 1
        product = Product(
            name=name, slug=f"test-product-{counter['n']}", price=price, inventory=inventory, published=published
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_order(db):
    """Insert an order directly; ``lines`` is a list of (product_or_id, quantity)."""

    def _make(lines, status=OrderStatus.PENDING):
        order = Order(
            status=status,
            buyer_name="Test Buyer",
            buyer_email="test@example.com",
            address="Test Address 123",
        )
        total = 0.0
        for product, quantity in lines:
            if isinstance(product, Product):
                product_id, name, price = product.id, product.name, product.price
            else:
                product_id, name, price = product, "Ghost", 1.0
            order.items.append(OrderItem(product_id=product_id, name=name, price=price, quantity=quantity))
            total += price * quantity
        order.total = total
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def producer():
    return RecordingProducer()


@pytest.fixture
def client(session_factory, producer):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_producer] = lambda: producer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin):
    return {"X-Admin-Id": admin.id}
