import pytest
from sqlalchemy import func, select

from order_service.app import checkout
from order_service.app.checkout import place_order
from order_service.app.exceptions import InsufficientInventory, ProductUnavailable
from order_service.app.models import Order, Product
from order_service.app.order_status import OrderStatus
from order_service.app.schemas import CheckoutRequest


def checkout_request(items, **kwargs):
    data = dict(buyer_name="Test Buyer", buyer_email="buyer@example.com", address="12 Long Enough Street")
    data.update(kwargs)
    return CheckoutRequest(items=items, **data)


def inventory_of(db, product_id):
    return db.execute(select(Product.inventory).where(Product.id == product_id)).scalar_one()


def order_count(db):
    return db.execute(select(func.count(Order.id))).scalar_one()


def test_places_pending_order_and_reserves_stock(db, make_product):
    shirt = make_product(name="Shirt", price=150.0, inventory=10)
    hat = make_product(name="Hat", price=20.0, inventory=3)

    order = place_order(db, checkout_request([
        {"product_id": shirt.id, "quantity": 2},
        {"product_id": hat.id, "quantity": 3},
    ]))

    assert order.status == OrderStatus.PENDING
    assert order.total == pytest.approx(360.0)
    assert [(i.name, i.price, i.quantity) for i in order.items] == [("Shirt", 150.0, 2), ("Hat", 20.0, 3)]
    assert inventory_of(db, shirt.id) == 8
    assert inventory_of(db, hat.id) == 0


def test_insufficient_inventory_changes_nothing(db, make_product):
    plenty = make_product(inventory=10)
    scarce = make_product(name="Scarce", inventory=1)

    with pytest.raises(InsufficientInventory) as excinfo:
        place_order(db, checkout_request([
            {"product_id": plenty.id, "quantity": 1},
            {"product_id": scarce.id, "quantity": 2},
        ]))

    assert 'product "Scarce"' in excinfo.value.message
    assert inventory_of(db, plenty.id) == 10
    assert inventory_of(db, scarce.id) == 1
    assert order_count(db) == 0


def test_duplicate_lines_count_against_one_stock(db, make_product):
    product = make_product(inventory=3)

    with pytest.raises(InsufficientInventory):
        place_order(db, checkout_request([
            {"product_id": product.id, "quantity": 2},
            {"product_id": product.id, "quantity": 2},
        ]))


def test_unpublished_product_is_unavailable(db, make_product):
    hidden = make_product(published=False)

    with pytest.raises(ProductUnavailable):
        place_order(db, checkout_request([{"product_id": hidden.id, "quantity": 1}]))


def test_idempotency_key_returns_existing_order(db, make_product):
    product = make_product(inventory=10)
    request = checkout_request([{"product_id": product.id, "quantity": 1}], idempotency_key="cart-1")

    first = place_order(db, request)
    second = place_order(db, request)

    assert second.id == first.id
    assert order_count(db) == 1
    assert inventory_of(db, product.id) == 9


def test_same_key_committed_concurrently_returns_that_order(db, make_product, monkeypatch):
    product = make_product(inventory=10)
    request = checkout_request([{"product_id": product.id, "quantity": 1}], idempotency_key="cart-2")
    first = place_order(db, request)
    real_find = checkout._find_by_key
    lookups = []

    def miss_first_lookup(session, key):
        # The other checkout had not committed when this one looked.
        lookups.append(key)
        return None if len(lookups) == 1 else real_find(session, key)

    monkeypatch.setattr(checkout, "_find_by_key", miss_first_lookup)
    second = place_order(db, request)

    assert len(lookups) == 2
    assert second.id == first.id
    assert order_count(db) == 1
    assert inventory_of(db, product.id) == 9
