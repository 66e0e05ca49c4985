"""
Checkout: turns a cart into a PENDING order and takes the units out of
inventory in the same transaction.
"""

import logging
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import InsufficientInventory, OrderServiceError, ProductUnavailable
from .models import Order, OrderItem, Product
from .order_status import OrderStatus
from .schemas import CheckoutRequest

logger = logging.getLogger(__name__)


def _find_by_key(db: Session, idempotency_key: str) -> Optional[Order]:
    return db.execute(select(Order).where(Order.idempotency_key == idempotency_key)).scalar_one_or_none()


def place_order(db: Session, req: CheckoutRequest) -> Order:
    # 1. Idempotency Check: Ensure this checkout hasn't been processed before.
    if req.idempotency_key:
        existing = _find_by_key(db, req.idempotency_key)
        if existing is not None:
            logger.info("Checkout %s already placed as order %s", req.idempotency_key, existing.id)
            return existing

    try:
        # 2. Every product must exist and be published.
        product_ids = {item.product_id for item in req.items}
        products = {
            p.id: p
            for p in db.execute(
                select(Product).where(Product.id.in_(product_ids), Product.published.is_(True))
            ).scalars()
        }
        for item in req.items:
            if item.product_id not in products:
                raise ProductUnavailable(f"Product {item.product_id} not found")

        # 3. Snapshot prices and build the order.
        requested: Dict[str, int] = {}
        order = Order(
            status=OrderStatus.PENDING,
            buyer_name=req.buyer_name,
            buyer_email=req.buyer_email,
            address=req.address,
            idempotency_key=req.idempotency_key,
        )
        total = 0.0
        for item in req.items:
            product = products[item.product_id]
            total += product.price * item.quantity
            requested[product.id] = requested.get(product.id, 0) + item.quantity
            order.items.append(
                OrderItem(product_id=product.id, name=product.name, price=product.price, quantity=item.quantity)
            )
        order.total = total
        db.add(order)

        # 4. Reserve stock; the WHERE clause keeps inventory from going negative.
        for product_id, quantity in requested.items():
            reserved = db.execute(
                update(Product)
                .where(Product.id == product_id, Product.inventory >= quantity)
                .values(inventory=Product.inventory - quantity)
                .execution_options(synchronize_session=False)
            )
            if reserved.rowcount != 1:
                product = products[product_id]
                raise InsufficientInventory(
                    f'Insufficient inventory for product "{product.name}". '
                    f"Available: {product.inventory}, requested: {quantity}"
                )

        db.commit()
    except OrderServiceError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        # A concurrent checkout with the same key committed first.
        existing = _find_by_key(db, req.idempotency_key) if req.idempotency_key else None
        if existing is not None:
            logger.info("Checkout %s already placed as order %s", req.idempotency_key, existing.id)
            return existing
        logger.exception("Checkout error")
        raise OrderServiceError("An error occurred during checkout") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Checkout error")
        raise OrderServiceError("An error occurred during checkout") from exc

    logger.info("Order %s placed for %s (total %.2f)", order.id, req.buyer_email, order.total)
    return order
