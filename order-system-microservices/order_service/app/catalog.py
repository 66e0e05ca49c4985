from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .exceptions import DuplicateProduct, OrderNotFound
from .models import Order, Product
from .order_status import OrderStatus
from .schemas import OrderOut, OrderPage, ProductCreate

MAX_PAGE_SIZE = 100


def create_product(db: Session, data: ProductCreate) -> Product:
    if db.execute(select(Product.id).where(Product.slug == data.slug)).first() is not None:
        raise DuplicateProduct(f"A product with slug '{data.slug}' already exists")
    product = Product(**data.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def list_products(db: Session) -> List[Product]:
    return list(db.execute(select(Product).order_by(Product.name)).scalars())


def get_order(db: Session, order_id: str) -> Order:
    order = db.execute(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def list_orders(db: Session, page: int = 1, limit: int = 20, status: Optional[OrderStatus] = None) -> OrderPage:
    """Newest orders first; limit is clamped to 1..MAX_PAGE_SIZE."""
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))

    query = select(Order)
    count_query = select(func.count(Order.id))
    if status is not None:
        query = query.where(Order.status == status)
        count_query = count_query.where(Order.status == status)

    total = db.execute(count_query).scalar_one()
    orders = db.execute(
        query.options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return OrderPage(
        data=[OrderOut.model_validate(order) for order in orders],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit),
    )
