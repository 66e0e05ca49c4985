import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base  # Import the Base class from our database setup
from .order_status import OrderStatus


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every stored datetime is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


# Defines the ORM model for an 'Order' stored in the database.
class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    status = Column(
        Enum(OrderStatus, native_enum=False, length=20, create_constraint=True, name="order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    total = Column(Float, nullable=False, default=0)  # Sum of the item price snapshots.
    buyer_name = Column(String(200))
    buyer_email = Column(String(200))
    address = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Shipping, delivery and cancellation details, set by status updates only.
    tracking_number = Column(String(100))
    carrier = Column(String(100))
    ship_date = Column(DateTime)
    delivery_date = Column(DateTime)
    cancellation_reason = Column(Text)

    idempotency_key = Column(String(200), unique=True)  # Key to prevent duplicate checkouts.

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    activities = relationship("OrderActivity", back_populates="order", order_by="OrderActivity.timestamp")


# One product line of an order; price is the snapshot taken at checkout.
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    name = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


# Append-only audit record of a single status transition.
class OrderActivity(Base):
    __tablename__ = "order_activities"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    admin_id = Column(String(36), ForeignKey("admin_users.id"), nullable=False)
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    note = Column(Text)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    order = relationship("Order", back_populates="activities")
    admin = relationship("AdminUser")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("inventory >= 0", name="ck_products_inventory_non_negative"),)

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    price = Column(Float, nullable=False)
    inventory = Column(Integer, nullable=False, default=0)  # Units available for checkout.
    published = Column(Boolean, nullable=False, default=True)


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(100), unique=True, nullable=False)
