from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import MissingRequiredField
from .order_status import OrderStatus


class CamelModel(BaseModel):
    """JSON uses camelCase; snake_case names are accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# --- Request Models ---
class StatusUpdateRequest(CamelModel):
    """Body of PUT /api/v1/admin/orders/{order_id}/status."""

    status: OrderStatus
    note: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    ship_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    should_restock: bool = True

    @field_validator("ship_date", "delivery_date")
    @classmethod
    def _to_utc(cls, value):
        return _as_naive_utc(value)


class CheckoutItem(CamelModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)


class CheckoutRequest(CamelModel):
    buyer_name: str = Field(min_length=1)
    buyer_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    address: str = Field(min_length=10)
    items: List[CheckoutItem] = Field(min_length=1)
    idempotency_key: Optional[str] = None


class ProductCreate(CamelModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    price: float = Field(gt=0)
    inventory: int = Field(ge=0)
    published: bool = True


# --- Typed transitions ---
# One model per target status, so each status carries exactly the fields it needs.
class PlainTransition(BaseModel):
    status: Literal[OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.CONFIRMED, OrderStatus.FAILED]

    def order_fields(self) -> dict:
        return {}


class ShipTransition(BaseModel):
    status: Literal[OrderStatus.SHIPPED] = OrderStatus.SHIPPED
    tracking_number: str
    carrier: str
    ship_date: Optional[datetime] = None

    def order_fields(self) -> dict:
        fields = {"tracking_number": self.tracking_number, "carrier": self.carrier}
        if self.ship_date is not None:
            fields["ship_date"] = self.ship_date
        return fields


class DeliverTransition(BaseModel):
    status: Literal[OrderStatus.DELIVERED] = OrderStatus.DELIVERED
    delivery_date: Optional[datetime] = None

    def order_fields(self) -> dict:
        return {"delivery_date": self.delivery_date} if self.delivery_date is not None else {}


class CancelTransition(BaseModel):
    status: Literal[OrderStatus.CANCELLED] = OrderStatus.CANCELLED
    cancellation_reason: str
    should_restock: bool = True

    def order_fields(self) -> dict:
        return {"cancellation_reason": self.cancellation_reason}


Transition = Union[PlainTransition, ShipTransition, DeliverTransition, CancelTransition]


def build_transition(request: StatusUpdateRequest) -> Transition:
    """Turn a loose request into the typed transition for its target status.

    Raises MissingRequiredField when the target status needs data the
    request does not carry. Blank strings count as missing.
    """
    status = request.status
    if status == OrderStatus.SHIPPED:
        missing = [
            label
            for label, value in (("Tracking number", request.tracking_number), ("carrier", request.carrier))
            if not value
        ]
        if missing:
            raise MissingRequiredField(status.value, missing)
        return ShipTransition(
            tracking_number=request.tracking_number, carrier=request.carrier, ship_date=request.ship_date
        )
    if status == OrderStatus.CANCELLED:
        if not request.cancellation_reason:
            raise MissingRequiredField(status.value, ["Cancellation reason"])
        return CancelTransition(
            cancellation_reason=request.cancellation_reason, should_restock=request.should_restock
        )
    if status == OrderStatus.DELIVERED:
        return DeliverTransition(delivery_date=request.delivery_date)
    return PlainTransition(status=status)


# --- Response Models ---
class OrderItemOut(CamelModel):
    id: int
    product_id: str
    name: str
    price: float
    quantity: int


class OrderOut(CamelModel):
    id: str
    status: OrderStatus
    total: float
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    ship_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    items: List[OrderItemOut] = []


class OrderPage(CamelModel):
    data: List[OrderOut]
    total: int
    page: int
    limit: int
    total_pages: int


class RestockLine(CamelModel):
    product_id: str
    quantity: int


class StatusUpdateResponse(CamelModel):
    message: str
    order: OrderOut
    restocked: Optional[List[RestockLine]] = None
    idempotent: bool = False


class AdminOut(CamelModel):
    id: str
    username: str


class ActivityOut(CamelModel):
    id: int
    from_status: str
    to_status: str
    note: Optional[str] = None
    timestamp: datetime
    admin: AdminOut


class OrderActivities(CamelModel):
    order_id: str
    current_status: OrderStatus
    activities: List[ActivityOut]


class ProductOut(CamelModel):
    id: str
    name: str
    slug: str
    price: float
    inventory: int
    published: bool


class CheckoutResponse(CamelModel):
    order_id: str
    status: OrderStatus
    total: float
    message: str
