# In file: order-system-microservices/order_service/app/main.py

import logging
import os
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import audit_trail, catalog, checkout
from .auth import get_current_admin
from .database import engine, get_db
from .exceptions import OrderServiceError
from .messaging.producer import get_producer
from .models import AdminUser, Base
from .order_status import OrderStatus
from .schemas import (
    CheckoutRequest,
    CheckoutResponse,
    OrderActivities,
    OrderOut,
    OrderPage,
    ProductCreate,
    ProductOut,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from .status_update import update_order_status

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables on startup if they don't exist.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Storefront order service")


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Database errors the service functions did not translate still get a JSON body.
@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    error = OrderServiceError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/")
@app.get("/health")
def root():
    """Health check endpoint."""
    return {"message": "Order service is running"}


# --- Catalogue ---
@app.post("/api/v1/products", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return catalog.create_product(db, data)


@app.get("/api/v1/products", response_model=List[ProductOut])
def list_products(db: Session = Depends(get_db)):
    return catalog.list_products(db)


# --- Checkout ---
@app.post("/api/v1/checkout", response_model=CheckoutResponse)
def place_order(req: CheckoutRequest, db: Session = Depends(get_db)):
    order = checkout.place_order(db, req)
    return CheckoutResponse(
        order_id=order.id, status=order.status, total=order.total, message="Order created successfully"
    )


# Retrieves a single order by its ID.
@app.get("/api/v1/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return catalog.get_order(db, order_id)


# --- Admin: orders ---
@app.get("/api/v1/admin/orders", response_model=OrderPage)
def list_orders(
    page: int = Query(1),
    limit: int = Query(20),
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
):
    return catalog.list_orders(db, page=page, limit=limit, status=status)


@app.get("/api/v1/admin/orders/{order_id}", response_model=OrderOut)
def get_admin_order(order_id: str, db: Session = Depends(get_db), admin: AdminUser = Depends(get_current_admin)):
    return catalog.get_order(db, order_id)


@app.put("/api/v1/admin/orders/{order_id}/status", response_model=StatusUpdateResponse)
def put_order_status(
    order_id: str,
    req: StatusUpdateRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
    producer=Depends(get_producer),
):
    result = update_order_status(db, order_id, admin.id, req, idempotency_key=idempotency_key)
    order = OrderOut.model_validate(result.order)

    if result.idempotent:
        return StatusUpdateResponse(message="Order status already updated (idempotent)", order=order, idempotent=True)

    producer.publish_event(
        {
            "order_id": order.id,
            "from_status": result.from_status.value,
            "to_status": order.status.value,
            "admin_id": admin.id,
            "note": req.note,
            "restocked": [line.model_dump() for line in result.restocked] if result.restocked is not None else None,
        },
        routing_key="order.status_changed",
    )
    return StatusUpdateResponse(
        message="Order status updated successfully", order=order, restocked=result.restocked
    )


@app.get("/api/v1/admin/orders/{order_id}/activities", response_model=OrderActivities)
def get_order_activities(order_id: str, db: Session = Depends(get_db), admin: AdminUser = Depends(get_current_admin)):
    return audit_trail.get_order_activities(db, order_id)
