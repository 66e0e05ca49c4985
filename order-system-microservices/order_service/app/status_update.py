"""
Order status updates.

``update_order_status`` is the only code path that writes an order's
status. It validates the transition, records an audit activity and, for
cancellations, gives the order's units back to inventory, all in one
database transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .exceptions import ConcurrentUpdate, InvalidTransition, OrderNotFound, OrderServiceError, OrderUpdateFailed
from .models import Order, OrderActivity, Product, utcnow
from .order_status import (
    OrderStatus,
    calculate_restock_quantities,
    normalize_status,
    validate_status_transition,
)
from .schemas import CancelTransition, RestockLine, StatusUpdateRequest, build_transition

logger = logging.getLogger(__name__)

# Replays of the same transition inside this window are answered from the current state.
IDEMPOTENCY_WINDOW = timedelta(minutes=5)


@dataclass
class StatusUpdateResult:
    order: Order
    from_status: OrderStatus
    restocked: Optional[List[RestockLine]] = None
    idempotent: bool = False


def _load_order(db: Session, order_id: str) -> Optional[Order]:
    return db.execute(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    ).scalar_one_or_none()


def find_recent_duplicate(
    db: Session,
    order_id: str,
    admin_id: str,
    to_status: OrderStatus,
    note: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[OrderActivity]:
    """Latest matching activity if it is younger than IDEMPOTENCY_WINDOW.

    Matches on (order, admin, target status, note); the idempotency key
    itself is not stored, so two different keys for the same transition
    are treated as the same request.
    """
    note_clause = OrderActivity.note == note if note else OrderActivity.note.is_(None)
    latest = db.execute(
        select(OrderActivity)
        .where(
            OrderActivity.order_id == order_id,
            OrderActivity.admin_id == admin_id,
            OrderActivity.to_status == to_status.value,
            note_clause,
        )
        .order_by(OrderActivity.timestamp.desc(), OrderActivity.id.desc())
        .limit(1)
    ).scalar_one_or_none()

    if latest is None:
        return None
    now = now or utcnow()
    return latest if latest.timestamp > now - IDEMPOTENCY_WINDOW else None


def was_restocked(db: Session, order_id: str) -> bool:
    """An earlier cancellation already put the units back."""
    return (
        db.execute(
            select(OrderActivity.id)
            .where(OrderActivity.order_id == order_id, OrderActivity.to_status == OrderStatus.CANCELLED.value)
            .limit(1)
        ).first()
        is not None
    )


def update_order_status(
    db: Session,
    order_id: str,
    admin_id: str,
    request: StatusUpdateRequest,
    idempotency_key: Optional[str] = None,
) -> StatusUpdateResult:
    """Apply one status transition; database failures anywhere surface as OrderUpdateFailed."""
    try:
        return _apply_status_update(db, order_id, admin_id, request, idempotency_key)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error updating status of order %s", order_id)
        raise OrderUpdateFailed() from exc


def _apply_status_update(
    db: Session,
    order_id: str,
    admin_id: str,
    request: StatusUpdateRequest,
    idempotency_key: Optional[str],
) -> StatusUpdateResult:
    note = request.note or None

    # 1. Idempotency check: a replay of a fresh transition returns the current order.
    if idempotency_key:
        duplicate = find_recent_duplicate(db, order_id, admin_id, request.status, note)
        if duplicate is not None:
            order = _load_order(db, order_id)
            if order is None:
                raise OrderNotFound(order_id)
            logger.info(
                "Order %s already moved to %s by admin %s at %s (idempotent replay)",
                order_id, request.status.value, admin_id, duplicate.timestamp.isoformat(),
            )
            return StatusUpdateResult(order=order, from_status=normalize_status(order.status), idempotent=True)

    # 2. Load the order with its items.
    order = _load_order(db, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    observed_status = order.status
    current_status = normalize_status(observed_status)

    # 3. Validate the transition.
    result = validate_status_transition(current_status, request.status)
    if not result.allowed:
        logger.warning("Rejected transition for order %s: %s", order_id, result.error)
        raise InvalidTransition(result.error, current_status.value, request.status.value)

    # 4. Status-specific required fields.
    transition = build_transition(request)

    # 5. Work out what goes back to inventory.
    restock = None
    if isinstance(transition, CancelTransition) and transition.should_restock:
        restock = calculate_restock_quantities(order.items, was_restocked(db, order_id))

    # 6. One transaction: re-check, update, audit, restock.
    try:
        locked_status = db.execute(
            select(Order.status).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if locked_status is None:
            raise OrderNotFound(order_id)
        if locked_status != observed_status:
            raise ConcurrentUpdate(order_id)

        now = utcnow()
        values = dict(transition.order_fields(), status=transition.status, updated_at=now)
        updated = db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == observed_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount != 1:
            raise ConcurrentUpdate(order_id)

        db.add(
            OrderActivity(
                order_id=order_id,
                admin_id=admin_id,
                from_status=current_status.value,
                to_status=transition.status.value,
                note=note,
                timestamp=now,
            )
        )

        for product_id, quantity in (restock or {}).items():
            restocked_row = db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(inventory=Product.inventory + quantity)
                .execution_options(synchronize_session=False)
            )
            if restocked_row.rowcount != 1:
                logger.error("Product %s missing while restocking order %s", product_id, order_id)
                raise OrderUpdateFailed()

        db.commit()
    except OrderServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Error updating status of order %s", order_id)
        raise OrderUpdateFailed() from exc

    logger.info(
        "Order %s moved %s -> %s by admin %s",
        order_id, current_status.value, transition.status.value, admin_id,
    )

    # 7. Committed objects are expired, so this reads the new row.
    db.refresh(order)
    restocked = None
    if restock is not None:
        restocked = [RestockLine(product_id=pid, quantity=qty) for pid, qty in restock.items()]
    return StatusUpdateResult(order=order, from_status=current_status, restocked=restocked)
