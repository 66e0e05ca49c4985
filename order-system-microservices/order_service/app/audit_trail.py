import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .exceptions import ActivitiesUnavailable, OrderNotFound
from .models import Order, OrderActivity
from .schemas import ActivityOut, OrderActivities

logger = logging.getLogger(__name__)


def get_order_activities(db: Session, order_id: str) -> OrderActivities:
    """Status history of an order, oldest first, with the acting admin of each change."""
    try:
        order = db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)

        activities = db.execute(
            select(OrderActivity)
            .options(joinedload(OrderActivity.admin))
            .where(OrderActivity.order_id == order_id)
            .order_by(OrderActivity.timestamp.asc(), OrderActivity.id.asc())
        ).scalars().all()

        return OrderActivities(
            order_id=order.id,
            current_status=order.status,
            activities=[ActivityOut.model_validate(activity) for activity in activities],
        )
    except SQLAlchemyError as exc:
        logger.exception("Error fetching activities of order %s", order_id)
        raise ActivitiesUnavailable() from exc
