"""
Order status business rules.

Holds the order state machine and the restock calculation used when an
order is cancelled. Nothing in here touches the database.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    # CONFIRMED and FAILED are reached by payment/retry flows.
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.FAILED: frozenset({OrderStatus.PENDING}),
}

CANCEL_AFTER_SHIPPING_ERROR = "Cannot cancel order after shipping"


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    error: Optional[str] = None


def normalize_status(value) -> OrderStatus:
    """Parse a stored or requested status, ignoring case. Raises ValueError if unknown."""
    return OrderStatus(str(value.value if isinstance(value, OrderStatus) else value).strip().upper())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_next_statuses(status: OrderStatus) -> list:
    return sorted(ALLOWED_TRANSITIONS.get(status, frozenset()), key=lambda s: s.value)


def validate_status_transition(from_status: OrderStatus, to_status: OrderStatus) -> TransitionResult:
    """
    Decides whether an order may move from one status to another.

    Rules are checked in order and the first match wins:
    - cancelling a SHIPPED or DELIVERED order is rejected with a
      shipping-specific message (checked before the terminal rule so
      DELIVERED -> CANCELLED reports it too);
    - DELIVERED and CANCELLED are terminal;
    - anything else must appear in ALLOWED_TRANSITIONS.
    """
    if to_status == OrderStatus.CANCELLED and from_status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        return TransitionResult(allowed=False, error=CANCEL_AFTER_SHIPPING_ERROR)

    generic_error = f"Cannot transition from {from_status.value} to {to_status.value}"

    if is_terminal(from_status):
        return TransitionResult(allowed=False, error=generic_error)

    if to_status not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        return TransitionResult(allowed=False, error=generic_error)

    return TransitionResult(allowed=True)


def calculate_restock_quantities(items: Iterable, already_restocked: bool) -> Optional[Dict[str, int]]:
    """
    Sums the quantity to give back to inventory per product.

    Returns None when the order was already restocked, so callers can tell
    "nothing to do" apart from an order without items (empty dict).
    An order may list the same product more than once; those lines are
    aggregated.
    """
    if already_restocked:
        return None

    quantities: Dict[str, int] = {}
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities
