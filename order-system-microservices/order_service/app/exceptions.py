"""Order service exceptions.

Raised by the service functions when a business rule or the database
rejects a request. The API layer renders them as JSON errors using
``status_code`` and ``to_dict``.
"""

from typing import Any, Dict, List, Optional


class OrderServiceError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message or self.error

    def extra(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.extra())
        return body


class OrderNotFound(OrderServiceError):
    status_code = 404
    error = "Order not found"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id

    def extra(self):
        return {"orderId": self.order_id}


class InvalidTransition(OrderServiceError):
    status_code = 400
    error = "Invalid status transition"

    def __init__(self, message: str, current_status: str, requested_status: str):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status

    def extra(self):
        return {"currentStatus": self.current_status, "requestedStatus": self.requested_status}


class MissingRequiredField(OrderServiceError):
    status_code = 400
    error = "Missing required field"

    def __init__(self, status: str, fields: List[str]):
        super().__init__(f"{' and '.join(fields)} required for {status} status")
        self.status = status
        self.fields = fields

    def extra(self):
        return {"fields": self.fields}


class ConcurrentUpdate(OrderServiceError):
    status_code = 409
    error = "Concurrent update detected"

    def __init__(self, order_id: str):
        super().__init__("Order was modified by another admin. Please refresh and try again.")
        self.order_id = order_id


class OrderUpdateFailed(OrderServiceError):
    """Unexpected persistence failure; details stay in the logs."""

    status_code = 500
    error = "Failed to update order status"


class ActivitiesUnavailable(OrderServiceError):
    status_code = 500
    error = "Failed to fetch order activities"


class ProductUnavailable(OrderServiceError):
    status_code = 400
    error = "Product not found"


class InsufficientInventory(OrderServiceError):
    status_code = 400
    error = "Insufficient inventory"


class DuplicateProduct(OrderServiceError):
    status_code = 400
    error = "Slug already exists"


class AdminNotAuthenticated(OrderServiceError):
    status_code = 401
    error = "Unauthorized"
