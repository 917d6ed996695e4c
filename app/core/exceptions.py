# app/core/exceptions.py

from typing import Any, Dict, Optional


class PointsError(Exception):
    """Base class for points-domain errors. `code` is a stable machine-readable key."""

    code = "POINTS_ERROR"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}


class ValidationError(PointsError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InsufficientBalanceError(PointsError):
    code = "INSUFFICIENT_POINTS"
    status_code = 409

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Insufficient points. Available: {available}, Requested: {requested}",
            details={"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class NotFoundError(PointsError):
    code = "NOT_FOUND"
    status_code = 404


class DuplicateEarningError(PointsError):
    """Raised inside the order event handlers when points were already earned for an order."""

    code = "DUPLICATE_EARNING"
    status_code = 409

    def __init__(self, order_id: str):
        super().__init__(f"Points already earned for order {order_id}", details={"order_id": order_id})
        self.order_id = order_id
