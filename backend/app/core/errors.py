"""
Error taxonomy for the settlement engine.

Every error carries a human message plus a ``details`` dict with enough
context (available stock, required amount, coupon reason...) for the
register to render an actionable message. ``status_code`` is the HTTP
status the API layer maps the error to.
"""
from enum import Enum
from typing import Any, Dict, Optional


class PosError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PosError):
    """Malformed or missing input (no items, no payments, bad weight...)."""

    status_code = 400


class NotFoundError(PosError):
    """Unknown product, customer, coupon or transaction."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "id": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class InsufficientStockError(PosError):
    status_code = 409

    def __init__(self, product_id: str, name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}",
            {
                "product_id": product_id,
                "name": name,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested


class CapacityExceededError(PosError):
    status_code = 409

    def __init__(self, product_id: str, current: int, capacity: int, requested: int):
        super().__init__(
            f"Stock for {product_id} would exceed capacity of {capacity} "
            f"(current: {current}, requested: {requested})",
            {
                "product_id": product_id,
                "current_stock": current,
                "capacity": capacity,
                "requested": requested,
                "available_capacity": max(0, capacity - current),
            },
        )


class InsufficientPaymentError(PosError):
    status_code = 402

    def __init__(self, required, provided):
        super().__init__(
            "Insufficient payment amount",
            {"required": str(required), "provided": str(provided)},
        )
        self.required = required
        self.provided = provided


class CouponRejection(str, Enum):
    """Machine-readable reason a coupon cannot be redeemed."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    USAGE_EXCEEDED = "usage_exceeded"
    CUSTOMER_USAGE_EXCEEDED = "customer_usage_exceeded"
    TIER_TOO_LOW = "tier_too_low"
    MEMBERSHIP_REQUIRED = "membership_required"
    DAY_RESTRICTED = "day_restricted"
    TIME_RESTRICTED = "time_restricted"
    BELOW_MINIMUM_PURCHASE = "below_minimum_purchase"
    NOT_STACKABLE = "not_stackable"


class InvalidCouponError(PosError):
    status_code = 400

    def __init__(self, code: str, reason: CouponRejection, message: Optional[str] = None):
        super().__init__(
            message or f"Coupon {code} cannot be used: {reason.value}",
            {"code": code, "reason": reason.value},
        )
        self.code = code
        self.reason = reason


class InsufficientPointsError(PosError):
    status_code = 409

    def __init__(self, available: int, requested: int):
        super().__init__(
            "Insufficient points",
            {"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class PermissionDeniedError(PosError):
    status_code = 403

    def __init__(self, permission: str):
        super().__init__(
            f"Access denied. Required permission: {permission}",
            {"permission": permission},
        )
        self.permission = permission


class InvalidTransitionError(PosError):
    status_code = 409

    def __init__(self, transaction_id: str, from_status: str, to_status: str):
        super().__init__(
            f"Transaction {transaction_id} cannot transition from "
            f"'{from_status}' to '{to_status}'",
            {"transaction_id": transaction_id, "from": from_status, "to": to_status},
        )
