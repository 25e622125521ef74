"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. Validation errors never reach the state machine; a rejected
transition on the webhook path is a no-op, not an exception.
"""
from fastapi import HTTPException, status

from domain.constants import MAX_LINE_QUANTITY


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


# ── Input validation (400, not retried) ────────────────────────────


class InvalidInput(DomainError):
    """Bad or missing checkout fields."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class EmptyCart(InvalidInput):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidQuantity(InvalidInput):
    def __init__(self, product_id: str, quantity: int):
        if quantity < 1:
            message = f"Quantity must be at least 1 (got {quantity})"
        else:
            message = f"Quantity must be at most {MAX_LINE_QUANTITY} (got {quantity})"
        super().__init__(
            message,
            field="quantity",
            details={"product_id": product_id, "quantity": quantity},
        )


class MixedShopCart(InvalidInput):
    def __init__(self, shop_ids: list[str]):
        super().__init__(
            "All items in an order must come from the same shop",
            details={"shop_ids": shop_ids},
        )


class ProductUnavailable(InvalidInput):
    def __init__(self, product_id: str):
        super().__init__(
            f"Product {product_id} not available",
            details={"product_id": product_id},
        )


# ── Webhook intake (400, sender decides on retries) ────────────────


class InvalidSignature(DomainError):
    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST)


class MalformedEvent(DomainError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


# ── Access & lookup ────────────────────────────────────────────────


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class PermissionDeniedError(DomainError):
    """Permission denied (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UnauthorizedError(DomainError):
    """Unauthorized access (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class InvalidTransition(ConflictError):
    """Operational status change that the state machine does not allow."""
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            f"Cannot move order {order_id} from {current} to {target}",
            details={"order_id": order_id, "current": current, "target": target},
        )


class RateLimitError(DomainError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str = "Rate limit exceeded", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, details=details)


# ── Infrastructure ─────────────────────────────────────────────────


class PersistenceError(DomainError):
    """Order store failure (503). Transient; callers retry."""
    def __init__(self, message: str = "Order store unavailable", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class ChargeCreationError(DomainError):
    """Payment processor refused or failed to create a charge (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details)


class UnknownStatus(DomainError):
    """Stored status outside the known set — data corruption (500)."""
    def __init__(self, value: str):
        super().__init__(
            f"Unknown order status: {value!r}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"status": value},
        )
