"""
Domain enums for order status and payment-processor event types.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ChargeEventType(str, Enum):
    """Hosted-charge webhook event types the engine acts on."""
    CONFIRMED = "charge:confirmed"
    FAILED = "charge:failed"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    SHOP_OWNER = "shop_owner"
    DRIVER = "driver"
    ADMIN = "admin"
