"""
Input validation utilities for the order engine.

Provides reusable validators for order ids and checkout inputs.
"""
import uuid

from fastapi import Path

from domain.errors import InvalidInput


def validate_order_id(order_id: str) -> str:
    """
    Validate an order id (uuid4 string).

    Returns:
        The canonical lowercase form of the id

    Raises:
        InvalidInput(400) if the id is missing or not a UUID
    """
    if not order_id:
        raise InvalidInput("Order id is required", field="order_id")
    try:
        return str(uuid.UUID(order_id))
    except (ValueError, AttributeError, TypeError):
        raise InvalidInput(f"Invalid order id: {order_id[:40]}", field="order_id")


def validated_order_id(order_id: str = Path(..., description="Order id")) -> str:
    """FastAPI dependency for validating order id path parameters."""
    return validate_order_id(order_id)


def validate_delivery_address(address: str | None) -> str:
    address = (address or "").strip()
    if not address:
        raise InvalidInput("Delivery address is required", field="delivery_address")
    return address
