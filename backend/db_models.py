"""
SQLAlchemy ORM models for the order engine.

Tables:
    products        — read-only view of the catalog collaborator
    orders          — one row per checkout attempt, status driven by the state machine
    order_items     — line items with the unit price captured at order time
    webhook_events  — ledger of processed payment-processor events

Money columns hold integer cents (1 USD = 100) so totals never drift.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import OrderStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return str(uuid.uuid4())


class Product(Base):
    """Catalog products as seen by checkout (owned by the catalog service)."""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_order_id)
    shop_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_order_id)
    user_id = Column(String(64), nullable=False, index=True)
    shop_id = Column(String(36), nullable=False, index=True)
    driver_id = Column(String(64), nullable=True, index=True)  # set by fulfillment
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    total_cents = Column(Integer, nullable=False)  # items + delivery fee, fixed at creation
    delivery_fee_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="USD")
    delivery_address = Column(Text, nullable=False)

    # Checkout idempotency (one order per checkout attempt)
    idempotency_key = Column(String(128), nullable=False, unique=True, index=True)
    request_hash = Column(String(64), nullable=True)  # sha256 hex of the canonical cart

    # Hosted charge correlation
    charge_id = Column(String(64), nullable=True, index=True)
    charge_code = Column(String(32), nullable=True)
    hosted_url = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    items = relationship("OrderItem", back_populates="order", lazy="select")

    __table_args__ = (
        # For user order history: filter by user_id, order by created_at DESC
        Index("ix_orders_user_created", "user_id", "created_at"),
        # For shop dashboards: filter by shop_id and status
        Index("ix_orders_shop_status", "shop_id", "status"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)  # unit price captured at order time
    created_at = Column(DateTime(timezone=True), default=utc_now)

    order = relationship("Order", back_populates="items")


class WebhookEvent(Base):
    """
    Ledger of payment-processor events that were handled.

    Redelivered events with a known event_id are acknowledged without
    touching the order again. The state-machine guard still protects
    events that arrive without an id.
    """

    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    order_id = Column(String(36), nullable=True, index=True)
    outcome = Column(String(20), nullable=False)  # applied | noop | ignored
    received_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint("event_id", name="uq_webhook_event_id"),
    )
