"""
Checkout — turns a cart into a pending order plus a hosted charge.

Flow:
    1. Resolve cart lines against the catalog and price them
    2. Insert order + items atomically, keyed by the checkout idempotency key
    3. Request a hosted charge carrying the order id in its metadata
    4. Attach the charge to the order and return the payer redirect

A retried checkout with the same key returns the order created the first
time. If the processor fails after step 2 the order stays pending with no
charge; it never advances, and a retry with the same key requests the
charge again.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from config import settings
from db_models import Order, OrderItem, new_order_id
from domain.constants import (
    DEFAULT_USER_NAME,
    MAX_DELIVERY_FEE,
    METADATA_ORDER_ID,
    METADATA_USER_ID,
    METADATA_USER_NAME,
)
from domain.enums import OrderStatus
from domain.errors import ChargeCreationError, ConflictError, InvalidInput
from services.cart_service import CartLine, order_shop_id, order_total_cents
from services.catalog_service import SqlCatalog
from services.order_store import OrderStore
from services.payment_processor import ChargeRequest, PaymentProcessor
from utils.money import from_cents, to_cents, to_decimal
from utils.validators import validate_delivery_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    charge_id: str
    hosted_url: str
    total: Decimal
    status: str
    replayed: bool = False

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "charge_id": self.charge_id,
            "hosted_redirect_url": self.hosted_url,
            "total": str(self.total),
            "status": self.status,
            "replayed": self.replayed,
        }


def cart_fingerprint(
    lines: list[CartLine],
    delivery_address: str,
    delivery_fee_cents: int,
) -> str:
    """sha256 over the canonical cart (order-independent) and delivery details."""
    canonical = ",".join(
        sorted(f"{line.product_id}x{line.quantity}" for line in lines)
    )
    raw = f"{canonical}|{delivery_address}|{delivery_fee_cents}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def derive_idempotency_key(
    user_id: str,
    request_hash: str,
    now: datetime,
    window_seconds: int | None = None,
) -> str:
    """
    Key used when the client sends no Idempotency-Key header.

    Identical checkouts by the same user inside one time bucket collapse
    into a single order; the same cart in a later bucket is a new order.
    """
    window = window_seconds or settings.checkout_idempotency_window_seconds
    bucket = int(now.timestamp()) // window
    raw = f"{user_id}|{request_hash}|{bucket}"
    return "auto_" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def default_redirect_urls(order_id: str) -> tuple[str, str]:
    base = settings.public_base_url.rstrip("/")
    return (
        f"{base}/orders/{order_id}/confirmation",
        f"{base}/checkout?canceled=true",
    )


def build_charge_request(
    order: Order,
    *,
    user_name: str,
    redirect_url: str | None,
    cancel_url: str | None,
) -> ChargeRequest:
    default_redirect, default_cancel = default_redirect_urls(order.id)
    return ChargeRequest(
        name=f"{settings.store_name} Order #{order.id}",
        description=f"Payment for your order from {settings.store_name}",
        amount=from_cents(order.total_cents),
        currency=order.currency,
        metadata={
            METADATA_ORDER_ID: order.id,
            METADATA_USER_ID: order.user_id,
            METADATA_USER_NAME: user_name,
        },
        redirect_url=redirect_url or default_redirect,
        cancel_url=cancel_url or default_cancel,
    )


def _result(order: Order, replayed: bool) -> CheckoutResult:
    return CheckoutResult(
        order_id=order.id,
        charge_id=order.charge_id,
        hosted_url=order.hosted_url,
        total=from_cents(order.total_cents),
        status=order.status,
        replayed=replayed,
    )


async def create_order_and_charge(
    store: OrderStore,
    processor: PaymentProcessor,
    catalog: SqlCatalog,
    *,
    items: list[dict],
    user_id: str,
    delivery_address: str,
    delivery_fee=None,
    user_name: str | None = None,
    idempotency_key: str | None = None,
    redirect_url: str | None = None,
    cancel_url: str | None = None,
    now: datetime | None = None,
) -> CheckoutResult:
    """
    Create the pending order for a checkout and request its hosted charge.

    Raises:
        InvalidInput (and subclasses) for bad carts or fields
        ConflictError if the idempotency key was used for a different cart
        PersistenceError if the order store fails (nothing is left behind)
        ChargeCreationError if the processor fails (order stays pending)
    """
    if not user_id:
        raise InvalidInput("User id is required", field="user_id")
    delivery_address = validate_delivery_address(delivery_address)

    try:
        fee = to_decimal(settings.default_delivery_fee if delivery_fee is None else delivery_fee)
    except ValueError as e:
        raise InvalidInput(str(e), field="delivery_fee")
    if fee < 0:
        raise InvalidInput("Delivery fee cannot be negative", field="delivery_fee")
    if fee > Decimal(MAX_DELIVERY_FEE):
        raise InvalidInput(f"Delivery fee cannot exceed {MAX_DELIVERY_FEE}", field="delivery_fee")
    fee_cents = to_cents(fee)

    lines = await catalog.resolve(items)
    shop_id = order_shop_id(lines)
    total_cents = order_total_cents(lines, fee_cents)

    now = now or datetime.now(timezone.utc)
    request_hash = cart_fingerprint(lines, delivery_address, fee_cents)
    key = idempotency_key or derive_idempotency_key(user_id, request_hash, now)

    order = Order(
        id=new_order_id(),
        user_id=user_id,
        shop_id=shop_id,
        status=OrderStatus.PENDING.value,
        total_cents=total_cents,
        delivery_fee_cents=fee_cents,
        currency=settings.currency,
        delivery_address=delivery_address,
        idempotency_key=key,
        request_hash=request_hash,
        created_at=now,
        updated_at=now,
    )
    order_items = [
        OrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            price_cents=line.price_cents,
            created_at=now,
        )
        for line in lines
    ]

    order, created = await store.insert_order_if_absent(order, order_items)
    if created:
        logger.info(
            f"Order {order.id} created (user={user_id}, shop={shop_id}, "
            f"total={from_cents(total_cents)} {order.currency})"
        )
    else:
        if order.user_id != user_id:
            raise ConflictError("Idempotency key already used for a different checkout")
        if order.request_hash != request_hash:
            raise ConflictError(
                "Idempotency key already used for a different checkout",
                details={"order_id": order.id},
            )
        logger.info(f"Checkout replay for order {order.id} (key={key[:16]}...)")
        if order.charge_id and order.hosted_url:
            return _result(order, replayed=True)
        if order.status != OrderStatus.PENDING.value:
            raise ConflictError(
                f"Order {order.id} is no longer awaiting payment",
                details={"order_id": order.id, "status": order.status},
            )

    charge_request = build_charge_request(
        order,
        user_name=user_name or DEFAULT_USER_NAME,
        redirect_url=redirect_url,
        cancel_url=cancel_url,
    )
    try:
        charge = await processor.create_charge(charge_request)
    except ChargeCreationError:
        logger.error(f"Charge creation failed for order {order.id}; order remains pending")
        raise

    attached = await store.attach_charge(
        order.id,
        charge_id=charge.charge_id,
        charge_code=charge.code,
        hosted_url=charge.hosted_url,
    )
    stored = await store.get(order.id)
    if not attached:
        logger.warning(
            f"Order {order.id} already had a charge attached; "
            f"charge {charge.charge_id} left unused"
        )
    else:
        logger.info(f"Charge {charge.charge_id} created for order {order.id}")

    return _result(stored, replayed=not created)
