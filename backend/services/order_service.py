"""
Order service — applies state-machine transitions and shapes order data
for the API.

A transition is one conditional write guarded by the set of states from
which the target is reachable. When the guard rejects the write the call
is a logged no-op; only operational callers (change_status) turn that
into an InvalidTransition error.
"""

import logging
from dataclasses import dataclass

from db_models import Order, OrderItem
from domain.enums import OrderStatus, UserRole
from domain.errors import InvalidInput, InvalidTransition, NotFoundError, PermissionDeniedError
from domain.state_machine import allowed_sources, parse_status
from services.order_store import OrderStore
from services.status_projection import project_status
from utils.money import format_money

logger = logging.getLogger(__name__)


# Targets each operational role may request. accepted is set only by a
# confirmed payment on the webhook path, never through this table.
PAYMENT_ONLY_TARGETS = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})

ROLE_TARGETS: dict[UserRole, frozenset[OrderStatus]] = {
    UserRole.SHOP_OWNER: frozenset({
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.CANCELLED,
    }),
    UserRole.DRIVER: frozenset({OrderStatus.PICKED_UP, OrderStatus.DELIVERED}),
    UserRole.ADMIN: frozenset(OrderStatus) - PAYMENT_ONLY_TARGETS,
}


@dataclass(frozen=True)
class TransitionResult:
    order_id: str
    target: OrderStatus
    applied: bool
    found: bool
    current: OrderStatus | None = None


async def transition_order(
    store: OrderStore,
    order_id: str,
    target,
    *,
    reason: str = "",
) -> TransitionResult:
    """
    Move an order to `target` if the stored status allows it.

    Safe under concurrent and repeated calls: the guard is evaluated by the
    store inside the same UPDATE that writes the new status.
    """
    target = parse_status(target)
    applied = await store.conditional_update_status(order_id, allowed_sources(target), target)

    order = await store.get(order_id)
    if order is None:
        logger.warning(f"Transition to {target.value} for unknown order {order_id} ({reason})")
        return TransitionResult(order_id=order_id, target=target, applied=False, found=False)

    current = parse_status(order.status)
    if applied:
        logger.info(f"Order {order_id} → {target.value} ({reason})")
    else:
        logger.info(
            f"Order {order_id}: transition {current.value} → {target.value} "
            f"rejected by guard, no-op ({reason})"
        )
    return TransitionResult(
        order_id=order_id,
        target=target,
        applied=applied,
        found=True,
        current=current,
    )


def check_role_may_set(role: str, target: OrderStatus) -> None:
    try:
        user_role = UserRole(role)
    except ValueError:
        raise PermissionDeniedError(f"Unknown role: {role}")
    if target not in ROLE_TARGETS.get(user_role, frozenset()):
        raise PermissionDeniedError(
            f"Role {user_role.value} may not set status {target.value}"
        )


async def change_status(
    store: OrderStore,
    order_id: str,
    target,
    *,
    actor_id: str,
    role: str,
    shop_id: str | None = None,
) -> Order:
    """
    Operational status change (shop owner, driver or admin).

    Raises NotFoundError for unknown orders and InvalidTransition when the
    state machine refuses the move.
    """
    try:
        target = OrderStatus(target)
    except ValueError:
        raise InvalidInput(f"Unknown status: {target}", field="status")
    check_role_may_set(role, target)
    if role == UserRole.SHOP_OWNER.value and not shop_id:
        raise PermissionDeniedError("Shop owner is not scoped to a shop")

    order = await store.get(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    if role == UserRole.SHOP_OWNER.value and order.shop_id != shop_id:
        raise PermissionDeniedError("Order belongs to a different shop")

    result = await transition_order(store, order_id, target, reason=f"{role}:{actor_id}")
    if not result.applied:
        raise InvalidTransition(order_id, result.current.value, target.value)

    return await store.get(order_id)


def serialize_item(item: OrderItem) -> dict:
    return {
        "product_id": item.product_id,
        "quantity": item.quantity,
        "price": format_money(item.price_cents),
        "line_total": format_money(item.price_cents * item.quantity),
    }


def serialize_order(order: Order, items: list[OrderItem] | None = None) -> dict:
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "shop_id": order.shop_id,
        "driver_id": order.driver_id,
        "status": order.status,
        "total": format_money(order.total_cents),
        "delivery_fee": format_money(order.delivery_fee_cents),
        "currency": order.currency,
        "delivery_address": order.delivery_address,
        "charge_id": order.charge_id,
        "hosted_url": order.hosted_url,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
        "tracker": project_status(order.status).as_dict(),
    }
    if items is not None:
        data["items"] = [serialize_item(i) for i in items]
    return data
