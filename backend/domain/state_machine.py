"""
Order state machine — the transition table shared by checkout, webhooks
and operational status changes.

    pending → accepted → preparing → ready → picked_up → delivered
        └──────────┴──────────┴────────┴──────────┴──→ cancelled

delivered and cancelled are terminal. The table is pure data; the atomic
conditional write that applies a transition lives in the order store.
"""

from domain.enums import OrderStatus
from domain.errors import UnknownStatus


_FORWARD = {
    OrderStatus.PENDING: OrderStatus.ACCEPTED,
    OrderStatus.ACCEPTED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.PICKED_UP,
    OrderStatus.PICKED_UP: OrderStatus.DELIVERED,
}

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    status: (
        frozenset()
        if status in TERMINAL_STATES
        else frozenset({_FORWARD[status], OrderStatus.CANCELLED})
    )
    for status in OrderStatus
}


def parse_status(value) -> OrderStatus:
    """Coerce a stored/requested status, failing loudly on unknown values."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise UnknownStatus(str(value))


def can_transition(current, target) -> bool:
    return parse_status(target) in TRANSITIONS[parse_status(current)]


def is_terminal(status) -> bool:
    return parse_status(status) in TERMINAL_STATES


def allowed_targets(current) -> frozenset[OrderStatus]:
    return TRANSITIONS[parse_status(current)]


def allowed_sources(target) -> frozenset[OrderStatus]:
    """States from which `target` is a valid next step (the CAS guard set)."""
    target = parse_status(target)
    return frozenset(s for s, nexts in TRANSITIONS.items() if target in nexts)
