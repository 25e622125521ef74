"""
In-memory collaborators and payload helpers for service-level tests.

InMemoryOrderStore performs each check-and-write without awaiting in
between, so it is atomic with respect to other coroutines; that is what
lets the concurrency tests drive many webhooks through asyncio.gather.
"""
import itertools
import json

from db_models import Order, OrderItem, WebhookEvent, utc_now
from domain.constants import MAX_LINE_QUANTITY
from domain.enums import OrderStatus
from domain.errors import EmptyCart, InvalidQuantity, PersistenceError, ProductUnavailable
from services.cart_service import CartLine
from services.order_store import OrderStore
from services.webhook_service import compute_signature

WEBHOOK_SECRET = "test-webhook-secret"


class InMemoryOrderStore(OrderStore):
    def __init__(self):
        self.orders: dict[str, Order] = {}
        self.items: dict[str, list[OrderItem]] = {}
        self.events: dict[str, WebhookEvent] = {}
        self.status_writes = 0
        self._item_ids = itertools.count(1)

    async def insert_order_if_absent(self, order, items):
        for existing in self.orders.values():
            if existing.idempotency_key == order.idempotency_key:
                return existing, False
        self.orders[order.id] = order
        for item in items:
            item.id = next(self._item_ids)
            item.order_id = order.id
        self.items[order.id] = list(items)
        return order, True

    async def conditional_update_status(self, order_id, from_statuses, to_status):
        order = self.orders.get(order_id)
        sources = {OrderStatus(s).value for s in from_statuses}
        if order is None or order.status not in sources:
            return False
        order.status = OrderStatus(to_status).value
        order.updated_at = utc_now()
        self.status_writes += 1
        return True

    async def get(self, order_id):
        return self.orders.get(order_id)

    async def get_items(self, order_id):
        return list(self.items.get(order_id, []))

    async def attach_charge(self, order_id, *, charge_id, charge_code, hosted_url):
        order = self.orders.get(order_id)
        if order is None or order.charge_id is not None:
            return False
        order.charge_id = charge_id
        order.charge_code = charge_code
        order.hosted_url = hosted_url
        return True

    async def list_for_user(self, user_id, *, limit, offset):
        mine = [o for o in self.orders.values() if o.user_id == user_id]
        mine.sort(key=lambda o: o.created_at, reverse=True)
        return mine[offset:offset + limit]

    async def has_processed_event(self, event_id):
        return event_id in self.events

    async def record_event(self, *, event_id, event_type, order_id, outcome):
        if event_id in self.events:
            return False
        self.events[event_id] = WebhookEvent(
            event_id=event_id, event_type=event_type, order_id=order_id, outcome=outcome
        )
        return True


class BrokenOrderStore(InMemoryOrderStore):
    """Fails every status write, as an unreachable database would."""

    async def conditional_update_status(self, order_id, from_statuses, to_status):
        raise PersistenceError("Order store failure during conditional_update_status")


class FakeCatalog:
    """products: {product_id: (shop_id, price_cents, is_available)}"""

    def __init__(self, products: dict[str, tuple[str, int, bool]]):
        self.products = products

    async def resolve(self, items):
        if not items:
            raise EmptyCart()
        lines = []
        for i in items:
            pid = str(i["product_id"])
            qty = int(i.get("quantity", 1))
            if not 1 <= qty <= MAX_LINE_QUANTITY:
                raise InvalidQuantity(pid, qty)
            entry = self.products.get(pid)
            if entry is None or not entry[2]:
                raise ProductUnavailable(pid)
            lines.append(CartLine(product_id=pid, shop_id=entry[0], price_cents=entry[1], quantity=qty))
        return lines


def pending_order(order_id: str, *, user_id: str = "user-1", status: str = "pending") -> Order:
    """Fully populated transient Order (column defaults only apply on flush)."""
    now = utc_now()
    return Order(
        id=order_id,
        user_id=user_id,
        shop_id="shop-1",
        driver_id=None,
        status=status,
        total_cents=5000,
        delivery_fee_cents=500,
        currency="USD",
        delivery_address="1 Main St",
        idempotency_key=f"key-{order_id}",
        request_hash=None,
        charge_id=None,
        charge_code=None,
        hosted_url=None,
        created_at=now,
        updated_at=now,
    )


def charge_event(event_type: str, order_id: str | None, *, event_id: str | None = None,
                 envelope: bool = True) -> bytes:
    """Raw webhook body in the processor's shape."""
    event = {"type": event_type, "data": {"metadata": {}}}
    if order_id is not None:
        event["data"]["metadata"]["order_id"] = order_id
    if event_id is not None:
        event["id"] = event_id
    body = {"event": event} if envelope else event
    return json.dumps(body).encode("utf-8")


def sign(raw_body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(raw_body, secret)
