"""
Order store — the durable home of orders and the only shared mutable state.

Concurrency safety is delegated to the database: order creation is an
insert guarded by a unique idempotency key, and every status change is a
single conditional UPDATE (compare-and-set on the current status). No
in-process lock is held across any of these calls, so any number of
service instances may run side by side.

OrderStore is the interface the services depend on; SqlOrderStore is the
SQLAlchemy implementation used by the API.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem, WebhookEvent, utc_now
from domain.enums import OrderStatus
from domain.errors import PersistenceError

logger = logging.getLogger(__name__)


class OrderStore(ABC):
    """Storage capability required by checkout, webhooks and the state machine."""

    @abstractmethod
    async def insert_order_if_absent(
        self, order: Order, items: list[OrderItem]
    ) -> tuple[Order, bool]:
        """
        Insert an order and its items atomically.

        Returns (order, True) when inserted, or (existing, False) when an
        order with the same idempotency_key already exists.
        """
        ...

    @abstractmethod
    async def conditional_update_status(
        self,
        order_id: str,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
    ) -> bool:
        """Set status to to_status only if it currently is one of from_statuses."""
        ...

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    async def get_items(self, order_id: str) -> list[OrderItem]:
        ...

    @abstractmethod
    async def attach_charge(
        self,
        order_id: str,
        *,
        charge_id: str,
        charge_code: str | None,
        hosted_url: str,
    ) -> bool:
        """Record the hosted charge unless one is already attached."""
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, *, limit: int, offset: int) -> list[Order]:
        ...

    @abstractmethod
    async def has_processed_event(self, event_id: str) -> bool:
        ...

    @abstractmethod
    async def record_event(
        self,
        *,
        event_id: str,
        event_type: str,
        order_id: str | None,
        outcome: str,
    ) -> bool:
        """Add an event to the ledger; False if it was already recorded."""
        ...


class SqlOrderStore(OrderStore):
    """OrderStore over an AsyncSession. Each write commits its own transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Order store failure during {operation}: {e}")
            raise PersistenceError(f"Order store failure during {operation}")

    async def _get_by_key(self, idempotency_key: str) -> Order | None:
        res = await self.db.execute(
            select(Order)
            .where(Order.idempotency_key == idempotency_key)
            .execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def insert_order_if_absent(self, order, items):
        async with self._guard("insert_order"):
            existing = await self._get_by_key(order.idempotency_key)
            if existing is not None:
                return existing, False

            try:
                self.db.add(order)
                await self.db.flush()
                for item in items:
                    item.order_id = order.id
                    self.db.add(item)
                await self.db.commit()
            except IntegrityError:
                # Lost the race against a concurrent checkout with the same key
                await self.db.rollback()
                existing = await self._get_by_key(order.idempotency_key)
                if existing is None:
                    raise PersistenceError("Order insert conflicted but no order was found")
                return existing, False

            return order, True

    async def conditional_update_status(self, order_id, from_statuses, to_status):
        sources = [OrderStatus(s).value for s in from_statuses]
        if not sources:
            return False
        async with self._guard("conditional_update_status"):
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status.in_(sources))
                .values(status=OrderStatus(to_status).value, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount == 1

    async def get(self, order_id):
        async with self._guard("get_order"):
            res = await self.db.execute(
                select(Order)
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            return res.scalar_one_or_none()

    async def get_items(self, order_id):
        async with self._guard("get_items"):
            res = await self.db.execute(
                select(OrderItem)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.id)
            )
            return list(res.scalars().all())

    async def attach_charge(self, order_id, *, charge_id, charge_code, hosted_url):
        async with self._guard("attach_charge"):
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.charge_id.is_(None))
                .values(charge_id=charge_id, charge_code=charge_code, hosted_url=hosted_url)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return result.rowcount == 1

    async def list_for_user(self, user_id, *, limit, offset):
        async with self._guard("list_orders"):
            res = await self.db.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc())
                .limit(limit)
                .offset(offset)
                .execution_options(populate_existing=True)
            )
            return list(res.scalars().all())

    async def has_processed_event(self, event_id):
        async with self._guard("has_processed_event"):
            res = await self.db.execute(
                select(WebhookEvent.id).where(WebhookEvent.event_id == event_id)
            )
            return res.first() is not None

    async def record_event(self, *, event_id, event_type, order_id, outcome):
        async with self._guard("record_event"):
            try:
                self.db.add(
                    WebhookEvent(
                        event_id=event_id,
                        event_type=event_type,
                        order_id=order_id,
                        outcome=outcome,
                    )
                )
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.info(f"Webhook event {event_id} already recorded by a concurrent delivery")
                return False
            return True
