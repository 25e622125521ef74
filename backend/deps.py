"""
Shared FastAPI dependencies.

Routers get their collaborators (order store, catalog, payment processor,
caller identity) from here so tests can override them in one place.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.errors import PermissionDeniedError
from middleware.auth import Caller, require_caller
from services.catalog_service import SqlCatalog
from services.order_store import OrderStore, SqlOrderStore
from services.payment_processor import PaymentProcessor, get_processor


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_order_store(db: AsyncSession = Depends(get_db)) -> OrderStore:
    return SqlOrderStore(db)


def get_catalog(db: AsyncSession = Depends(get_db)) -> SqlCatalog:
    return SqlCatalog(db)


def get_payment_processor() -> PaymentProcessor:
    return get_processor()


async def require_staff(caller: Caller = Depends(require_caller)) -> Caller:
    """Require a shop owner, driver or admin."""
    if not caller.is_staff:
        raise PermissionDeniedError("Shop, driver or admin role required for this endpoint.")
    return caller
