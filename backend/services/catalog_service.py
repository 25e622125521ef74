"""
Catalog lookups for checkout.

The catalog itself is owned elsewhere; checkout only needs to know that a
product exists, is available, which shop sells it and what it costs now.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Product
from domain.constants import MAX_LINE_QUANTITY
from domain.errors import EmptyCart, InvalidQuantity, PersistenceError, ProductUnavailable
from services.cart_service import CartLine

logger = logging.getLogger(__name__)


async def create_product(
    db: AsyncSession,
    *,
    shop_id: str,
    name: str,
    price_cents: int,
    is_available: bool = True,
) -> Product:
    product = Product(
        shop_id=shop_id,
        name=name,
        price_cents=price_cents,
        is_available=is_available,
    )
    db.add(product)
    await db.flush()
    return product


async def resolve_cart(db: AsyncSession, items: list[dict]) -> list[CartLine]:
    """
    items: [{product_id:str, quantity:int}]

    Returns one CartLine per item, in input order, priced from the catalog.
    """
    if not items:
        raise EmptyCart()

    for i in items:
        qty = int(i.get("quantity", 1))
        if not 1 <= qty <= MAX_LINE_QUANTITY:
            raise InvalidQuantity(str(i["product_id"]), qty)

    product_ids = {str(i["product_id"]) for i in items}
    try:
        res = await db.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {p.id: p for p in res.scalars().all()}
    except SQLAlchemyError as e:
        logger.error(f"Catalog lookup failed: {e}")
        raise PersistenceError("Catalog unavailable")

    lines: list[CartLine] = []
    for i in items:
        pid = str(i["product_id"])
        p = products.get(pid)
        if not p or not p.is_available:
            raise ProductUnavailable(pid)
        lines.append(
            CartLine(
                product_id=pid,
                shop_id=p.shop_id,
                price_cents=p.price_cents,
                quantity=int(i.get("quantity", 1)),
            )
        )
    return lines


class SqlCatalog:
    """Catalog capability handed to checkout."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, items: list[dict]) -> list[CartLine]:
        return await resolve_cart(self.db, items)
