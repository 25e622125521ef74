"""
Cart aggregator — pure computation over cart lines.

Produces the subtotal, the per-shop grouping used for display, and the
shop attribution used when the cart becomes an order. No I/O.
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal

from domain.constants import MAX_LINE_QUANTITY
from domain.errors import EmptyCart, InvalidQuantity, MixedShopCart
from utils.money import from_cents, to_cents


@dataclass(frozen=True)
class CartLine:
    product_id: str
    shop_id: str
    price_cents: int
    quantity: int

    @classmethod
    def from_price(cls, product_id: str, shop_id: str, price, quantity: int) -> "CartLine":
        return cls(product_id=product_id, shop_id=shop_id, price_cents=to_cents(price), quantity=quantity)

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity


def validate_lines(lines: list[CartLine], *, require_items: bool = True) -> None:
    if require_items and not lines:
        raise EmptyCart()
    for line in lines:
        if not 1 <= line.quantity <= MAX_LINE_QUANTITY:
            raise InvalidQuantity(line.product_id, line.quantity)


def subtotal_cents(lines: list[CartLine]) -> int:
    validate_lines(lines, require_items=False)
    return sum(line.line_total_cents for line in lines)


def subtotal(lines: list[CartLine]) -> Decimal:
    return from_cents(subtotal_cents(lines))


def group_by_shop(lines: list[CartLine]) -> "OrderedDict[str, list[CartLine]]":
    """Partition lines by shop, keeping first-seen shop order."""
    validate_lines(lines, require_items=False)
    groups: OrderedDict[str, list[CartLine]] = OrderedDict()
    for line in lines:
        groups.setdefault(line.shop_id, []).append(line)
    return groups


def order_shop_id(lines: list[CartLine]) -> str:
    """
    Shop an order is attributed to.

    Orders are single-shop: a cart spanning several shops is rejected
    rather than attributed to whichever shop happens to come first.
    """
    validate_lines(lines)
    shops = list(group_by_shop(lines))
    if len(shops) > 1:
        raise MixedShopCart(shops)
    return shops[0]


def order_total_cents(lines: list[CartLine], delivery_fee_cents: int) -> int:
    """Items subtotal plus delivery fee; fails on an empty cart."""
    validate_lines(lines)
    return subtotal_cents(lines) + delivery_fee_cents
