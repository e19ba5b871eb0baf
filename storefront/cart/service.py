"""Cart/stock reconciliation.

A cart never holds more of a product than ``min(stock, CART_MAX_PER_PRODUCT)``.
Every mutation reads the stored cart, checks the ceiling against live stock
and rewrites the whole cart, or changes nothing at all. A cart left with no
lines is deleted rather than stored empty.

Mutations for one user are serialised by an in-process lock. Two app
instances can still interleave writes to the same cart.
"""
import asyncio
import logging
import weakref
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..common.config import settings
from ..common.database import fetch_cart_items, save_cart, delete_cart, fetch_product, fetch_products_by_ids
from ..common.db import utcnow
from ..common.errors import InvalidInput, NotFound, OutOfStock, QuantityExceeded
from ..inventory.service import display_name

_logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "/placeholder.svg"

_cart_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass
class CartLineView:
    id: int
    name: str
    price: float
    image: str
    quantity: int
    stock: int
    inStock: bool


@dataclass
class CartView:
    items: List[CartLineView] = field(default_factory=list)
    total: float = 0
    itemCount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _cart_lock(user_id: str) -> asyncio.Lock:
    lock = _cart_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _cart_locks[user_id] = lock
    return lock


def ceiling_for(stock: int) -> int:
    return max(0, min(stock, settings.CART_MAX_PER_PRODUCT))


def _find_line(items: List[Dict[str, Any]], product_id: int) -> Optional[Dict[str, Any]]:
    for item in items:
        if int(item["product_id"]) == product_id:
            return item
    return None


async def _persist(user_id: str, items: List[Dict[str, Any]]) -> None:
    if items:
        await save_cart(user_id, items)
    else:
        await delete_cart(user_id)
        _logger.info("Cart emptied and deleted | user_id=%s", user_id)


async def add_item(user_id: str, product_id: int, quantity: int = 1) -> None:
    if quantity < 1:
        raise InvalidInput("Quantity must be at least 1")

    async with _cart_lock(user_id):
        product = await fetch_product(product_id)
        if product is None or not product["is_active"]:
            raise NotFound("Product not found or unavailable")

        available = int(product["stock"] or 0)
        if available <= 0:
            raise OutOfStock(product_id)
        ceiling = ceiling_for(available)

        items = await fetch_cart_items(user_id) or []
        line = _find_line(items, product_id)
        if line is not None:
            new_quantity = int(line["quantity"]) + quantity
            if new_quantity > ceiling:
                raise QuantityExceeded(ceiling, available)
            line["quantity"] = new_quantity
        else:
            if quantity > ceiling:
                raise QuantityExceeded(ceiling, available)
            items.append({
                "product_id": product_id,
                "quantity": quantity,
                "added_at": utcnow().isoformat(),
            })

        await save_cart(user_id, items)
        _logger.info("Cart add | user_id=%s product_id=%s qty=%s", user_id, product_id, quantity)


async def update_quantity(user_id: str, product_id: int, quantity: int) -> None:
    """Set a line's quantity; zero or less removes the line."""
    async with _cart_lock(user_id):
        items = await fetch_cart_items(user_id)
        if items is None:
            raise NotFound("Cart not found")
        line = _find_line(items, product_id)
        if line is None:
            raise NotFound("Item not found in cart")

        # Always re-checked against live stock, not the stock seen at add time
        product = await fetch_product(product_id)
        available = int(product["stock"] or 0) if product else 0
        ceiling = ceiling_for(available)

        if quantity <= 0:
            items = [item for item in items if int(item["product_id"]) != product_id]
        elif quantity > ceiling:
            raise QuantityExceeded(ceiling, available)
        else:
            line["quantity"] = quantity

        await _persist(user_id, items)
        _logger.info("Cart update | user_id=%s product_id=%s qty=%s", user_id, product_id, quantity)


async def remove_items(user_id: str, product_id: Optional[int] = None) -> None:
    """Remove one line, or every line when ``product_id`` is None."""
    async with _cart_lock(user_id):
        items = await fetch_cart_items(user_id)
        if items is None:
            raise NotFound("Cart not found")
        if product_id is None:
            items = []
        else:
            items = [item for item in items if int(item["product_id"]) != product_id]
        await _persist(user_id, items)
        _logger.info("Cart remove | user_id=%s product_id=%s", user_id, product_id)


async def get_cart(user_id: str) -> CartView:
    items = await fetch_cart_items(user_id)
    if not items:
        return CartView()

    products = await fetch_products_by_ids(int(item["product_id"]) for item in items)
    lines: List[CartLineView] = []
    for item in items:
        product = products.get(int(item["product_id"]))
        if product is None:
            # deleted product; hidden from the view, stored cart untouched
            continue
        stock = int(product["stock"] or 0)
        lines.append(CartLineView(
            id=product["id"],
            name=display_name(product),
            price=product["price"] or 0,
            image=product["image_url"] or PLACEHOLDER_IMAGE,
            quantity=int(item.get("quantity") or 1),
            stock=stock,
            inStock=stock > 0,
        ))

    return CartView(
        items=lines,
        total=sum(line.price * line.quantity for line in lines),
        itemCount=sum(line.quantity for line in lines),
    )
