import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..common.database import fetch_wishlist_items, save_wishlist, fetch_product, fetch_products_by_ids
from ..common.db import utcnow
from ..common.errors import InvalidInput, NotFound
from ..inventory.service import display_name

_logger = logging.getLogger(__name__)


@dataclass
class WishlistEntryView:
    id: int
    name: str
    price: float
    originalPrice: Optional[int]
    image: str
    inStock: bool
    addedDate: Optional[str]


@dataclass
class WishlistView:
    items: List[WishlistEntryView] = field(default_factory=list)
    totalValue: float = 0
    itemCount: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def original_price(price: float, discount_percentage: float) -> Optional[int]:
    """Pre-discount price, or None for products sold at list price."""
    if not discount_percentage or discount_percentage <= 0 or discount_percentage >= 100:
        return None
    return round(price / (1 - discount_percentage / 100))


async def add_product(user_id: str, product_id: int) -> None:
    product = await fetch_product(product_id)
    if product is None or not product["is_active"]:
        raise NotFound("Product not found")
    items = await fetch_wishlist_items(user_id) or []
    if any(int(item["product_id"]) == product_id for item in items):
        raise InvalidInput("Product already in wishlist")
    items.append({"product_id": product_id, "added_at": utcnow().isoformat()})
    await save_wishlist(user_id, items)
    _logger.info("Wishlist add | user_id=%s product_id=%s", user_id, product_id)


async def remove_product(user_id: str, product_id: int) -> None:
    items = await fetch_wishlist_items(user_id)
    if items is None:
        raise NotFound("Wishlist not found")
    remaining = [item for item in items if int(item["product_id"]) != product_id]
    if len(remaining) == len(items):
        raise NotFound("Product not in wishlist")
    await save_wishlist(user_id, remaining)


async def get_wishlist(user_id: str) -> WishlistView:
    items = await fetch_wishlist_items(user_id)
    if not items:
        return WishlistView()
    products = await fetch_products_by_ids(int(item["product_id"]) for item in items)
    entries = []
    for item in items:
        product = products.get(int(item["product_id"]))
        if product is None:
            continue
        price = product["price"] or 0
        entries.append(WishlistEntryView(
            id=product["id"],
            name=display_name(product),
            price=price,
            originalPrice=original_price(price, product["discount_percentage"]),
            image=product["image_url"] or "/placeholder.svg",
            inStock=(product["stock"] or 0) > 0,
            addedDate=item.get("added_at"),
        ))
    return WishlistView(
        items=entries,
        totalValue=sum(entry.price for entry in entries),
        itemCount=len(entries),
    )
