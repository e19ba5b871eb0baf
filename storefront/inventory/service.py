from typing import Any, Dict, List, Optional
import json
import logging
import math

from ..common.redis_client import get_redis, cache_stock, cache_product, stock_key, product_key
from ..common.database import (
    create_product as db_create_product,
    fetch_category,
    fetch_category_by_slug,
    fetch_product,
    fetch_products,
    get_product_stock,
    product_name_taken,
    search_products as db_search_products,
    update_product as db_update_product,
    update_product_stock,
)
from ..common.errors import InvalidInput, NotFound
from ..common.params import float_param, int_param

_logger = logging.getLogger(__name__)


def display_name(product: Dict[str, Any]) -> str:
    return product.get("title") or product.get("name") or "Unknown Product"


async def get_stock(product_id: int) -> Optional[int]:
    r = await get_redis()
    cached = await r.get(stock_key(product_id))
    if cached is not None:
        try:
            value = int(cached)
            _logger.debug("Cache hit: stock | product_id=%s stock=%s", product_id, value)
            return value
        except ValueError:
            _logger.warning("Ignoring non-numeric cached stock | product_id=%s value=%r", product_id, cached)
    # fallback to DB
    stock = await get_product_stock(product_id)
    _logger.info("DB get stock | product_id=%s stock=%s (cache miss)", product_id, stock)
    if stock is not None:
        await r.set(stock_key(product_id), stock)
    return stock


async def set_stock(product_id: int, new_stock: int) -> int:
    if new_stock < 0:
        raise InvalidInput("Stock cannot be negative")
    if not await update_product_stock(product_id, new_stock):
        raise NotFound("Product not found")
    _logger.info("DB set stock | product_id=%s new_stock=%s", product_id, new_stock)
    await cache_stock(product_id, new_stock, product=await fetch_product(product_id))
    return new_stock


async def get_products(category_slug: Optional[str] = None) -> List[Dict[str, Any]]:
    category_id = None
    if category_slug:
        category = await fetch_category_by_slug(category_slug)
        if category is None or not category["is_active"]:
            raise NotFound("Category not found")
        category_id = category["id"]
    return await fetch_products(is_active=True, category_id=category_id)


async def get_product(product_id: int) -> Optional[Dict[str, Any]]:
    r = await get_redis()
    raw = await r.get(product_key(product_id))
    if raw:
        try:
            obj = json.loads(raw)
            _logger.debug("Cache hit: product | product_id=%s", product_id)
            return obj
        except ValueError:
            _logger.warning("Ignoring unreadable product cache | product_id=%s", product_id)
    # Fallback to DB then cache in Redis
    prod = await fetch_product(product_id)
    _logger.info("DB get product | product_id=%s found=%s", product_id, prod is not None)
    if prod is not None:
        await r.set(product_key(product_id), json.dumps(prod))
        await r.set(stock_key(product_id), int(prod["stock"]))
    return prod


# ---- search ----

SEARCH_MIN_LENGTH = 2
SEARCH_MAX_LIMIT = 50

# Field weights; higher-rated products get a small boost on top
_SEARCH_WEIGHTS = (("name", 10), ("title", 8), ("brand", 6), ("description", 2))


def search_score(product: Dict[str, Any], term: str) -> float:
    needle = term.lower()
    score = float(sum(weight for key, weight in _SEARCH_WEIGHTS if needle in (product.get(key) or "").lower()))
    return score + (product.get("average_rating") or 0) * 0.5


async def search_products(term: str, limit: int = 8) -> List[Dict[str, Any]]:
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return []
    limit = max(1, min(limit, SEARCH_MAX_LIMIT))
    ranked = sorted(
        ((search_score(prod, term), prod) for prod in await db_search_products(term)),
        key=lambda pair: (-pair[0], pair[1]["id"]),
    )
    _logger.info("Product search | term=%r matches=%s", term, len(ranked))
    return [
        {
            "id": prod["id"],
            "name": display_name(prod),
            "price": prod["price"],
            "image": prod["image_url"] or "/placeholder.svg",
            "brand": prod["brand"],
            "rating": prod["average_rating"] or 0,
            "score": score,
        }
        for score, prod in ranked[:limit]
    ]


# ---- admin product management ----

_TEXT_FIELDS = ("title", "description", "brand", "image_url")


def _product_values(data: Dict[str, Any], creating: bool) -> Dict[str, Any]:
    """Validate an admin product payload into column values.

    On create ``name``, ``price`` and ``stock`` are required; on update every
    field is optional and only the ones present are returned.
    """
    values: Dict[str, Any] = {}

    if creating or "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise InvalidInput("name is required")
        values["name"] = name
    if creating or "price" in data:
        price = float_param(data, "price") if creating else float_param(data, "price", None)
        if price is not None:
            if not math.isfinite(price) or price < 0:
                raise InvalidInput("price must be a non-negative number")
            values["price"] = price
    if creating or "stock" in data:
        stock = int_param(data, "stock") if creating else int_param(data, "stock", None)
        if stock is not None:
            if stock < 0:
                raise InvalidInput("Stock cannot be negative")
            values["stock"] = stock
    if "discount_percentage" in data:
        discount = float_param(data, "discount_percentage", 0.0)
        if not 0 <= discount < 100:
            raise InvalidInput("discount_percentage must be between 0 and 100")
        values["discount_percentage"] = discount
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise InvalidInput("is_active must be true or false")
        values["is_active"] = data["is_active"]
    if "category_id" in data:
        values["category_id"] = int_param(data, "category_id", None)
    for key in _TEXT_FIELDS:
        if key in data:
            values[key] = str(data[key]).strip() if data[key] else None
    return values


async def _check_category(values: Dict[str, Any]) -> None:
    category_id = values.get("category_id")
    if category_id is not None and await fetch_category(category_id) is None:
        raise InvalidInput("Unknown category")


async def list_admin_products(status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
    if status not in (None, "active", "inactive"):
        raise InvalidInput("status must be active or inactive")
    is_active = None if status is None else status == "active"
    return await fetch_products(is_active=is_active, search=(search or "").strip() or None)


async def create_product(data: Dict[str, Any]) -> Dict[str, Any]:
    values = _product_values(data, creating=True)
    await _check_category(values)
    if await product_name_taken(values["name"]):
        raise InvalidInput("Product with similar name already exists")
    prod = await db_create_product(values)
    _logger.info("Product created | product_id=%s name=%r stock=%s", prod["id"], prod["name"], prod["stock"])
    await cache_stock(prod["id"], prod["stock"], product=prod)
    return prod


async def update_product(product_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    values = _product_values(data, creating=False)
    if not values:
        raise InvalidInput("Nothing to update")
    await _check_category(values)
    if "name" in values and await product_name_taken(values["name"], exclude_id=product_id):
        raise InvalidInput("Product with similar name already exists")
    prod = await db_update_product(product_id, values)
    if prod is None:
        raise NotFound("Product not found")
    _logger.info("Product updated | product_id=%s fields=%s", product_id, sorted(values))
    await cache_product(prod)
    if "stock" in values:
        await cache_stock(product_id, prod["stock"], product=prod)
    return prod


async def deactivate_product(product_id: int) -> Dict[str, Any]:
    """Hide a product from the catalogue; carts and past orders keep referring to it."""
    prod = await db_update_product(product_id, {"is_active": False})
    if prod is None:
        raise NotFound("Product not found")
    _logger.info("Product deactivated | product_id=%s", product_id)
    await cache_product(prod)
    return prod
