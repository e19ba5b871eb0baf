import logging
import re
from typing import Any, Dict, List

from ..common.database import (
    category_slug_taken,
    count_products_by_category,
    create_category as db_create_category,
    delete_category as db_delete_category,
    fetch_categories,
    fetch_products,
    update_category as db_update_category,
)
from ..common.errors import InvalidInput, NotFound
from ..common.params import int_param
from ..common.redis_client import cache_product

_logger = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _NON_SLUG.sub("-", name.lower()).strip("-")


def _category_values(data: Dict[str, Any], creating: bool) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if creating or "name" in data:
        name = str(data.get("name") or "").strip()
        if not slugify(name):
            raise InvalidInput("Category name is required")
        values["name"] = name
        values["slug"] = slugify(name)
    if "description" in data:
        values["description"] = str(data["description"]).strip() if data["description"] else None
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise InvalidInput("is_active must be true or false")
        values["is_active"] = data["is_active"]
    if "display_order" in data:
        values["display_order"] = int_param(data, "display_order", 0)
    return values


async def list_categories(active_only: bool = True) -> List[Dict[str, Any]]:
    counts = await count_products_by_category()
    return [
        {**category, "product_count": counts.get(category["id"], 0)}
        for category in await fetch_categories(active_only=active_only)
    ]


async def create_category(data: Dict[str, Any]) -> Dict[str, Any]:
    values = _category_values(data, creating=True)
    if await category_slug_taken(values["slug"]):
        raise InvalidInput("Category with this name already exists")
    category = await db_create_category(values)
    _logger.info("Category created | category_id=%s slug=%s", category["id"], category["slug"])
    return category


async def update_category(category_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    values = _category_values(data, creating=False)
    if not values:
        raise InvalidInput("Nothing to update")
    if "slug" in values and await category_slug_taken(values["slug"], exclude_id=category_id):
        raise InvalidInput("Category with this name already exists")
    category = await db_update_category(category_id, values)
    if category is None:
        raise NotFound("Category not found")
    _logger.info("Category updated | category_id=%s fields=%s", category_id, sorted(values))
    return category


async def delete_category(category_id: int) -> int:
    """Delete the category; its products stay in the catalogue without one."""
    members = await fetch_products(is_active=None, category_id=category_id)
    detached = await db_delete_category(category_id)
    if detached is None:
        raise NotFound("Category not found")
    for product in members:
        await cache_product({**product, "category_id": None})
    _logger.info("Category deleted | category_id=%s detached_products=%s", category_id, detached)
    return detached
