import asyncio
import json

import sqlalchemy as sa

from .categories.model import Category
from .categories.service import slugify
from .common.database import init_db, AsyncSessionLocal, product_dict
from .common.redis_client import get_redis, product_key, stock_key
from .inventory.model import Product


SAMPLE_CATEGORIES = ["Computers", "Accessories", "Audio"]

SAMPLE_PRODUCTS = [
    {"name": "Laptop Pro 14", "stock": 20, "price": 1499.00, "discount_percentage": 5, "brand": "Northwind", "category": "Computers"},
    {"name": "Wireless Mouse", "stock": 150, "price": 24.99, "brand": "Clickr", "category": "Accessories"},
    {"name": "Mechanical Keyboard", "stock": 8, "price": 89.99, "discount_percentage": 15, "brand": "Clickr", "category": "Accessories"},
    {"name": "USB-C Hub", "stock": 120, "price": 39.99, "description": "Seven ports over one USB-C cable", "category": "Accessories"},
    {"name": "Noise-cancelling Headphones", "stock": 35, "price": 199.99, "discount_percentage": 20, "brand": "Quietly", "category": "Audio"},
    {"name": "4K Monitor 27\"", "stock": 3, "price": 329.99, "brand": "Northwind", "category": "Computers"},
    {"name": "Portable SSD 1TB", "stock": 60, "price": 99.99, "category": "Computers"},
    {"name": "Smartphone Charger 65W", "stock": 0, "price": 19.99, "category": "Accessories"},
    {"name": "Webcam 1080p", "stock": 75, "price": 49.99, "description": "Full HD webcam with stereo mics", "category": "Accessories"},
    {"name": "Bluetooth Speaker", "stock": 40, "price": 59.99, "is_active": False, "brand": "Quietly", "category": "Audio"},
]


async def seed_categories() -> dict:
    """Create missing sample categories; returns {name: id}."""
    ids = {}
    async with AsyncSessionLocal() as session:
        for name in SAMPLE_CATEGORIES:
            res = await session.execute(sa.select(Category.id).where(Category.slug == slugify(name)))
            row = res.first()
            if row is None:
                category = Category(name=name, slug=slugify(name))
                session.add(category)
                await session.flush()
                ids[name] = category.id
            else:
                ids[name] = row[0]
        await session.commit()
    return ids


async def seed_products() -> None:
    await init_db()
    categories = await seed_categories()
    async with AsyncSessionLocal() as session:
        added = 0
        for p in SAMPLE_PRODUCTS:
            # avoid duplicates by name
            res = await session.execute(sa.select(Product.id).where(Product.name == p["name"]))
            if res.first():
                continue
            fields = dict(p)
            fields["category_id"] = categories[fields.pop("category")]
            session.add(Product(**fields))
            added += 1
        if added:
            await session.commit()
        print(f"Seed complete. Added {added} products.")

    # Warm Redis cache with all products
    r = await get_redis()
    async with AsyncSessionLocal() as session:
        result = await session.execute(sa.select(Product))
        for prod in result.scalars():
            await r.set(product_key(prod.id), json.dumps(product_dict(prod)))
            await r.set(stock_key(prod.id), int(prod.stock))


async def amain():
    await seed_products()


if __name__ == "__main__":
    asyncio.run(amain())
