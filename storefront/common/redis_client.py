import asyncio
import json
import logging
import ssl
from typing import Any, Dict, Optional

from redis.asyncio import Redis

from .config import settings

_logger = logging.getLogger(__name__)

_redis: Optional[Redis] = None
_lock = asyncio.Lock()


def stock_key(product_id: int) -> str:
    return f"product:{product_id}:stock"


def product_key(product_id: int) -> str:
    return f"product:{product_id}:data"


async def get_redis() -> Redis:
    global _redis
    if _redis is None:
        async with _lock:
            if _redis is None:
                try:
                    conn_kwargs = {
                        "host": settings.REDIS_HOST,
                        "port": settings.REDIS_PORT,
                        "username": settings.REDIS_USERNAME or None,
                        "password": settings.REDIS_PASSWORD or None,
                        "db": settings.REDIS_DB,
                        "decode_responses": True,
                    }
                    if settings.REDIS_SSL:
                        conn_kwargs.update(
                            {
                                "ssl": True,
                                # relax cert verification for local/dev
                                "ssl_cert_reqs": ssl.CERT_NONE,
                            }
                        )
                    _redis = Redis(**conn_kwargs)
                    await _redis.ping()
                    _logger.info(
                        "Connected to Redis at %s:%s (SSL=%s)",
                        settings.REDIS_HOST,
                        settings.REDIS_PORT,
                        settings.REDIS_SSL,
                    )
                except Exception as e:
                    _logger.error("Failed to connect to Redis: %s", str(e))
                    _redis = None
                    raise
    return _redis


async def cache_stock(product_id: int, stock: int, product: Optional[Dict[str, Any]] = None) -> None:
    """Write a new stock level to the cache and announce it on the stock channel.

    The cached product JSON is kept in sync when present; otherwise it is
    warmed from ``product`` if the caller has one.
    """
    r = await get_redis()
    await r.set(stock_key(product_id), int(stock))
    raw = await r.get(product_key(product_id))
    cached = None
    if raw:
        try:
            cached = json.loads(raw)
        except ValueError:
            _logger.warning("Dropping unreadable product cache | product_id=%s", product_id)
    if cached is None and product is not None:
        cached = dict(product)
    if cached is not None:
        cached["stock"] = int(stock)
        await r.set(product_key(product_id), json.dumps(cached))
    await r.publish(settings.REDIS_STOCK_CHANNEL, json.dumps({"product_id": product_id, "stock": int(stock)}))
    _logger.info("Published stock update | product_id=%s stock=%s channel=%s", product_id, stock, settings.REDIS_STOCK_CHANNEL)


async def cache_product(product: Dict[str, Any]) -> None:
    r = await get_redis()
    await r.set(product_key(product["id"]), json.dumps(product))
    _logger.debug("Product cache refreshed | product_id=%s", product["id"])


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        try:
            await _redis.close()
        finally:
            _redis = None
