import asyncio
import json
import logging
from typing import Any, Dict, Optional

from ..common.config import settings
from ..common.kafka_client import create_consumer, close_consumer
from ..common.database import complete_payment, try_reserve_stock, get_product_stock, fetch_product
from ..common.redis_client import cache_stock

_logger = logging.getLogger(__name__)


async def process_order_event(payload: Dict[str, Any]) -> bool:
    """Complete the payment for one placed order and take its stock.

    Returns False, changing nothing, for unknown orders and for orders
    already paid or cancelled. Stock is decremented item by item. An item that can no longer be
    covered is logged and skipped; decrements already applied for earlier
    items stay in place.
    """
    order_id = int(payload["order_id"])
    items = payload.get("items") or []
    _logger.info("Processing order | order_id=%s items=%s", order_id, len(items))

    # Simulate payment gateway delay
    if settings.PAYMENT_DELAY_SECONDS > 0:
        await asyncio.sleep(settings.PAYMENT_DELAY_SECONDS)

    order, completed = await complete_payment(order_id)
    if order is None:
        _logger.warning("Payment for unknown order ignored | order_id=%s", order_id)
        return False
    if not completed:
        # Redelivered event or order cancelled before payment; stock was already settled
        _logger.info(
            "Order event skipped | order_id=%s status=%s payment_status=%s",
            order_id, order.status, order.payment_status,
        )
        return False
    _logger.info("Order paid and confirmed | order_id=%s number=%s", order_id, order.order_number)

    for item in items:
        product_id = int(item["product_id"])
        quantity = int(item["quantity"])
        if not await try_reserve_stock(product_id, quantity):
            _logger.warning(
                "Stock decrement failed | order_id=%s product_id=%s qty=%s", order_id, product_id, quantity
            )
            continue
        new_stock = await get_product_stock(product_id)
        _logger.info("Stock decremented | order_id=%s product_id=%s new_stock=%s", order_id, product_id, new_stock)
        await cache_stock(product_id, new_stock, product=await fetch_product(product_id))
    return True


async def payments_worker(stop_event: Optional[asyncio.Event] = None):
    """
    Kafka consumer for order-placed events.
    Resilient to Kafka outages: retries connection with backoff.
    """
    backoff = 1.0
    while True:
        if stop_event and stop_event.is_set():
            break
        consumer = None
        try:
            _logger.info("Payments worker connecting to Kafka topic=%s", settings.ORDER_TOPIC)
            consumer = await create_consumer(settings.ORDER_TOPIC, group_id="payments-worker")
            _logger.info("Payments worker connected and consuming")
            backoff = 1.0  # reset after successful connect
            while True:
                if stop_event and stop_event.is_set():
                    break
                batch = await consumer.getmany(timeout_ms=1000)
                if not batch:
                    continue
                for _, messages in batch.items():
                    for result in messages:
                        try:
                            payload = json.loads(result.value.decode("utf-8"))
                        except ValueError:
                            _logger.warning("Skipping undecodable order event | offset=%s", result.offset)
                            continue
                        try:
                            await process_order_event(payload)
                        except (KeyError, TypeError, ValueError) as e:
                            _logger.warning("Skipping malformed order event | payload=%s err=%s", payload, e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _logger.warning("Payments worker error, will retry | err=%s", e)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 30.0)
        finally:
            await close_consumer(consumer)
