"""Kafka access for order events.

One producer is shared per process and created on first publish. Both the
producer and the payments consumer retry the broker connection with
exponential backoff before giving up.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from aiokafka import AIOKafkaProducer, AIOKafkaConsumer

from .config import settings

_logger = logging.getLogger(__name__)

MAX_CONNECT_ATTEMPTS = 8
MAX_BACKOFF_SECONDS = 30.0

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()

_Client = TypeVar("_Client", bound=Union[AIOKafkaProducer, AIOKafkaConsumer])


async def _start_with_backoff(build: Callable[[], _Client], role: str) -> _Client:
    backoff = 1.0
    last_exc: Optional[BaseException] = None
    for attempt in range(1, MAX_CONNECT_ATTEMPTS + 1):
        client = build()
        try:
            await client.start()
            _logger.info("Kafka %s connected | servers=%s attempt=%s", role, settings.KAFKA_BOOTSTRAP_SERVERS, attempt)
            return client
        except Exception as e:
            last_exc = e
            _logger.warning("Kafka %s start failed | attempt=%s err=%s", role, attempt, e)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
    raise last_exc or RuntimeError(f"Kafka {role} start failed")


async def get_producer() -> AIOKafkaProducer:
    global _producer
    if _producer is None:
        async with _producer_lock:
            if _producer is None:
                _producer = await _start_with_backoff(
                    lambda: AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS),
                    "producer",
                )
    return _producer


async def publish_event(topic: str, payload: Dict[str, Any]) -> None:
    producer = await get_producer()
    await producer.send_and_wait(topic, json.dumps(payload).encode("utf-8"))


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None


async def create_consumer(topic: str, group_id: str) -> AIOKafkaConsumer:
    return await _start_with_backoff(
        lambda: AIOKafkaConsumer(
            topic,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            group_id=group_id,
            enable_auto_commit=True,
            auto_offset_reset="earliest",
        ),
        "consumer",
    )


async def close_consumer(consumer: Optional[AIOKafkaConsumer]) -> None:
    if consumer is not None:
        await consumer.stop()
