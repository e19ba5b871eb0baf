import asyncio
import json
import logging

from quart import Blueprint, Response

from ..common.redis_client import get_redis
from ..common.config import settings

_logger = logging.getLogger(__name__)

bp = Blueprint("realtime", __name__)

KEEPALIVE_SECONDS = 5.0


def stock_event(data) -> str:
    try:
        payload = json.loads(data) if isinstance(data, str) else data
    except ValueError:
        payload = {"stock": data}
    return f"event: stock\ndata: {json.dumps(payload)}\n\n"


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_STOCK_CHANNEL)
        await pubsub.close()
    except Exception as e:
        _logger.debug("Ignoring pubsub close error | err=%s", e)


@bp.get("/events")
async def sse_events():

    async def gen():
        pubsub = None
        backoff = 1.0
        # Advise client on retry
        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    if pubsub is None:
                        r = await get_redis()
                        pubsub = r.pubsub(ignore_subscribe_messages=True)
                        await pubsub.subscribe(settings.REDIS_STOCK_CHANNEL)
                    message = await pubsub.get_message(timeout=KEEPALIVE_SECONDS)
                    if message:
                        yield stock_event(message.get("data"))
                    else:
                        # Keep-alive to prevent closes by proxies
                        yield ": keep-alive\n\n"
                    backoff = 1.0
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    _logger.warning("Stock stream error, resubscribing | err=%s", e)
                    yield f": redis-error, retrying in {int(backoff)}s\n\n"
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 15.0)
                    await _close_pubsub(pubsub)
                    pubsub = None
        finally:
            await _close_pubsub(pubsub)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(gen(), mimetype="text/event-stream", headers=headers)
