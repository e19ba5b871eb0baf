import asyncio
import logging
import re
import time

from quart import Quart, g, jsonify, request

from .common.config import settings
from .common.database import init_db
from .common.errors import register_error_handlers
from .common.redis_client import close_redis
from .common.kafka_client import close_producer
from .cart.controller import bp as cart_bp
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .realtime.controller import bp as realtime_bp
from .categories.controller import bp as categories_bp
from .admin.controller import bp as admin_bp
from .reviews.controller import bp as reviews_bp
from .wishlist.controller import bp as wishlist_bp
from .payments.worker import payments_worker

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")
_CUSTOMER_SEGMENT = re.compile(r"^/admin/customers/[^/]+")


def metrics_endpoint(path: str) -> str:
    """Collapse ids in a path so each route maps to one label value."""
    path = _CUSTOMER_SEGMENT.sub("/admin/customers/<id>", path)
    return _NUMERIC_SEGMENT.sub("/<id>", path)


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(inventory_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(wishlist_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(realtime_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)

    @app.before_request
    async def before_request():
        g.start_time = time.time()
        log.debug("[Instance %s] %s %s", settings.INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        start = g.get("start_time")
        if start is not None:
            endpoint = metrics_endpoint(request.path)
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=str(response.status_code)
            ).inc()
        response.headers["X-Instance-ID"] = settings.INSTANCE_ID
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL)
        log.info("Initializing database...")
        await init_db()
        log.info("Database ready.")
        if not settings.START_PAYMENTS_WORKER:
            log.info("Payments worker disabled.")
            return
        stop_event = asyncio.Event()
        app._payments_stop = stop_event
        app._payments_task = asyncio.create_task(payments_worker(stop_event))
        log.info("Payments worker started.")

    @app.after_serving
    async def shutdown():
        stop_event = getattr(app, "_payments_stop", None)
        if stop_event:
            stop_event.set()
        task = getattr(app, "_payments_task", None)
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=2.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                task.cancel()
        await close_producer()
        await close_redis()
        log.info("Shutdown complete.")

    return app
