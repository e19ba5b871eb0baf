import os
from dataclasses import dataclass, field
from typing import FrozenSet


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_set(env_name: str, default: str = "") -> FrozenSet[str]:
    raw = os.getenv(env_name, default)
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    INSTANCE_ID: str = os.getenv("INSTANCE_ID", "unknown")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite by default in a Docker volume)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:////data/storefront.db")

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_STOCK_CHANNEL: str = os.getenv("REDIS_STOCK_CHANNEL", "stock-updates")

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    ORDER_TOPIC: str = os.getenv("ORDER_TOPIC", "orders")

    # Payments worker
    START_PAYMENTS_WORKER: bool = _get_bool("START_PAYMENTS_WORKER", True)
    PAYMENT_DELAY_SECONDS: float = float(os.getenv("PAYMENT_DELAY_SECONDS", "2.0"))

    # Cart
    CART_MAX_PER_PRODUCT: int = int(os.getenv("CART_MAX_PER_PRODUCT", "10"))

    # Admin dashboard
    LOW_STOCK_THRESHOLD: int = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))

    # Principals allowed on /admin routes
    ADMIN_EMAILS: FrozenSet[str] = field(default_factory=lambda: _get_set("ADMIN_EMAILS"))


settings = Settings()
