"""Pytest fixtures for storefront tests."""

import json
import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment is prepared first.
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["PAYMENT_DELAY_SECONDS"] = "0"
os.environ["START_PAYMENTS_WORKER"] = "false"
os.environ["ADMIN_EMAILS"] = "admin@example.com, Ops@Example.com"

import pytest
import sqlalchemy as sa
from fakeredis import aioredis as fake_aioredis

from storefront.common import kafka_client, redis_client
from storefront.common.database import AsyncSessionLocal, engine, init_db
from storefront.common.db import Base
from storefront.inventory.model import Product

class RecordingProducer:
    """Stands in for the Kafka producer and keeps what was sent."""

    def __init__(self):
        self.sent = []

    async def send_and_wait(self, topic, value):
        self.sent.append((topic, json.loads(value.decode("utf-8"))))

    async def stop(self):
        pass


class BrokenProducer(RecordingProducer):
    async def send_and_wait(self, topic, value):
        raise ConnectionError("broker down")


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db(seed=False)
    yield
    await engine.dispose()


@pytest.fixture
async def fake_redis(monkeypatch):
    r = fake_aioredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "_redis", r)
    yield r
    await r.flushall()


@pytest.fixture
def producer(monkeypatch):
    p = RecordingProducer()
    monkeypatch.setattr(kafka_client, "_producer", p)
    return p


@pytest.fixture
def broken_producer(monkeypatch):
    p = BrokenProducer()
    monkeypatch.setattr(kafka_client, "_producer", p)
    return p


@pytest.fixture
def make_product(db):
    async def _make(product_id, stock=5, price=100.0, **fields):
        async with AsyncSessionLocal() as session:
            session.add(Product(
                id=product_id,
                name=fields.pop("name", f"Product {product_id}"),
                stock=stock,
                price=price,
                **fields,
            ))
            await session.commit()
        return product_id

    return _make


@pytest.fixture
def update_product(db):
    async def _update(product_id, **values):
        async with AsyncSessionLocal() as session:
            await session.execute(sa.update(Product).where(Product.id == product_id).values(**values))
            await session.commit()

    return _update


@pytest.fixture
def delete_product(db):
    async def _delete(product_id):
        async with AsyncSessionLocal() as session:
            await session.execute(sa.delete(Product).where(Product.id == product_id))
            await session.commit()

    return _delete


@pytest.fixture
def client(db, fake_redis, producer):
    from storefront.app import create_app

    return create_app().test_client()
