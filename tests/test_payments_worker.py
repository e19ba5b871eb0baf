"""Tests for payment completion and stock decrement."""

import json

from storefront.cart.service import add_item
from storefront.common.database import fetch_order, fetch_payment, get_product_stock, update_order
from storefront.orders.service import CheckoutRequest, place_order
from storefront.payments.worker import process_order_event

ADDRESS = {"fullName": "Asha Rao", "city": "Pune"}


async def placed_order(items):
    req = CheckoutRequest.from_json({"items": items, "shippingAddress": ADDRESS, "paymentMethod": "upi"})
    return (await place_order("user-1", req))["order"]["id"]


class TestProcessOrderEvent:
    async def test_confirms_order_and_takes_stock(self, make_product, fake_redis, producer):
        await make_product(1, stock=5, price=10.0)
        await add_item("user-1", 1, 2)
        order_id = await placed_order([{"id": 1, "price": 10.0, "quantity": 2}])
        pubsub = fake_redis.pubsub()
        await pubsub.subscribe("stock-updates")

        _, event = producer.sent[0]
        assert await process_order_event(event) is True

        order = await fetch_order(order_id)
        assert order.status == "confirmed"
        assert order.payment_status == "paid"
        payment = await fetch_payment(order_id)
        assert payment.status == "completed"
        assert payment.paid_at is not None

        assert await get_product_stock(1) == 3
        assert await fake_redis.get("product:1:stock") == "3"
        cached = json.loads(await fake_redis.get("product:1:data"))
        assert cached["stock"] == 3
        message = None
        for _ in range(5):
            message = await pubsub.get_message(timeout=1.0)
            if message and message["type"] == "message":
                break
        assert json.loads(message["data"]) == {"product_id": 1, "stock": 3}
        await pubsub.close()

    async def test_failed_item_does_not_undo_earlier_items(self, make_product, update_product, fake_redis, producer):
        await make_product(1, stock=5)
        await make_product(2, stock=5)
        await add_item("user-1", 1, 2)
        await add_item("user-1", 2, 2)
        await placed_order([
            {"id": 1, "price": 1.0, "quantity": 2},
            {"id": 2, "price": 1.0, "quantity": 2},
        ])
        # stock sold elsewhere between checkout and payment
        await update_product(2, stock=1)

        _, event = producer.sent[0]
        assert await process_order_event(event) is True

        assert await get_product_stock(1) == 3
        assert await get_product_stock(2) == 1

    async def test_unknown_order(self, db, fake_redis):
        event = {"order_id": 999, "user_id": "user-1", "items": [{"product_id": 1, "quantity": 1}]}
        assert await process_order_event(event) is False

    async def test_redelivered_event_takes_stock_once(self, make_product, fake_redis, producer):
        await make_product(1, stock=5)
        await add_item("user-1", 1, 2)
        await placed_order([{"id": 1, "price": 1.0, "quantity": 2}])
        _, event = producer.sent[0]

        assert await process_order_event(event) is True
        assert await process_order_event(event) is False

        assert await get_product_stock(1) == 3

    async def test_cancelled_order_is_not_confirmed(self, make_product, fake_redis, producer):
        await make_product(1, stock=5)
        await add_item("user-1", 1, 2)
        order_id = await placed_order([{"id": 1, "price": 1.0, "quantity": 2}])
        await update_order(order_id, {"status": "cancelled"})
        _, event = producer.sent[0]

        assert await process_order_event(event) is False

        order = await fetch_order(order_id)
        assert order.status == "cancelled"
        assert order.payment_status == "pending"
        assert (await fetch_payment(order_id)).status == "pending"
        assert await get_product_stock(1) == 5
