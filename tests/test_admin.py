"""Tests for the admin dashboard and customer summaries."""

import pytest

from storefront.app import metrics_endpoint
from storefront.cart.service import add_item
from storefront.orders.service import CheckoutRequest, place_order
from storefront.payments.worker import process_order_event

ADMIN = {"X-Admin-Email": "admin@example.com"}
ADDRESS = {"fullName": "Asha Rao", "city": "Pune"}


async def order(user_id, product_id, quantity, price, paid=True, producer=None):
    await add_item(user_id, product_id, quantity)
    req = CheckoutRequest.from_json({
        "items": [{"id": product_id, "price": price, "quantity": quantity}],
        "shippingAddress": ADDRESS,
        "paymentMethod": "upi" if paid else "cod",
    })
    result = await place_order(user_id, req)
    if paid:
        _, event = producer.sent[-1]
        await process_order_event(event)
    return result["order"]["id"]


@pytest.fixture
async def sales(make_product, fake_redis, producer):
    await make_product(1, stock=20, price=10.0, name="Mug")
    await make_product(2, stock=20, price=25.0, name="Teapot")
    await make_product(3, stock=2, price=5.0, name="Coaster")
    await order("user-1", 1, 3, 10.0, producer=producer)
    await order("user-1", 2, 1, 25.0, producer=producer)
    await order("user-2", 1, 1, 10.0, producer=producer)
    await order("user-2", 2, 2, 25.0, paid=False)


class TestDashboard:
    async def test_requires_admin(self, client):
        response = await client.get("/admin/dashboard")
        assert response.status_code == 401

    async def test_totals(self, client, sales):
        data = await (await client.get("/admin/dashboard", headers=ADMIN)).get_json()

        assert data["totals"] == {"revenue": 65.0, "orders": 4, "paidOrders": 3, "averageOrderValue": 21.67}
        assert data["statusBreakdown"]["confirmed"] == 3
        assert data["statusBreakdown"]["pending"] == 1
        assert data["statusBreakdown"]["shipped"] == 0
        assert len(data["dailyRevenue"]) == 1
        assert data["dailyRevenue"][0]["revenue"] == 65.0
        assert data["dailyRevenue"][0]["orders"] == 3
        assert len(data["recentOrders"]) == 4

    async def test_top_products_use_paid_orders(self, client, sales):
        data = await (await client.get("/admin/dashboard", headers=ADMIN)).get_json()

        top = data["topProducts"]
        assert [p["id"] for p in top] == [1, 2]
        assert top[0]["quantity"] == 4
        assert top[0]["revenue"] == 40.0
        assert top[1]["quantity"] == 1

    async def test_low_stock(self, client, sales):
        data = await (await client.get("/admin/dashboard", headers=ADMIN)).get_json()
        assert data["lowStock"] == [{"id": 3, "name": "Coaster", "stock": 2}]

    async def test_days_range(self, client, db):
        response = await client.get("/admin/dashboard?days=0", headers=ADMIN)
        assert response.status_code == 400


class TestCustomers:
    async def test_list(self, client, sales):
        data = await (await client.get("/admin/customers", headers=ADMIN)).get_json()

        assert data["pagination"]["total"] == 2
        by_id = {c["customerId"]: c for c in data["customers"]}
        assert by_id["user-1"]["totalOrders"] == 2
        assert by_id["user-1"]["totalSpent"] == 55.0
        assert by_id["user-2"]["totalOrders"] == 2
        assert by_id["user-2"]["totalSpent"] == 10.0
        assert by_id["user-2"]["averageOrderValue"] == 5.0
        assert by_id["user-1"]["lastOrderDate"]

    async def test_detail(self, client, sales):
        response = await client.get("/admin/customers/user-1", headers=ADMIN)

        assert response.status_code == 200
        customer = (await response.get_json())["customer"]
        assert customer["totalOrders"] == 2
        assert len(customer["orders"]) == 2

    async def test_unknown(self, client, db):
        response = await client.get("/admin/customers/ghost", headers=ADMIN)
        assert response.status_code == 404

    def test_customer_ids_collapse_in_metrics(self):
        assert metrics_endpoint("/admin/customers/user-1") == "/admin/customers/<id>"
