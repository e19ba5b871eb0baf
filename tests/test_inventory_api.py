"""Tests for product routes, stock admin and app plumbing."""

import json

import pytest

from storefront.app import metrics_endpoint
from storefront.common.database import fetch_product
from storefront.inventory.service import search_score

ADMIN = {"X-Admin-Email": "admin@example.com"}


class TestProducts:
    async def test_list_only_active(self, client, make_product):
        await make_product(1)
        await make_product(2, is_active=False)

        data = await (await client.get("/products")).get_json()

        assert [p["id"] for p in data["products"]] == [1]

    async def test_detail_warms_cache(self, client, make_product, fake_redis):
        await make_product(1, stock=4)

        response = await client.get("/products/1")

        assert response.status_code == 200
        data = await response.get_json()
        assert data["stock"] == 4
        assert json.loads(await fake_redis.get("product:1:data"))["id"] == 1

    async def test_detail_unknown(self, client):
        response = await client.get("/products/42")
        assert response.status_code == 404


class TestStockAdmin:
    async def test_set_stock_refreshes_cache(self, client, make_product, fake_redis):
        await make_product(1, stock=4)
        await client.get("/products/1")

        response = await client.put("/admin/stock", json={"product_id": 1, "stock": 9}, headers=ADMIN)

        assert response.status_code == 200
        assert await fake_redis.get("product:1:stock") == "9"
        assert json.loads(await fake_redis.get("product:1:data"))["stock"] == 9

    async def test_set_stock_requires_admin(self, client, make_product):
        await make_product(1)
        response = await client.put("/admin/stock", json={"product_id": 1, "stock": 9})
        assert response.status_code == 401

    async def test_negative_stock(self, client, make_product):
        await make_product(1)
        response = await client.put("/admin/stock", json={"product_id": 1, "stock": -2}, headers=ADMIN)
        assert response.status_code == 400

    async def test_unknown_product(self, client):
        response = await client.put("/admin/stock", json={"product_id": 5, "stock": 2}, headers=ADMIN)
        assert response.status_code == 404


class TestAppPlumbing:
    async def test_health_and_instance_header(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert (await response.get_json()) == {"status": "ok"}
        assert response.headers["X-Instance-ID"] == "unknown"

    async def test_metrics_exposed(self, client):
        await client.get("/health")
        response = await client.get("/metrics")
        body = (await response.get_data()).decode()
        assert "http_requests_total" in body

    def test_metrics_endpoint_collapses_ids(self):
        assert metrics_endpoint("/orders/17") == "/orders/<id>"
        assert metrics_endpoint("/admin/orders/3") == "/admin/orders/<id>"
        assert metrics_endpoint("/cart") == "/cart"


class TestSearch:
    def test_score_weights_fields(self):
        product = {"name": "Oak Tray", "title": None, "brand": "Oakline", "description": "oak wood", "average_rating": 4.0}
        assert search_score(product, "OAK") == 10 + 6 + 2 + 2.0

    async def test_ranks_name_matches_first(self, client, make_product):
        await make_product(1, name="Bamboo Stool", description="pairs with a teak tray")
        await make_product(2, name="Teak Tray")
        await make_product(3, name="Teak Shelf", is_active=False)

        data = await (await client.get("/products/search?q=teak")).get_json()

        assert [p["id"] for p in data["products"]] == [2, 1]
        assert data["products"][0]["name"] == "Teak Tray"

    async def test_short_query_returns_nothing(self, client, make_product):
        await make_product(1, name="Teak Tray")
        data = await (await client.get("/products/search?q=t")).get_json()
        assert data["products"] == []

    async def test_limit(self, client, make_product):
        for product_id in range(1, 5):
            await make_product(product_id, name=f"Lamp {product_id}")
        data = await (await client.get("/products/search?q=lamp&limit=2")).get_json()
        assert len(data["products"]) == 2

    async def test_wildcards_are_literal(self, client, make_product):
        await make_product(1, name="Lamp")
        data = await (await client.get("/products/search?q=%25%25")).get_json()
        assert data["products"] == []


class TestProductAdmin:
    async def test_requires_admin(self, client):
        response = await client.post("/admin/products", json={"name": "Lamp", "price": 5, "stock": 1})
        assert response.status_code == 401

    async def test_create(self, client, db, fake_redis):
        response = await client.post(
            "/admin/products",
            json={"name": "Desk Lamp", "price": 25.5, "stock": 4, "brand": "Lumo", "discount_percentage": 10},
            headers=ADMIN,
        )

        assert response.status_code == 201
        product = (await response.get_json())["product"]
        assert product["is_active"] is True
        assert product["brand"] == "Lumo"
        stored = await fetch_product(product["id"])
        assert stored["price"] == 25.5
        assert await fake_redis.get(f"product:{product['id']}:stock") == "4"

    @pytest.mark.parametrize(
        "body",
        [
            {"price": 5, "stock": 1},
            {"name": "Lamp", "stock": 1},
            {"name": "Lamp", "price": -1, "stock": 1},
            {"name": "Lamp", "price": 5, "stock": -1},
            {"name": "Lamp", "price": 5, "stock": 1, "discount_percentage": 100},
            {"name": "Lamp", "price": 5, "stock": 1, "is_active": "yes"},
        ],
    )
    async def test_create_validation(self, client, db, body):
        response = await client.post("/admin/products", json=body, headers=ADMIN)
        assert response.status_code == 400

    async def test_duplicate_name(self, client, make_product):
        await make_product(1, name="Desk Lamp")
        response = await client.post(
            "/admin/products", json={"name": "desk lamp", "price": 5, "stock": 1}, headers=ADMIN
        )
        assert response.status_code == 400
        assert (await response.get_json())["message"] == "Product with similar name already exists"

    async def test_update_refreshes_cache(self, client, make_product, fake_redis):
        await make_product(1, stock=2, price=10.0)
        await client.get("/products/1")

        response = await client.patch("/admin/products/1", json={"price": 12.0, "stock": 7}, headers=ADMIN)

        assert response.status_code == 200
        cached = json.loads(await fake_redis.get("product:1:data"))
        assert cached["price"] == 12.0
        assert cached["stock"] == 7
        assert await fake_redis.get("product:1:stock") == "7"

    async def test_update_unknown(self, client, db):
        response = await client.patch("/admin/products/8", json={"price": 1}, headers=ADMIN)
        assert response.status_code == 404

    async def test_update_empty(self, client, make_product):
        await make_product(1)
        response = await client.patch("/admin/products/1", json={}, headers=ADMIN)
        assert response.status_code == 400

    async def test_deactivate_hides_product(self, client, make_product):
        await make_product(1)
        await client.get("/products/1")

        response = await client.delete("/admin/products/1", headers=ADMIN)

        assert response.status_code == 200
        assert (await client.get("/products/1")).status_code == 404
        assert (await (await client.get("/products")).get_json())["products"] == []
        assert (await fetch_product(1))["is_active"] is False

    async def test_admin_list_filters(self, client, make_product):
        await make_product(1, name="Desk Lamp")
        await make_product(2, name="Floor Lamp", is_active=False)
        await make_product(3, name="Stool")

        everything = await (await client.get("/admin/products", headers=ADMIN)).get_json()
        inactive = await (await client.get("/admin/products?status=inactive", headers=ADMIN)).get_json()
        lamps = await (await client.get("/admin/products?search=lamp", headers=ADMIN)).get_json()

        assert everything["count"] == 3
        assert [p["id"] for p in inactive["products"]] == [2]
        assert [p["id"] for p in lamps["products"]] == [1, 2]
