"""Tests for the /cart routes."""

USER = {"X-User-Id": "user-1"}


class TestCartRoutes:
    async def test_requires_user(self, client):
        response = await client.get("/cart")
        assert response.status_code == 401
        data = await response.get_json()
        assert data["ok"] is False
        assert data["error"] == "unauthorized"

    async def test_empty_cart(self, client):
        response = await client.get("/cart", headers=USER)
        assert response.status_code == 200
        data = await response.get_json()
        assert data == {"ok": True, "items": [], "total": 0, "itemCount": 0}

    async def test_add_then_read(self, client, make_product):
        await make_product(7, stock=5, price=40.0)

        response = await client.post("/cart", json={"productId": 7, "quantity": 2}, headers=USER)
        assert response.status_code == 200

        data = await (await client.get("/cart", headers=USER)).get_json()
        assert data["itemCount"] == 2
        assert data["total"] == 80.0
        assert data["items"][0]["id"] == 7
        assert data["items"][0]["stock"] == 5

    async def test_quantity_exceeded_message(self, client, make_product):
        await make_product(7, stock=5)
        await client.post("/cart", json={"productId": 7, "quantity": 3}, headers=USER)

        response = await client.post("/cart", json={"productId": 7, "quantity": 4}, headers=USER)

        assert response.status_code == 400
        data = await response.get_json()
        assert data["error"] == "quantity_exceeded"
        assert data["message"] == "Maximum 5 allowed per order. Only 5 in stock."

    async def test_missing_product_id(self, client):
        response = await client.post("/cart", json={"quantity": 1}, headers=USER)
        assert response.status_code == 400
        assert (await response.get_json())["error"] == "invalid_input"

    async def test_non_numeric_quantity(self, client, make_product):
        await make_product(7, stock=5)
        response = await client.post("/cart", json={"productId": 7, "quantity": "lots"}, headers=USER)
        assert response.status_code == 400

    async def test_unknown_product(self, client):
        response = await client.post("/cart", json={"productId": 404}, headers=USER)
        assert response.status_code == 404

    async def test_patch_negative_rejected(self, client, make_product):
        await make_product(7, stock=5)
        await client.post("/cart", json={"productId": 7}, headers=USER)

        response = await client.patch("/cart", json={"productId": 7, "quantity": -1}, headers=USER)

        assert response.status_code == 400
        assert (await response.get_json())["message"] == "Quantity cannot be negative"

    async def test_patch_zero_then_read_is_empty(self, client, make_product):
        await make_product(7, stock=5)
        await client.post("/cart", json={"productId": 7}, headers=USER)

        response = await client.patch("/cart", json={"productId": 7, "quantity": 0}, headers=USER)
        assert response.status_code == 200

        read = await client.get("/cart", headers=USER)
        assert read.status_code == 200
        assert (await read.get_json())["items"] == []

    async def test_delete_item_and_clear(self, client, make_product):
        await make_product(7, stock=5)
        await make_product(8, stock=5)
        await client.post("/cart", json={"productId": 7}, headers=USER)
        await client.post("/cart", json={"productId": 8}, headers=USER)

        response = await client.delete("/cart?productId=7", headers=USER)
        assert (await response.get_json())["message"] == "Item removed from cart"

        response = await client.delete("/cart", headers=USER)
        assert (await response.get_json())["message"] == "Cart cleared successfully"

        response = await client.delete("/cart", headers=USER)
        assert response.status_code == 404
