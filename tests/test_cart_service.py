"""Tests for cart/stock reconciliation."""

import asyncio

import pytest

from storefront.cart.service import add_item, get_cart, remove_items, update_quantity
from storefront.common.database import fetch_cart_items
from storefront.common.errors import InvalidInput, NotFound, OutOfStock, QuantityExceeded

USER = "user-1"


class TestAddItem:
    async def test_add_to_empty_cart(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 3)

        stored = await fetch_cart_items(USER)
        assert len(stored) == 1
        assert stored[0]["product_id"] == 1
        assert stored[0]["quantity"] == 3
        assert stored[0]["added_at"]

    async def test_default_quantity_is_one(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1)
        assert (await fetch_cart_items(USER))[0]["quantity"] == 1

    async def test_repeat_add_merges_lines(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 2)
        await add_item(USER, 1, 2)

        stored = await fetch_cart_items(USER)
        assert len(stored) == 1
        assert stored[0]["quantity"] == 4

    async def test_merge_over_stock_fails_and_keeps_quantity(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 3)

        with pytest.raises(QuantityExceeded) as exc:
            await add_item(USER, 1, 4)

        assert exc.value.ceiling == 5
        assert exc.value.stock == 5
        assert "Maximum 5" in exc.value.message
        assert "Only 5 in stock" in exc.value.message
        assert (await fetch_cart_items(USER))[0]["quantity"] == 3

    async def test_ceiling_is_capped_at_ten(self, make_product):
        await make_product(1, stock=50)
        await add_item(USER, 1, 10)
        with pytest.raises(QuantityExceeded) as exc:
            await add_item(USER, 1, 1)
        assert exc.value.ceiling == 10
        assert exc.value.stock == 50

    async def test_new_line_over_ceiling_creates_no_cart(self, make_product):
        await make_product(1, stock=2)
        with pytest.raises(QuantityExceeded):
            await add_item(USER, 1, 3)
        assert await fetch_cart_items(USER) is None

    async def test_out_of_stock(self, make_product):
        await make_product(1, stock=0)
        with pytest.raises(OutOfStock):
            await add_item(USER, 1)

    async def test_missing_product(self, db):
        with pytest.raises(NotFound):
            await add_item(USER, 999)

    async def test_inactive_product(self, make_product):
        await make_product(1, stock=5, is_active=False)
        with pytest.raises(NotFound):
            await add_item(USER, 1)

    async def test_non_positive_quantity(self, make_product):
        await make_product(1, stock=5)
        with pytest.raises(InvalidInput):
            await add_item(USER, 1, 0)

    async def test_concurrent_adds_are_serialised(self, make_product):
        await make_product(1, stock=5)

        results = await asyncio.gather(
            add_item(USER, 1, 3),
            add_item(USER, 1, 3),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], QuantityExceeded)
        stored = await fetch_cart_items(USER)
        assert len(stored) == 1
        assert stored[0]["quantity"] == 3


class TestUpdateQuantity:
    async def test_sets_quantity(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 1)
        await update_quantity(USER, 1, 4)
        assert (await fetch_cart_items(USER))[0]["quantity"] == 4

    async def test_zero_removes_line(self, make_product):
        await make_product(1, stock=5)
        await make_product(2, stock=5)
        await add_item(USER, 1, 1)
        await add_item(USER, 2, 1)

        await update_quantity(USER, 1, 0)

        stored = await fetch_cart_items(USER)
        assert [item["product_id"] for item in stored] == [2]

    async def test_removing_last_line_deletes_cart(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 2)

        await update_quantity(USER, 1, 0)

        assert await fetch_cart_items(USER) is None
        view = await get_cart(USER)
        assert view.to_dict() == {"items": [], "total": 0, "itemCount": 0}

    async def test_ceiling_uses_live_stock(self, make_product, update_product):
        await make_product(1, stock=8)
        await add_item(USER, 1, 2)
        await update_product(1, stock=3)

        with pytest.raises(QuantityExceeded) as exc:
            await update_quantity(USER, 1, 4)

        assert exc.value.ceiling == 3
        assert (await fetch_cart_items(USER))[0]["quantity"] == 2

    async def test_no_cart(self, db):
        with pytest.raises(NotFound):
            await update_quantity(USER, 1, 1)

    async def test_no_line(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 1)
        with pytest.raises(NotFound):
            await update_quantity(USER, 2, 1)


class TestRemove:
    async def test_remove_one_line(self, make_product):
        await make_product(1, stock=5)
        await make_product(2, stock=5)
        await add_item(USER, 1, 1)
        await add_item(USER, 2, 1)

        await remove_items(USER, 2)

        assert [item["product_id"] for item in await fetch_cart_items(USER)] == [1]

    async def test_clear_deletes_cart(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 1)
        await remove_items(USER)
        assert await fetch_cart_items(USER) is None

    async def test_remove_without_cart(self, db):
        with pytest.raises(NotFound):
            await remove_items(USER, 1)


class TestGetCart:
    async def test_totals(self, make_product):
        await make_product(1, stock=5, price=100.0, title="Teak Bowl")
        await make_product(2, stock=5, price=25.5)
        await add_item(USER, 1, 2)
        await add_item(USER, 2, 3)

        view = await get_cart(USER)

        assert view.total == pytest.approx(276.5)
        assert view.itemCount == 5
        first = view.items[0]
        assert first.name == "Teak Bowl"
        assert first.image == "/placeholder.svg"
        assert first.inStock is True

    async def test_deleted_product_dropped_from_view_only(self, make_product, delete_product):
        await make_product(1, stock=5, price=10.0)
        await make_product(2, stock=5, price=20.0)
        await add_item(USER, 1, 1)
        await add_item(USER, 2, 2)

        await delete_product(2)
        view = await get_cart(USER)

        assert [line.id for line in view.items] == [1]
        assert view.total == pytest.approx(10.0)
        assert view.itemCount == 1
        assert len(await fetch_cart_items(USER)) == 2

    async def test_price_is_joined_live(self, make_product, update_product):
        await make_product(1, stock=5, price=10.0)
        await add_item(USER, 1, 3)
        await update_product(1, price=12.0)

        view = await get_cart(USER)

        assert view.items[0].quantity == 3
        assert view.items[0].price == pytest.approx(12.0)
        assert view.total == pytest.approx(36.0)

    async def test_carts_are_per_user(self, make_product):
        await make_product(1, stock=5)
        await add_item(USER, 1, 1)
        assert (await get_cart("someone-else")).items == []
