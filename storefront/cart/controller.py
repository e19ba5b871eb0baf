from quart import Blueprint, jsonify, request

from .service import add_item, update_quantity, remove_items, get_cart
from ..common.auth import current_user_id
from ..common.errors import InvalidInput
from ..common.params import int_param

bp = Blueprint("cart", __name__)


@bp.get("/cart")
async def cart_get():
    user_id = current_user_id()
    view = await get_cart(user_id)
    return jsonify({"ok": True, **view.to_dict()})


@bp.post("/cart")
async def cart_add():
    user_id = current_user_id()
    data = await request.get_json(force=True, silent=True) or {}
    product_id = int_param(data, "productId")
    quantity = int_param(data, "quantity", 1)
    await add_item(user_id, product_id, quantity)
    return jsonify({"ok": True, "message": "Item added to cart successfully"})


@bp.patch("/cart")
async def cart_update():
    user_id = current_user_id()
    data = await request.get_json(force=True, silent=True) or {}
    product_id = int_param(data, "productId")
    quantity = int_param(data, "quantity")
    if quantity < 0:
        raise InvalidInput("Quantity cannot be negative")
    await update_quantity(user_id, product_id, quantity)
    return jsonify({"ok": True, "message": "Cart updated successfully"})


@bp.delete("/cart")
async def cart_remove():
    user_id = current_user_id()
    product_id = int_param(request.args, "productId", None)
    await remove_items(user_id, product_id)
    message = "Item removed from cart" if product_id is not None else "Cart cleared successfully"
    return jsonify({"ok": True, "message": message})
