from quart import Blueprint, jsonify, request

from .service import add_product, remove_product, get_wishlist
from ..common.auth import current_user_id
from ..common.params import int_param

bp = Blueprint("wishlist", __name__)


@bp.get("/wishlist")
async def wishlist_get():
    view = await get_wishlist(current_user_id())
    return jsonify({"ok": True, **view.to_dict()})


@bp.post("/wishlist")
async def wishlist_add():
    user_id = current_user_id()
    data = await request.get_json(force=True, silent=True) or {}
    await add_product(user_id, int_param(data, "productId"))
    return jsonify({"ok": True, "message": "Added to wishlist"})


@bp.delete("/wishlist")
async def wishlist_remove():
    user_id = current_user_id()
    await remove_product(user_id, int_param(request.args, "productId"))
    return jsonify({"ok": True, "message": "Removed from wishlist"})
