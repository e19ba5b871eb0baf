from quart import Blueprint, jsonify, request

from .service import (
    CheckoutRequest,
    place_order,
    list_orders,
    get_order,
    admin_list_orders,
    admin_get_order,
    admin_update_order,
)
from ..common.auth import current_user_id, require_admin
from ..common.params import int_param, json_body

bp = Blueprint("orders", __name__)


@bp.post("/orders")
async def orders_create():
    user_id = current_user_id()
    data = await request.get_json(force=True, silent=True) or {}
    result = await place_order(user_id, CheckoutRequest.from_json(data))
    return jsonify({"ok": True, "message": "Order placed successfully", **result}), 201


@bp.get("/orders")
async def orders_list():
    user_id = current_user_id()
    page = int_param(request.args, "page", 1)
    limit = int_param(request.args, "limit", 10)
    return jsonify({"ok": True, **await list_orders(user_id, page, limit)})


@bp.get("/orders/<int:order_id>")
async def order_detail(order_id: int):
    user_id = current_user_id()
    return jsonify({"ok": True, "order": await get_order(user_id, order_id)})


@bp.get("/admin/orders")
async def admin_orders_list():
    require_admin()
    orders = await admin_list_orders(request.args.get("status") or None)
    return jsonify({"ok": True, "orders": orders, "count": len(orders)})


@bp.get("/admin/orders/<int:order_id>")
async def admin_order_detail(order_id: int):
    require_admin()
    return jsonify({"ok": True, "order": await admin_get_order(order_id)})


@bp.patch("/admin/orders/<int:order_id>")
async def admin_order_update(order_id: int):
    require_admin()
    order = await admin_update_order(order_id, await json_body())
    return jsonify({"ok": True, "message": "Order updated successfully", "order": order})
