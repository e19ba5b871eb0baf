from quart import Blueprint, jsonify, request

from .service import dashboard, list_customers, get_customer
from ..common.auth import require_admin
from ..common.params import int_param

bp = Blueprint("admin", __name__)


@bp.get("/admin/dashboard")
async def admin_dashboard():
    require_admin()
    days = int_param(request.args, "days", 30)
    return jsonify({"ok": True, **await dashboard(days)})


@bp.get("/admin/customers")
async def admin_customers_list():
    require_admin()
    page = int_param(request.args, "page", 1)
    limit = int_param(request.args, "limit", 20)
    return jsonify({"ok": True, **await list_customers(page, limit)})


@bp.get("/admin/customers/<customer_id>")
async def admin_customer_detail(customer_id: str):
    require_admin()
    return jsonify({"ok": True, "customer": await get_customer(customer_id)})
