from quart import Blueprint, jsonify

from .service import list_categories, create_category, update_category, delete_category
from ..common.auth import require_admin
from ..common.params import json_body

bp = Blueprint("categories", __name__)


@bp.get("/categories")
async def categories_list():
    return jsonify({"ok": True, "categories": await list_categories(active_only=True)})


@bp.get("/admin/categories")
async def admin_categories_list():
    require_admin()
    categories = await list_categories(active_only=False)
    return jsonify({"ok": True, "categories": categories, "count": len(categories)})


@bp.post("/admin/categories")
async def admin_category_create():
    require_admin()
    category = await create_category(await json_body())
    return jsonify({"ok": True, "message": "Category created successfully", "category": category}), 201


@bp.patch("/admin/categories/<int:category_id>")
async def admin_category_update(category_id: int):
    require_admin()
    category = await update_category(category_id, await json_body())
    return jsonify({"ok": True, "message": "Category updated successfully", "category": category})


@bp.delete("/admin/categories/<int:category_id>")
async def admin_category_delete(category_id: int):
    require_admin()
    detached = await delete_category(category_id)
    return jsonify({"ok": True, "message": f"Category deleted; {detached} products left uncategorised"})
