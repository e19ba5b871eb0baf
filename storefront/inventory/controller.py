from quart import Blueprint, jsonify, request

from .service import (
    get_stock,
    set_stock,
    get_product,
    get_products,
    search_products,
    list_admin_products,
    create_product,
    update_product,
    deactivate_product,
)
from ..common.auth import require_admin
from ..common.errors import InvalidInput, NotFound
from ..common.params import int_param, json_body

bp = Blueprint("inventory", __name__)


@bp.get("/products")
async def products_list():
    items = await get_products(request.args.get("category") or None)
    return jsonify({"ok": True, "products": items})


@bp.get("/products/search")
async def products_search():
    limit = int_param(request.args, "limit", 8)
    results = await search_products(request.args.get("q", ""), limit)
    return jsonify({"ok": True, "products": results})


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    prod = await get_product(product_id)
    if not prod or not prod.get("is_active", True):
        raise NotFound("Product not found")
    stock = await get_stock(product_id)
    return jsonify({"ok": True, "product": prod, "stock": stock})


@bp.put("/admin/stock")
async def stock_put():
    require_admin()
    data = await request.get_json(force=True, silent=True) or {}
    try:
        product_id = int(data["product_id"])
        new_stock = int(data["stock"])
    except (KeyError, TypeError, ValueError):
        raise InvalidInput("product_id and numeric stock are required")
    updated = await set_stock(product_id, new_stock)
    return jsonify({"ok": True, "product_id": product_id, "stock": updated})


@bp.get("/admin/products")
async def admin_products_list():
    require_admin()
    products = await list_admin_products(request.args.get("status") or None, request.args.get("search"))
    return jsonify({"ok": True, "products": products, "count": len(products)})


@bp.post("/admin/products")
async def admin_product_create():
    require_admin()
    product = await create_product(await json_body())
    return jsonify({"ok": True, "message": "Product created successfully", "product": product}), 201


@bp.patch("/admin/products/<int:product_id>")
async def admin_product_update(product_id: int):
    require_admin()
    product = await update_product(product_id, await json_body())
    return jsonify({"ok": True, "message": "Product updated successfully", "product": product})


@bp.delete("/admin/products/<int:product_id>")
async def admin_product_deactivate(product_id: int):
    require_admin()
    product = await deactivate_product(product_id)
    return jsonify({"ok": True, "message": "Product deactivated", "product": product})
