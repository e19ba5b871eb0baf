"""Back-office figures computed from orders and products.

There is no customer table: a customer is any user id that has placed an
order, and their figures are aggregated from those orders.
"""
import logging
import math
from datetime import timedelta
from typing import Any, Dict, List

from ..common.config import settings
from ..common.database import (
    count_customers,
    fetch_customer_stat,
    fetch_customer_stats,
    fetch_low_stock,
    fetch_orders,
    fetch_orders_since,
)
from ..common.db import utcnow
from ..common.errors import InvalidInput, NotFound
from ..inventory.service import display_name
from ..orders.model import ORDER_STATUSES, Order
from ..orders.service import order_row
from ..orders.tracking import format_date

_logger = logging.getLogger(__name__)

MAX_DASHBOARD_DAYS = 365
TOP_PRODUCTS = 5
RECENT_ORDERS = 5


def _money(value: float) -> float:
    return round(value or 0, 2)


def daily_revenue(paid: List[Order]) -> List[Dict[str, Any]]:
    days: Dict[str, Dict[str, Any]] = {}
    for order in paid:
        day = order.created_at.date().isoformat()
        bucket = days.setdefault(day, {"date": day, "revenue": 0.0, "orders": 0})
        bucket["revenue"] += order.total or 0
        bucket["orders"] += 1
    return [{**bucket, "revenue": _money(bucket["revenue"])} for _, bucket in sorted(days.items())]


def top_products(paid: List[Order], limit: int = TOP_PRODUCTS) -> List[Dict[str, Any]]:
    sold: Dict[int, Dict[str, Any]] = {}
    for order in paid:
        for item in order.items or []:
            product_id = int(item["product_id"])
            entry = sold.setdefault(product_id, {"id": product_id, "name": item.get("name"), "quantity": 0, "revenue": 0.0})
            entry["quantity"] += int(item.get("quantity") or 0)
            entry["revenue"] += item.get("total") or 0
    ranked = sorted(sold.values(), key=lambda e: (-e["quantity"], -e["revenue"], e["id"]))
    return [{**entry, "revenue": _money(entry["revenue"])} for entry in ranked[:limit]]


async def dashboard(days: int = 30) -> Dict[str, Any]:
    if not 1 <= days <= MAX_DASHBOARD_DAYS:
        raise InvalidInput(f"days must be between 1 and {MAX_DASHBOARD_DAYS}")
    orders = await fetch_orders_since(utcnow() - timedelta(days=days))
    paid = [order for order in orders if order.payment_status == "paid"]
    revenue = sum(order.total or 0 for order in paid)

    breakdown = {status: 0 for status in ORDER_STATUSES}
    for order in orders:
        breakdown[order.status] = breakdown.get(order.status, 0) + 1

    recent = []
    for order in await fetch_orders(limit=RECENT_ORDERS):
        row = order_row(order)
        row["customerId"] = order.customer_id
        recent.append(row)

    low_stock = await fetch_low_stock(settings.LOW_STOCK_THRESHOLD)
    _logger.info("Dashboard computed | days=%s orders=%s paid=%s", days, len(orders), len(paid))
    return {
        "period": {"days": days},
        "totals": {
            "revenue": _money(revenue),
            "orders": len(orders),
            "paidOrders": len(paid),
            "averageOrderValue": _money(revenue / len(paid)) if paid else 0,
        },
        "statusBreakdown": breakdown,
        "dailyRevenue": daily_revenue(paid),
        "topProducts": top_products(paid),
        "recentOrders": recent,
        "lowStock": [
            {"id": prod["id"], "name": display_name(prod), "stock": prod["stock"]} for prod in low_stock
        ],
    }


def _customer_view(stat: Dict[str, Any]) -> Dict[str, Any]:
    orders = int(stat["orders"] or 0)
    spent = stat["spent"] or 0
    return {
        "customerId": stat["customer_id"],
        "totalOrders": orders,
        "totalSpent": _money(spent),
        "averageOrderValue": _money(spent / orders) if orders else 0,
        "lastOrderDate": format_date(stat["last_order_at"]),
    }


async def list_customers(page: int = 1, limit: int = 20) -> Dict[str, Any]:
    page = max(page, 1)
    limit = max(limit, 1)
    stats = await fetch_customer_stats(offset=(page - 1) * limit, limit=limit)
    total = await count_customers()
    return {
        "customers": [_customer_view(stat) for stat in stats],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


async def get_customer(customer_id: str) -> Dict[str, Any]:
    stat = await fetch_customer_stat(customer_id)
    if stat is None:
        raise NotFound("Customer not found")
    customer = _customer_view(stat)
    customer["orders"] = [order_row(order) for order in await fetch_orders(customer_id=customer_id)]
    return customer
