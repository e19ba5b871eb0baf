import logging
import math
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .model import Order, Payment, ORDER_STATUSES, PAYMENT_STATUSES
from .tracking import build_timeline, tracking_summary, format_date
from ..common.config import settings
from ..common.database import (
    count_orders,
    create_order_with_payment,
    fetch_cart_items,
    fetch_order,
    fetch_orders,
    fetch_payment,
    fetch_products_by_ids,
    update_order,
)
from ..common.errors import InvalidInput, NotFound
from ..common.kafka_client import publish_event
from ..inventory.service import display_name

_logger = logging.getLogger(__name__)

_PAYMENT_METHOD_ALIASES = {
    "gpay": "upi",
    "phonepe": "upi",
    "paytm": "upi",
    "upi": "upi",
    "card": "card",
    "netbanking": "netbanking",
    "cod": "cod",
}

_SHIPPING_FIELDS = {
    "trackingNumber": "tracking_number",
    "courierName": "courier_name",
    "shippedDate": "shipped_date",
    "expectedDelivery": "expected_delivery",
    "deliveredDate": "delivered_date",
}
_SHIPPING_DATE_FIELDS = {"shipped_date", "expected_delivery", "delivered_date"}


@dataclass
class CheckoutItem:
    id: int
    name: str
    price: float
    quantity: int
    image: Optional[str] = None


@dataclass
class CheckoutRequest:
    items: List[CheckoutItem]
    shipping_address: Dict[str, Any]
    payment_method: str
    shipping_charge: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    total: Optional[float] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CheckoutRequest":
        raw_items = data.get("items") or []
        address = data.get("shippingAddress")
        method = data.get("paymentMethod")
        if not raw_items or not address or not method:
            raise InvalidInput("Missing required order information")
        try:
            items = [
                CheckoutItem(
                    id=int(it["id"]),
                    name=str(it.get("name") or ""),
                    price=float(it["price"]),
                    quantity=int(it.get("quantity", 1)),
                    image=it.get("image"),
                )
                for it in raw_items
            ]
            return cls(
                items=items,
                shipping_address=dict(address),
                payment_method=str(method),
                shipping_charge=float(data.get("shippingCharge") or 0),
                tax=float(data.get("taxAmount") or 0),
                discount=float(data.get("discountAmount") or 0),
                total=float(data["totalAmount"]) if data.get("totalAmount") else None,
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidInput("Order items need numeric id, price and quantity")


def normalize_payment_method(method: str) -> str:
    return _PAYMENT_METHOD_ALIASES.get((method or "").lower(), "upi")


def _millis() -> int:
    return int(time.time() * 1000)


def _transaction_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"TXN{_millis()}{suffix}"


def _address(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "full_name": raw.get("fullName"),
        "mobile": raw.get("mobile"),
        "address_line1": raw.get("addressLine1"),
        "address_line2": raw.get("addressLine2"),
        "city": raw.get("city"),
        "state": raw.get("state"),
        "pincode": raw.get("pincode"),
        "country": raw.get("country") or "India",
        "address_type": raw.get("addressType") or "home",
    }


async def place_order(user_id: str, req: CheckoutRequest) -> Dict[str, Any]:
    cart_items = await fetch_cart_items(user_id)
    if not cart_items:
        raise InvalidInput("Cart is empty")
    in_cart = {int(item["product_id"]) for item in cart_items}
    products = await fetch_products_by_ids(in_cart)

    subtotal = 0.0
    order_items = []
    # Repeated lines for one product draw on the same stock
    requested: Dict[int, int] = {}
    for item in req.items:
        if item.quantity < 1:
            raise InvalidInput(f"Invalid quantity for {item.name}")
        if item.id not in in_cart:
            raise InvalidInput(f"Product {item.name} not found in cart")
        product = products.get(item.id)
        if product is None:
            raise InvalidInput(f"Product {item.name} not found")
        available = int(product["stock"] or 0)
        requested[item.id] = requested.get(item.id, 0) + item.quantity
        if available < requested[item.id]:
            raise InvalidInput(f"Insufficient stock for {item.name}. Available: {available}")

        line_total = item.price * item.quantity
        subtotal += line_total
        order_items.append({
            "product_id": item.id,
            "name": display_name(product),
            "image": product["image_url"] or item.image or "/placeholder.svg",
            "unit_price": item.price,
            "quantity": item.quantity,
            "total": line_total,
        })

    method = normalize_payment_method(req.payment_method)
    total = req.total if req.total is not None else subtotal
    order_number = f"ORD-{_millis()}{await count_orders() + 1}"

    order, payment = await create_order_with_payment(
        {
            "order_number": order_number,
            "customer_id": user_id,
            "status": "pending",
            "payment_status": "pending",
            "payment_method": method,
            "items": order_items,
            "subtotal": subtotal,
            "shipping_charge": req.shipping_charge,
            "tax": req.tax,
            "discount": req.discount,
            "total": total,
            "shipping_address": _address(req.shipping_address),
        },
        {
            "user_id": user_id,
            "method": method,
            "status": "pending",
            "amount": total,
            "transaction_id": _transaction_id(),
        },
    )
    _logger.info("Order created | order_id=%s number=%s user_id=%s total=%s", order.id, order_number, user_id, total)

    result: Dict[str, Any] = {
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "status": order.status,
            "paymentStatus": order.payment_status,
            "total": order.total,
        },
        "payment": {
            "id": payment.id,
            "status": payment.status,
            "transactionId": payment.transaction_id,
        },
    }

    # Cash on delivery is confirmed by an admin, not the payments worker
    if method != "cod":
        event = {
            "order_id": order.id,
            "user_id": user_id,
            "items": [{"product_id": it["product_id"], "quantity": it["quantity"]} for it in order_items],
        }
        try:
            await publish_event(settings.ORDER_TOPIC, event)
        except Exception as e:
            _logger.warning("Order event not published | order_id=%s err=%s", order.id, e)
            result["warning"] = "broker_unavailable"
    return result


def _item_view(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("product_id"),
        "name": item.get("name") or "Unknown Product",
        "price": item.get("unit_price") or 0,
        "quantity": item.get("quantity") or 1,
        "image": item.get("image") or "/placeholder.svg",
        "total": item.get("total") or 0,
    }


def _payment_view(payment: Optional[Payment]) -> Optional[Dict[str, Any]]:
    if payment is None:
        return None
    return {
        "id": payment.id,
        "method": payment.method,
        "status": payment.status,
        "transactionId": payment.transaction_id,
        "amount": payment.amount,
        "date": format_date(payment.paid_at) or None,
    }


def order_detail(order: Order, payment: Optional[Payment], admin: bool = False) -> Dict[str, Any]:
    detail = {
        "id": order.id,
        "orderNumber": order.order_number,
        "date": format_date(order.created_at),
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentMethod": order.payment_method,
        "items": [_item_view(item) for item in order.items or []],
        "summary": {
            "subtotal": order.subtotal or 0,
            "shipping": order.shipping_charge or 0,
            "tax": order.tax or 0,
            "discount": order.discount or 0,
            "total": order.total or 0,
        },
        "shippingAddress": order.shipping_address or {},
        "payment": _payment_view(payment),
        "shipping": order.shipping_details or {},
        "tracking": [checkpoint.to_dict() for checkpoint in build_timeline(order)],
    }
    if admin:
        detail["customerId"] = order.customer_id
        detail["adminNotes"] = order.admin_notes or ""
    return detail


def order_row(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "date": format_date(order.created_at),
        "total": order.total,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "items": len(order.items or []),
        "products": [_item_view(item) for item in order.items or []],
        "tracking": tracking_summary(order),
    }


async def list_orders(user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    page = max(page, 1)
    limit = max(limit, 1)
    orders = await fetch_orders(customer_id=user_id, offset=(page - 1) * limit, limit=limit)
    total = await count_orders(customer_id=user_id)
    return {
        "orders": [order_row(order) for order in orders],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


async def get_order(user_id: str, order_id: int) -> Dict[str, Any]:
    order = await fetch_order(order_id, customer_id=user_id)
    if order is None:
        raise NotFound("Order not found")
    return order_detail(order, await fetch_payment(order_id))


async def admin_list_orders(status: Optional[str] = None) -> List[Dict[str, Any]]:
    if status is not None and status not in ORDER_STATUSES:
        raise InvalidInput(f"Unknown order status: {status}")
    rows = []
    for order in await fetch_orders(status=status):
        row = order_row(order)
        row["customerId"] = order.customer_id
        rows.append(row)
    return rows


async def admin_get_order(order_id: int) -> Dict[str, Any]:
    order = await fetch_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    return order_detail(order, await fetch_payment(order_id), admin=True)


def _parse_iso(value: str) -> datetime:
    # fromisoformat only accepts a trailing Z from Python 3.11 on
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _shipping_details(raw: Any, current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidInput("shippingDetails must be an object")
    details = dict(current or {})
    for api_key, value in raw.items():
        key = _SHIPPING_FIELDS.get(api_key)
        if key is None:
            raise InvalidInput(f"Unknown shipping field: {api_key}")
        if key in _SHIPPING_DATE_FIELDS and value:
            try:
                value = _parse_iso(str(value)).isoformat()
            except ValueError:
                raise InvalidInput(f"{api_key} must be an ISO-8601 date")
        details[key] = value or None
    return details


async def admin_update_order(order_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if "status" in updates:
        if updates["status"] not in ORDER_STATUSES:
            raise InvalidInput(f"Unknown order status: {updates['status']}")
        values["status"] = updates["status"]
    if "paymentStatus" in updates:
        if updates["paymentStatus"] not in PAYMENT_STATUSES:
            raise InvalidInput(f"Unknown payment status: {updates['paymentStatus']}")
        values["payment_status"] = updates["paymentStatus"]
    if "adminNotes" in updates:
        values["admin_notes"] = updates["adminNotes"]
    if "shippingDetails" in updates:
        existing = await fetch_order(order_id)
        if existing is None:
            raise NotFound("Order not found")
        values["shipping_details"] = _shipping_details(updates["shippingDetails"], existing.shipping_details)
    if not values:
        raise InvalidInput("Nothing to update")

    order = await update_order(order_id, values)
    if order is None:
        raise NotFound("Order not found")
    _logger.info("Admin order update | order_id=%s fields=%s", order_id, sorted(values))
    return {
        "id": order.id,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "shipping": order.shipping_details or {},
        "adminNotes": order.admin_notes or "",
    }
