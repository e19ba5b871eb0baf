"""Order tracking timeline.

Maps an order's raw status onto a fixed five-checkpoint delivery timeline.
Cancelled orders show only "ordered" as completed, and a checkpoint can be
completed with no date when the shipping details lack the matching field.
Both behaviours are kept as they are until product decides otherwise.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

CHECKPOINTS = (
    ("ordered", "Order Placed"),
    ("confirmed", "Order Confirmed"),
    ("shipped", "Shipped"),
    ("out-for-delivery", "Out for Delivery"),
    ("delivered", "Delivered"),
)

_STAGE_BY_STATUS = {
    "pending": "ordered",
    "confirmed": "confirmed",
    "processing": "confirmed",
    "shipped": "shipped",
    "delivered": "delivered",
    "cancelled": "ordered",
}

_LABEL_BY_STATUS = {
    "pending": "Order Placed",
    "confirmed": "Order Confirmed",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

_PROGRESS_BY_STATUS = {
    "pending": 20,
    "confirmed": 40,
    "processing": 60,
    "shipped": 80,
    "delivered": 100,
    "cancelled": 0,
}

# checkpoint -> key inside the order's shipping_details record
_SHIPPING_DATE_KEYS = {
    "shipped": "shipped_date",
    "out-for-delivery": "expected_delivery",
    "delivered": "delivered_date",
}


@dataclass
class Checkpoint:
    status: str
    description: str
    date: str
    completed: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def timeline_stage(raw_status: Optional[str]) -> str:
    return _STAGE_BY_STATUS.get(raw_status or "", "ordered")


def status_label(raw_status: Optional[str]) -> str:
    return _LABEL_BY_STATUS.get(raw_status or "", "Order Placed")


def progress(raw_status: Optional[str]) -> int:
    return _PROGRESS_BY_STATUS.get(raw_status or "", 0)


def format_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _checkpoint_dates(order: Any) -> Dict[str, Any]:
    shipping = getattr(order, "shipping_details", None) or {}
    dates = {
        "ordered": getattr(order, "created_at", None),
        "confirmed": getattr(order, "modified_at", None),
    }
    for checkpoint, key in _SHIPPING_DATE_KEYS.items():
        dates[checkpoint] = shipping.get(key)
    return dates


def build_timeline(order: Any) -> List[Checkpoint]:
    """Return the five checkpoints for ``order`` in delivery order.

    ``order`` needs ``status``, ``created_at``, ``modified_at`` and an
    optional ``shipping_details`` mapping.
    """
    stage = timeline_stage(getattr(order, "status", None))
    current = [name for name, _ in CHECKPOINTS].index(stage)
    dates = _checkpoint_dates(order)
    return [
        Checkpoint(
            status=name,
            description=description,
            date=format_date(dates.get(name)),
            completed=index <= current,
        )
        for index, (name, description) in enumerate(CHECKPOINTS)
    ]


def tracking_summary(order: Any) -> Dict[str, Any]:
    shipping = getattr(order, "shipping_details", None) or {}
    return {
        "currentStatus": status_label(order.status),
        "progress": progress(order.status),
        "lastUpdate": format_date(order.modified_at),
        "estimatedDelivery": format_date(shipping.get("expected_delivery")) or None,
    }
