"""
Order lifecycle.

An order is in exactly one state. The stored boolean flags are derived from
that state through ``IMPLIED_FLAGS`` so that, for example, a delivered order
always reads as confirmed and shipped too.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet


class OrderStatus(str, Enum):
    ORDERED = "ordered"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TransitionError(Exception):
    pass


# flag -> timestamp field
FLAG_TIMESTAMPS = {
    "is_confirmed": "confirmed_at",
    "is_shipped": "shipped_at",
    "is_delivered": "delivered_at",
    "is_cancelled": "cancelled_at",
}

IMPLIED_FLAGS: Dict[OrderStatus, FrozenSet[str]] = {
    OrderStatus.ORDERED: frozenset(),
    OrderStatus.CONFIRMED: frozenset({"is_confirmed"}),
    OrderStatus.SHIPPED: frozenset({"is_confirmed", "is_shipped"}),
    OrderStatus.DELIVERED: frozenset({"is_confirmed", "is_shipped", "is_delivered"}),
    OrderStatus.CANCELLED: frozenset({"is_cancelled"}),
}


def parse_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise TransitionError("Invalid status")


def status_of(order: Dict[str, Any]) -> OrderStatus:
    stored = order.get("status")
    if stored in OrderStatus._value2member_map_:
        return OrderStatus(stored)
    # Documents written before the status field existed
    if order.get("is_cancelled"):
        return OrderStatus.CANCELLED
    if order.get("is_delivered"):
        return OrderStatus.DELIVERED
    if order.get("is_shipped"):
        return OrderStatus.SHIPPED
    if order.get("is_confirmed"):
        return OrderStatus.CONFIRMED
    return OrderStatus.ORDERED


def check_transition(order: Dict[str, Any], target: OrderStatus, cancelled_message: str = "Cancelled orders cannot be updated") -> None:
    current = status_of(order)
    if current is OrderStatus.CANCELLED:
        raise TransitionError(cancelled_message)
    if target is OrderStatus.CANCELLED and current is OrderStatus.DELIVERED:
        raise TransitionError("Cannot cancel a delivered order")


def plan_transition(order: Dict[str, Any], target: OrderStatus, now: datetime, **check_kwargs) -> Dict[str, Any]:
    """Return the ``$set`` document moving ``order`` to ``target``.

    Every flag and timestamp is reset, then the flags implied by ``target`` are
    set and stamped with ``now``.
    """
    check_transition(order, target, **check_kwargs)
    implied = IMPLIED_FLAGS[target]
    update: Dict[str, Any] = {"status": target.value, "updated_at": now}
    for flag, stamp in FLAG_TIMESTAMPS.items():
        on = flag in implied
        update[flag] = on
        update[stamp] = now if on else None
    return update


def describe(order: Dict[str, Any]) -> Dict[str, Any]:
    info = {"status": status_of(order).value}
    info["is_paid"] = bool(order.get("is_paid"))
    for flag, stamp in FLAG_TIMESTAMPS.items():
        info[flag] = bool(order.get(flag))
        info[stamp] = order.get(stamp)
    return info
