from datetime import datetime

import pytest

from order_status import OrderStatus, TransitionError, describe, parse_status, plan_transition, status_of

NOW = datetime(2026, 3, 1, 12, 0, 0)


def test_delivered_implies_confirmed_and_shipped():
    update = plan_transition({"status": "ordered"}, OrderStatus.DELIVERED, NOW)
    assert update["status"] == "delivered"
    assert update["is_confirmed"] and update["is_shipped"] and update["is_delivered"]
    assert update["delivered_at"] == NOW
    assert update["is_cancelled"] is False
    assert update["cancelled_at"] is None


def test_moving_back_clears_later_flags():
    order = {"status": "shipped", "is_confirmed": True, "is_shipped": True}
    update = plan_transition(order, OrderStatus.CONFIRMED, NOW)
    assert update["is_confirmed"] is True
    assert update["is_shipped"] is False
    assert update["shipped_at"] is None


def test_cancel_clears_fulfilment_flags():
    update = plan_transition({"status": "shipped"}, OrderStatus.CANCELLED, NOW)
    assert update["is_cancelled"] is True
    assert update["cancelled_at"] == NOW
    assert not update["is_shipped"]


def test_cancelled_orders_are_terminal():
    with pytest.raises(TransitionError, match="Cancelled orders cannot be updated"):
        plan_transition({"status": "cancelled"}, OrderStatus.CONFIRMED, NOW)
    with pytest.raises(TransitionError, match="already cancelled"):
        plan_transition({"status": "cancelled"}, OrderStatus.CANCELLED, NOW,
                        cancelled_message="Order is already cancelled")


def test_delivered_orders_cannot_be_cancelled():
    with pytest.raises(TransitionError, match="Cannot cancel a delivered order"):
        plan_transition({"status": "delivered"}, OrderStatus.CANCELLED, NOW)


def test_status_derived_from_flags_when_field_missing():
    assert status_of({"is_confirmed": True, "is_shipped": True}) is OrderStatus.SHIPPED
    assert status_of({"is_cancelled": True, "is_confirmed": True}) is OrderStatus.CANCELLED
    assert status_of({}) is OrderStatus.ORDERED


def test_parse_status_rejects_unknown_values():
    assert parse_status("shipped") is OrderStatus.SHIPPED
    with pytest.raises(TransitionError, match="Invalid status"):
        parse_status("lost")


def test_describe_reports_flags_and_stamps():
    info = describe({"status": "confirmed", "is_confirmed": True, "confirmed_at": NOW, "is_paid": True})
    assert info["status"] == "confirmed"
    assert info["is_paid"] is True
    assert info["confirmed_at"] == NOW
    assert info["is_shipped"] is False
