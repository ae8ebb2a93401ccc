# Overview: Pytest coverage for the order state machine, kitchen workflow and void.

"""
Order Transition Tests

Verifies:
1. States cannot be skipped; terminal states accept nothing
2. COMPLETED stamps completed_at and frees the table
3. Void restores stock exactly once with one RETURN entry per item
4. Kitchen staff can only move CONFIRMED -> COOKING -> READY
"""

import pytest

from restopos.errors import AlreadyCancelledError, InvalidTransitionError, PermissionDeniedError, ValidationError
from restopos.extensions import db
from restopos.models import DiningTable, InventoryLog, PaymentTransaction
from restopos.models.inventory import REASON_ORDER, REASON_RETURN
from restopos.models.tables import TABLE_AVAILABLE
from restopos.services import lifecycle_service, order_service, payment_service
from restopos.services.event_service import KitchenUpdateEvent, OrderStatusUpdateEvent
from restopos.services.lifecycle_service import can_transition

from conftest import pos_order, stock_of


@pytest.fixture
def order(manager_ctx, latte):
    return order_service.create_order(manager_ctx, pos_order((latte.id, 2)))


def advance(ctx, order_id, *statuses):
    result = None
    for status in statuses:
        result = lifecycle_service.update_status(ctx, order_id, status)
    return result


def table_row(table_id):
    return db.session.query(DiningTable).populate_existing().filter_by(id=table_id).one()


class TestStateMachine:

    @pytest.mark.parametrize("current,new,allowed", [
        ("PENDING", "CONFIRMED", True),
        ("PENDING", "COOKING", False),
        ("CONFIRMED", "READY", False),
        ("COOKING", "READY", True),
        ("READY", "COMPLETED", True),
        ("READY", "CANCELLED", True),
        ("COMPLETED", "CANCELLED", False),
        ("CANCELLED", "PENDING", False),
    ])
    def test_transition_table(self, current, new, allowed):
        assert can_transition(current, new) is allowed

    def test_cooking_from_pending_rejected(self, manager_ctx, order):
        with pytest.raises(InvalidTransitionError) as exc:
            lifecycle_service.update_status(manager_ctx, order.id, "COOKING")
        assert exc.value.details == {"current_status": "PENDING", "requested_status": "COOKING"}

    def test_ready_from_confirmed_rejected(self, manager_ctx, order):
        advance(manager_ctx, order.id, "CONFIRMED")
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.update_status(manager_ctx, order.id, "READY")

    def test_full_happy_path_sets_completed_at(self, manager_ctx, order):
        result = advance(manager_ctx, order.id, "CONFIRMED", "COOKING", "READY", "COMPLETED")

        assert result.status == "COMPLETED"
        assert result.completed_at is not None

    def test_completed_is_terminal(self, manager_ctx, order):
        advance(manager_ctx, order.id, "CONFIRMED", "COOKING", "READY", "COMPLETED")
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.update_status(manager_ctx, order.id, "READY")

    def test_unknown_status_rejected(self, manager_ctx, order):
        with pytest.raises(ValidationError):
            lifecycle_service.update_status(manager_ctx, order.id, "SERVED")

    def test_status_event_published(self, manager_ctx, order, events):
        advance(manager_ctx, order.id, "CONFIRMED")

        (event,) = [e for e in events if isinstance(e, OrderStatusUpdateEvent)]
        assert event.previous_status == "PENDING"
        assert event.status == "CONFIRMED"
        assert event.order_number == order.order_number


class TestTableCoupling:

    def test_completed_order_frees_table(self, manager_ctx, latte, table_a):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 1), table_id=table_a.id))
        assert table_row(table_a.id).current_order_id == order.id

        advance(manager_ctx, order.id, "CONFIRMED", "COOKING", "READY", "COMPLETED")

        table = table_row(table_a.id)
        assert table.status == TABLE_AVAILABLE
        assert table.current_order_id is None

    def test_voided_order_frees_table(self, manager_ctx, latte, table_a):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 1), table_id=table_a.id))
        lifecycle_service.void_order(manager_ctx, order.id, reason="Guest left")

        table = table_row(table_a.id)
        assert table.status == TABLE_AVAILABLE
        assert table.current_order_id is None


class TestVoid:

    def test_void_restores_stock_and_logs_return(self, manager_ctx, order, latte):
        assert stock_of(latte.id) == 1

        voided = lifecycle_service.void_order(manager_ctx, order.id, reason="Wrong order")

        assert voided.status == "CANCELLED"
        assert voided.cancelled_at is not None
        assert voided.void_reason == "Wrong order"
        assert stock_of(latte.id) == 3

        logs = (
            db.session.query(InventoryLog)
            .filter_by(reference_order_id=order.id)
            .order_by(InventoryLog.id)
            .all()
        )
        assert [(entry.reason, entry.qty_change) for entry in logs] == [(REASON_ORDER, -2), (REASON_RETURN, 2)]
        assert logs[1].qty_before == 1
        assert logs[1].qty_after == 3

    def test_second_void_rejected_without_stock_change(self, manager_ctx, order, latte):
        lifecycle_service.void_order(manager_ctx, order.id)

        with pytest.raises(AlreadyCancelledError):
            lifecycle_service.void_order(manager_ctx, order.id)

        assert stock_of(latte.id) == 3
        assert db.session.query(InventoryLog).filter_by(reason=REASON_RETURN).count() == 1

    def test_cancel_via_status_uses_void_path(self, manager_ctx, order, latte):
        result = lifecycle_service.update_status(manager_ctx, order.id, "CANCELLED")

        assert result.status == "CANCELLED"
        assert stock_of(latte.id) == 3

    def test_cashier_cannot_void(self, cashier_ctx, order, latte):
        with pytest.raises(PermissionDeniedError):
            lifecycle_service.void_order(cashier_ctx, order.id)

        with pytest.raises(PermissionDeniedError):
            lifecycle_service.update_status(cashier_ctx, order.id, "CANCELLED")
        assert stock_of(latte.id) == 1

    def test_void_paid_order_refunds(self, manager_ctx, order):
        payment_service.pay(manager_ctx, order.id, "CASH", 70000)

        voided = lifecycle_service.void_order(manager_ctx, order.id)

        assert voided.payment_status == "REFUNDED"
        void_tx = db.session.query(PaymentTransaction).filter_by(
            order_id=order.id, transaction_type="VOID"
        ).one()
        assert void_tx.amount == -66000

    def test_completed_order_can_be_voided(self, manager_ctx, order, latte):
        advance(manager_ctx, order.id, "CONFIRMED", "COOKING", "READY", "COMPLETED")

        voided = lifecycle_service.void_order(manager_ctx, order.id)
        assert voided.status == "CANCELLED"
        assert stock_of(latte.id) == 3

    def test_void_publishes_status_event(self, manager_ctx, order, events):
        lifecycle_service.void_order(manager_ctx, order.id)

        (event,) = [e for e in events if isinstance(e, OrderStatusUpdateEvent)]
        assert event.status == "CANCELLED"
        assert event.previous_status == "PENDING"


class TestKitchen:

    def test_kitchen_flow(self, manager_ctx, kitchen_ctx, order, events):
        advance(manager_ctx, order.id, "CONFIRMED")

        cooking = lifecycle_service.kitchen_update(kitchen_ctx, order.id, "COOKING")
        assert cooking.status == "COOKING"

        ready = lifecycle_service.kitchen_update(kitchen_ctx, order.id, "READY")
        assert ready.status == "READY"

        kitchen_events = [e.status for e in events if isinstance(e, KitchenUpdateEvent)]
        assert kitchen_events == ["COOKING", "READY"]

    def test_kitchen_cannot_start_pending_order(self, kitchen_ctx, order):
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.kitchen_update(kitchen_ctx, order.id, "COOKING")

    def test_kitchen_cannot_complete(self, manager_ctx, kitchen_ctx, order):
        advance(manager_ctx, order.id, "CONFIRMED", "COOKING", "READY")
        with pytest.raises(ValidationError):
            lifecycle_service.kitchen_update(kitchen_ctx, order.id, "COMPLETED")

    def test_kitchen_cannot_use_general_status_update(self, kitchen_ctx, order):
        with pytest.raises(PermissionDeniedError):
            lifecycle_service.update_status(kitchen_ctx, order.id, "CONFIRMED")

    def test_bump_advances_one_step(self, manager_ctx, kitchen_ctx, order):
        advance(manager_ctx, order.id, "CONFIRMED")

        assert lifecycle_service.bump_order(kitchen_ctx, order.id).status == "COOKING"
        assert lifecycle_service.bump_order(kitchen_ctx, order.id).status == "READY"
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.bump_order(kitchen_ctx, order.id)

    def test_kitchen_queue_and_stats(self, manager_ctx, kitchen_ctx, latte, croissant):
        first = order_service.create_order(manager_ctx, pos_order((latte.id, 1)))
        second = order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        advance(manager_ctx, first.id, "CONFIRMED", "COOKING")
        advance(manager_ctx, second.id, "CONFIRMED")

        queue = order_service.kitchen_orders(kitchen_ctx)
        assert [o.id for o in queue["orders"]] == [first.id, second.id]
        assert queue["summary"] == {"confirmed": 1, "cooking": 1, "total": 2}

        stats = lifecycle_service.kitchen_stats(kitchen_ctx)
        assert stats["pending"] == 1
        assert stats["confirmed"] == 1
        assert stats["cooking"] == 1
        assert stats["ready"] == 0

        advance(manager_ctx, first.id, "READY", "COMPLETED")
        stats = lifecycle_service.kitchen_stats(kitchen_ctx)
        assert stats["completed_today"] == 1
        assert stats["avg_wait_minutes"] >= 0
