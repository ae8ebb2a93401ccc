# Overview: Order status state machine, kitchen workflow and void with compensating stock release.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE
================================================================================

    PENDING   -> CONFIRMED | CANCELLED
    CONFIRMED -> COOKING   | CANCELLED
    COOKING   -> READY     | CANCELLED
    READY     -> COMPLETED | CANCELLED
    COMPLETED, CANCELLED: terminal

RULES:
1. Cannot skip states (PENDING -> COOKING, CONFIRMED -> READY are rejected)
2. Every status write is a conditional UPDATE on the expected previous
   status, so two racing transitions can never both apply
3. COMPLETED stamps completed_at and releases the table
4. CANCELLED always goes through void(): stock is restored exactly once,
   PAID becomes REFUNDED, the table is released
5. Events are published only after the change has committed
================================================================================
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func, update

from ..context import CallerContext
from ..errors import AlreadyCancelledError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, PaymentTransaction
from ..models.orders import (
    ORDER_STATUSES,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_COOKING,
    STATUS_PENDING,
    STATUS_READY,
    TRANSACTION_VOID,
)
from ..time_utils import to_utc_z, utcnow
from . import event_service, stock_service, table_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .event_service import KitchenUpdateEvent, OrderStatusUpdateEvent
from .permission_service import require_permission
from .stock_service import StockLine
from .tenant_service import get_scoped, read_scope, scoped_query

TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    STATUS_CONFIRMED: frozenset({STATUS_COOKING, STATUS_CANCELLED}),
    STATUS_COOKING: frozenset({STATUS_READY, STATUS_CANCELLED}),
    STATUS_READY: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

# Kitchen may only set these, each from exactly one predecessor
KITCHEN_TRANSITIONS = {
    STATUS_COOKING: STATUS_CONFIRMED,
    STATUS_READY: STATUS_COOKING,
}

ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COOKING, STATUS_READY)


def can_transition(current: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, new_status: str) -> None:
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )
    if not can_transition(current, new_status):
        raise InvalidTransitionError(current, new_status)


def _fresh(order_id: int) -> Order:
    return db.session.query(Order).populate_existing().filter_by(id=order_id).one()


def _apply_transition(order: Order, new_status: str) -> str:
    """
    Conditional status write; returns the previous status.

    Caller owns the transaction.
    """
    previous = order.status
    now = utcnow()
    values = {"status": new_status, "updated_at": now}
    if new_status == STATUS_COMPLETED:
        values["completed_at"] = now

    stmt = (
        update(Order)
        .where(Order.id == order.id, Order.status == previous)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        current = db.session.query(Order.status).filter_by(id=order.id).scalar()
        raise InvalidTransitionError(
            current,
            new_status,
            f"Order status changed concurrently (now {current}); cannot set {new_status}",
        )

    if new_status == STATUS_COMPLETED and order.table_id:
        table_service.release(order.branch_id, order.table_id, order.id)
    return previous


def _status_event(order: Order, previous: str) -> OrderStatusUpdateEvent:
    return OrderStatusUpdateEvent(
        order_id=order.id,
        order_number=order.order_number,
        branch_id=order.branch_id,
        status=order.status,
        previous_status=previous,
        updated_at=to_utc_z(order.updated_at),
    )


def _transition(ctx: CallerContext, order_id: int, choose_status) -> tuple[Order, str]:
    """Run one guarded transition; choose_status(order) validates and returns the target."""
    branch_id = read_scope(ctx)

    def _op() -> tuple[int, str]:
        try:
            begin_write()
            order = get_scoped(Order, order_id, branch_id, "Order")
            new_status = choose_status(order)
            previous = _apply_transition(order, new_status)
            db.session.commit()
            return order.id, previous
        except Exception:
            db.session.rollback()
            raise

    oid, previous = run_with_retry(_op)
    order = _fresh(oid)
    event_service.publish(_status_event(order, previous))
    return order, previous


def update_status(ctx: CallerContext, order_id: int, new_status: str) -> Order:
    """
    Move an order along the state machine.

    CANCELLED is delegated to void_order and therefore needs void capability.
    """
    require_permission(ctx, "UPDATE_ORDER_STATUS")
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )
    if new_status == STATUS_CANCELLED:
        return void_order(ctx, order_id, reason="Cancelled via status update")

    def _choose(order: Order) -> str:
        validate_transition(order.status, new_status)
        return new_status

    order, previous = _transition(ctx, order_id, _choose)
    current_app.logger.info("Order %s: %s -> %s", order.order_number, previous, order.status)
    return order


# =============================================================================
# Kitchen workflow
# =============================================================================

def _kitchen_event(order: Order) -> KitchenUpdateEvent:
    return KitchenUpdateEvent(
        order_id=order.id,
        order_number=order.order_number,
        branch_id=order.branch_id,
        status=order.status,
        table_number=order.table_number,
    )


def kitchen_update(ctx: CallerContext, order_id: int, new_status: str) -> Order:
    """Kitchen-facing transition: COOKING only from CONFIRMED, READY only from COOKING."""
    require_permission(ctx, "KITCHEN_UPDATE")
    if new_status not in KITCHEN_TRANSITIONS:
        raise ValidationError(
            f"Invalid status. Kitchen can only set: {', '.join(KITCHEN_TRANSITIONS)}"
        )

    def _choose(order: Order) -> str:
        required = KITCHEN_TRANSITIONS[new_status]
        if order.status != required:
            raise InvalidTransitionError(
                order.status,
                new_status,
                f"Cannot set {new_status} on a {order.status} order; it must be {required} first",
            )
        return new_status

    order, _ = _transition(ctx, order_id, _choose)
    event_service.publish(_kitchen_event(order))
    if order.status == STATUS_READY:
        current_app.logger.info("Order %s is READY for pickup/serving", order.order_number)
    return order


def bump_order(ctx: CallerContext, order_id: int) -> Order:
    """Advance one kitchen step: CONFIRMED -> COOKING -> READY."""
    require_permission(ctx, "KITCHEN_UPDATE")

    def _choose(order: Order) -> str:
        for target, required in KITCHEN_TRANSITIONS.items():
            if order.status == required:
                return target
        raise InvalidTransitionError(
            order.status, "BUMP", f"Cannot bump order with status: {order.status}"
        )

    order, _ = _transition(ctx, order_id, _choose)
    event_service.publish(_kitchen_event(order))
    return order


def kitchen_stats(ctx: CallerContext, requested_branch_id: int | None = None) -> dict:
    """Active counts per status plus today's completed count and average wait."""
    require_permission(ctx, "VIEW_KITCHEN")
    branch_id = read_scope(ctx, requested_branch_id)

    rows = (
        scoped_query(Order, branch_id)
        .filter(Order.status.in_(ACTIVE_STATUSES))
        .with_entities(Order.status, func.count(Order.id))
        .group_by(Order.status)
        .all()
    )
    result = {status.lower(): 0 for status in ACTIVE_STATUSES}
    for status, count in rows:
        result[status.lower()] = count

    start_of_day = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    completed = (
        scoped_query(Order, branch_id)
        .filter(
            Order.status == STATUS_COMPLETED,
            Order.created_at >= start_of_day,
            Order.completed_at.isnot(None),
        )
        .with_entities(Order.created_at, Order.completed_at)
        .all()
    )
    waits = [(done - created).total_seconds() for created, done in completed]
    result["completed_today"] = len(waits)
    result["avg_wait_minutes"] = round(sum(waits) / len(waits) / 60) if waits else 0
    return result


# =============================================================================
# Void / cancel
# =============================================================================

def void_order(ctx: CallerContext, order_id: int, reason: str | None = None) -> Order:
    """
    Cancel an order and reverse its effects.

    - stock of every item released, one RETURN log entry per item
    - PAID -> REFUNDED plus a VOID payment transaction (bookkeeping only)
    - linked table released
    The CANCELLED write is conditional on status != CANCELLED, so concurrent
    voids restore stock exactly once; the loser gets AlreadyCancelledError.
    """
    require_permission(ctx, "VOID_ORDER")
    branch_id = read_scope(ctx)

    def _op() -> tuple[int, str]:
        try:
            begin_write()
            order = lock_for_update(
                scoped_query(Order, branch_id).filter(Order.id == order_id)
            ).first()
            if order is None:
                raise NotFoundError.scoped("Order", order_id)
            if order.status == STATUS_CANCELLED:
                raise AlreadyCancelledError(
                    "Order is already cancelled", {"order_id": order.id, "order_number": order.order_number}
                )

            previous = order.status
            now = utcnow()
            stmt = (
                update(Order)
                .where(Order.id == order.id, Order.status != STATUS_CANCELLED)
                .values(
                    status=STATUS_CANCELLED,
                    payment_status=case(
                        (Order.payment_status == PAYMENT_PAID, PAYMENT_REFUNDED),
                        else_=Order.payment_status,
                    ),
                    cancelled_at=now,
                    updated_at=now,
                    voided_by_user_id=ctx.user_id,
                    void_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if db.session.execute(stmt).rowcount != 1:
                raise AlreadyCancelledError(
                    "Order is already cancelled", {"order_id": order.id, "order_number": order.order_number}
                )

            movements = stock_service.release(
                order.branch_id, [StockLine(item.product_id, item.qty) for item in order.items]
            )
            stock_service.log_release(
                order.branch_id,
                movements,
                order_id=order.id,
                order_number=order.order_number,
                actor_user_id=ctx.user_id,
            )

            payment_status = db.session.query(Order.payment_status).filter_by(id=order.id).scalar()
            if payment_status == PAYMENT_REFUNDED:
                db.session.add(
                    PaymentTransaction(
                        branch_id=order.branch_id,
                        order_id=order.id,
                        order_number=order.order_number,
                        transaction_type=TRANSACTION_VOID,
                        payment_method=order.payment_method,
                        amount=-order.total,
                        subtotal=order.subtotal,
                        discount=order.discount,
                        tax=order.tax,
                        service_charge=order.service_charge,
                        user_id=ctx.user_id,
                        notes=reason or "Order voided",
                    )
                )

            if order.table_id:
                table_service.release(order.branch_id, order.table_id, order.id)

            db.session.commit()
            return order.id, previous
        except Exception:
            db.session.rollback()
            raise

    oid, previous = run_with_retry(_op)
    order = _fresh(oid)
    current_app.logger.info(
        "Order %s voided by user %s (was %s)", order.order_number, ctx.user_id, previous
    )
    event_service.publish(_status_event(order, previous))
    return order
