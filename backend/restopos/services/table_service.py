# Overview: Table coordinator; occupancy bookkeeping kept 1:1 with the table's active order.

"""
Table Coordinator

INVARIANT: status == Occupied  <=>  current_order_id is set.

Occupancy changes are conditional UPDATEs ("set Occupied only if currently
Available/Reserved or already linked to this order"), the same pattern the
stock ledger uses, so two orders can never claim one table.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_, update

from ..context import CallerContext
from ..errors import BusinessRuleError, TableUnavailableError, UnpaidOrdersError, ValidationError
from ..extensions import db
from ..models import DiningTable, Order
from ..models.orders import PAYMENT_UNPAID, STATUS_CANCELLED, STATUS_COMPLETED
from ..models.tables import TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_RESERVED, TABLE_STATUSES
from .concurrency import run_with_retry
from .tenant_service import get_scoped, read_scope, resolve_write_branch, scoped_query

_CLEARED_RESERVATION = {
    "reserved_name": None,
    "reserved_whatsapp": None,
    "reserved_pax": None,
    "reservation_time": None,
}


def _fresh(table_id: int) -> DiningTable:
    return db.session.query(DiningTable).populate_existing().filter_by(id=table_id).one()


def require_occupiable(branch_id: int, table_id: int, order_id: int | None = None) -> DiningTable:
    """Pre-check used before any stock is touched; occupy() still re-checks atomically."""
    table = get_scoped(DiningTable, table_id, branch_id, "Table")
    if not table.is_active:
        raise TableUnavailableError(f"Table {table.number} is not available", {"table_id": table.id})
    if table.status == TABLE_OCCUPIED and table.current_order_id != order_id:
        raise TableUnavailableError(
            f"Table {table.number} is not available",
            {"table_id": table.id, "status": table.status},
        )
    return table


def occupy(branch_id: int, table_id: int, order_id: int) -> DiningTable:
    stmt = (
        update(DiningTable)
        .where(
            DiningTable.id == table_id,
            DiningTable.branch_id == branch_id,
            DiningTable.is_active.is_(True),
            or_(
                DiningTable.status.in_([TABLE_AVAILABLE, TABLE_RESERVED]),
                DiningTable.current_order_id == order_id,
            ),
        )
        .values(status=TABLE_OCCUPIED, current_order_id=order_id, **_CLEARED_RESERVATION)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        table = get_scoped(DiningTable, table_id, branch_id, "Table")
        raise TableUnavailableError(
            f"Table {table.number} is not available",
            {"table_id": table.id, "status": table.status},
        )
    return _fresh(table_id)


def release(branch_id: int, table_id: int, order_id: int | None = None) -> bool:
    """
    Return a table to Available and clear its link.

    With order_id, only a table still linked to that order is released, so
    a late release never frees a table already taken by a newer order.
    """
    stmt = update(DiningTable).where(DiningTable.id == table_id, DiningTable.branch_id == branch_id)
    if order_id is not None:
        stmt = stmt.where(DiningTable.current_order_id == order_id)
    stmt = stmt.values(
        status=TABLE_AVAILABLE, current_order_id=None, **_CLEARED_RESERVATION
    ).execution_options(synchronize_session=False)

    released = db.session.execute(stmt).rowcount == 1
    if not released and order_id is not None:
        current_app.logger.info("Table %s no longer linked to order %s; left as is", table_id, order_id)
    return released


def unpaid_orders_for_table(table: DiningTable) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(
            Order.table_id == table.id,
            Order.branch_id == table.branch_id,
            Order.payment_status == PAYMENT_UNPAID,
            Order.status != STATUS_CANCELLED,
        )
        .order_by(Order.created_at.asc())
        .all()
    )


def reset(ctx: CallerContext, table_id: int, force: bool = False) -> dict:
    """
    Clear a table when guests leave.

    Refuses while unpaid, non-cancelled orders still reference the table,
    unless force is set; forced resets report how many remain unpaid.
    """
    branch_id = read_scope(ctx)

    def _op() -> dict:
        table = get_scoped(DiningTable, table_id, branch_id, "Table")
        unpaid = unpaid_orders_for_table(table)
        unpaid_rows = [
            {"id": o.id, "order_number": o.order_number, "status": o.status, "total": o.total}
            for o in unpaid
        ]
        if unpaid and not force:
            raise UnpaidOrdersError(
                "Table has unpaid orders",
                {
                    "unpaid_orders": unpaid_rows,
                    "hint": "Set force=true to reset anyway (orders will remain unpaid)",
                },
            )

        release(table.branch_id, table.id)
        db.session.commit()

        if unpaid:
            current_app.logger.warning(
                "Table %s force-reset with %s unpaid order(s)", table.id, len(unpaid)
            )
        return {
            "table": _fresh(table.id).to_dict(),
            "warning": f"{len(unpaid)} unpaid order(s) remain" if unpaid else None,
        }

    return run_with_retry(_op)


def release_table(ctx: CallerContext, table_id: int) -> DiningTable:
    """Manual release; refused while the linked order is still active."""
    branch_id = read_scope(ctx)

    def _op() -> DiningTable:
        table = get_scoped(DiningTable, table_id, branch_id, "Table")
        if table.status == TABLE_OCCUPIED and table.current_order_id:
            order = db.session.get(Order, table.current_order_id)
            if order is not None and order.status not in (STATUS_COMPLETED, STATUS_CANCELLED):
                raise BusinessRuleError(
                    "Cannot release table with active order",
                    {"order_id": order.id, "order_number": order.order_number, "status": order.status},
                )
        release(table.branch_id, table.id)
        db.session.commit()
        return _fresh(table.id)

    return run_with_retry(_op)


def reserve(
    ctx: CallerContext,
    table_id: int,
    *,
    name: str,
    whatsapp: str,
    pax: int,
    reservation_time: datetime,
) -> DiningTable:
    branch_id = read_scope(ctx)

    def _op() -> DiningTable:
        table = get_scoped(DiningTable, table_id, branch_id, "Table")
        if pax > table.capacity:
            raise ValidationError(
                f"Table capacity is {table.capacity}, requested {pax} guests",
                {"capacity": table.capacity, "pax": pax},
            )

        stmt = (
            update(DiningTable)
            .where(DiningTable.id == table.id, DiningTable.status == TABLE_AVAILABLE)
            .values(
                status=TABLE_RESERVED,
                reserved_name=name,
                reserved_whatsapp=whatsapp,
                reserved_pax=pax,
                reservation_time=reservation_time,
            )
            .execution_options(synchronize_session=False)
        )
        if db.session.execute(stmt).rowcount != 1:
            raise TableUnavailableError(
                "Table is not available for reservation",
                {"table_id": table.id, "status": table.status},
            )
        db.session.commit()
        return _fresh(table.id)

    return run_with_retry(_op)


def list_tables(
    ctx: CallerContext,
    *,
    status: str | None = None,
    requested_branch_id: int | None = None,
) -> list[DiningTable]:
    query = scoped_query(DiningTable, read_scope(ctx, requested_branch_id)).filter(
        DiningTable.is_active.is_(True)
    )
    if status:
        if status not in TABLE_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'. Must be one of: {', '.join(TABLE_STATUSES)}"
            )
        query = query.filter(DiningTable.status == status)
    return query.order_by(DiningTable.branch_id.asc(), DiningTable.number.asc()).all()


def get_table(ctx: CallerContext, table_id: int) -> dict:
    table = get_scoped(DiningTable, table_id, read_scope(ctx), "Table")
    data = table.to_dict()
    data["current_order"] = None
    if table.current_order_id:
        order = db.session.get(Order, table.current_order_id)
        if order is not None:
            data["current_order"] = order.to_dict()
    return data


def summary(ctx: CallerContext, requested_branch_id: int | None = None) -> dict:
    rows = (
        scoped_query(DiningTable, read_scope(ctx, requested_branch_id))
        .filter(DiningTable.is_active.is_(True))
        .with_entities(DiningTable.status, func.count(DiningTable.id))
        .group_by(DiningTable.status)
        .all()
    )
    counts = dict(rows)
    return {
        "total": sum(counts.values()),
        "available": counts.get(TABLE_AVAILABLE, 0),
        "occupied": counts.get(TABLE_OCCUPIED, 0),
        "reserved": counts.get(TABLE_RESERVED, 0),
    }


def create_table(
    ctx: CallerContext,
    *,
    number: str,
    capacity: int,
    name: str | None = None,
    requested_branch_id: int | None = None,
) -> DiningTable:
    branch = resolve_write_branch(ctx, requested_branch_id)
    if capacity < 1:
        raise ValidationError("capacity must be at least 1")

    exists = (
        db.session.query(DiningTable.id)
        .filter_by(branch_id=branch.id, number=number)
        .first()
    )
    if exists:
        raise ValidationError("Table with this number already exists", {"number": number})

    table = DiningTable(branch_id=branch.id, number=number, capacity=capacity, name=name)
    db.session.add(table)
    db.session.commit()
    return table
