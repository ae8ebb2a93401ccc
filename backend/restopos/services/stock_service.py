# Overview: Stock ledger; race-free reservation and release of product stock with an append-only log.

"""
Stock Ledger

The per-product stock counter is the one shared mutable resource of the
order engine. It is only ever changed here, and only through single
conditional UPDATE statements:

    UPDATE products SET stock = stock - :qty
     WHERE id = :id AND branch_id = :branch AND is_active AND stock >= :qty

Under N concurrent requests for the same product at most stock // qty of
them match the WHERE clause; the rest see rowcount == 0 and fail with the
remaining stock reported. There is no read-then-write window.

A batch is processed line by line in request order. On the first failure
every earlier line of the same batch is incremented back before the error
is raised, so a failed batch never leaves a partial deduction behind.

commit=True turns each line into its own committed step (saga mode);
commit=False leaves everything in the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InsufficientStockError, NotFoundError, OrderEngineError, ValidationError
from ..extensions import db
from ..models import InventoryLog, Product
from ..models.inventory import (
    REASON_ADJUSTMENT,
    REASON_ORDER,
    REASON_RESTOCK,
    REASON_RETURN,
    REASON_WASTAGE,
    INVENTORY_REASONS,
)
from .concurrency import begin_write, run_with_retry
from .tenant_service import paginate

MANUAL_REASONS = (REASON_RESTOCK, REASON_WASTAGE, REASON_ADJUSTMENT)


@dataclass(frozen=True)
class StockLine:
    product_id: int
    qty: int


@dataclass(frozen=True)
class StockMovement:
    """One applied stock change with the values read inside its own statement's transaction."""
    product_id: int
    product_name: str
    qty: int
    qty_before: int
    qty_after: int

    @property
    def line(self) -> StockLine:
        return StockLine(self.product_id, self.qty)


def _read_stock(product_id: int):
    return (
        db.session.query(Product.name, Product.stock, Product.max_stock)
        .filter(Product.id == product_id)
        .first()
    )


def _decrement(branch_id: int, product_id: int, qty: int) -> bool:
    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.branch_id == branch_id,
            Product.is_active.is_(True),
            Product.stock >= qty,
        )
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _increment(branch_id: int, product_id: int, qty: int) -> bool:
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.branch_id == branch_id)
        .values(stock=Product.stock + qty)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _reservation_failure(branch_id: int, line: StockLine) -> OrderEngineError:
    snapshot = (
        db.session.query(Product.name, Product.stock, Product.is_active)
        .filter(Product.id == line.product_id, Product.branch_id == branch_id)
        .first()
    )
    if snapshot is None:
        return NotFoundError.scoped("Product", line.product_id)
    if not snapshot.is_active:
        return ValidationError(
            f'Product "{snapshot.name}" is not available',
            {"product_id": line.product_id},
        )
    return InsufficientStockError(line.product_id, snapshot.name, line.qty, snapshot.stock)


def reserve(branch_id: int, lines: list[StockLine], *, commit: bool = False) -> list[StockMovement]:
    """
    Decrement stock for every line, all-or-nothing across the batch.

    Raises InsufficientStockError for the first line whose conditional
    decrement matches no row. "available" in the error is a snapshot read
    taken after the failed statement, only for the message.

    With commit=True a database error part-way through also puts the
    already committed lines back before it propagates. With commit=False
    the caller's rollback undoes them.
    """
    for line in lines:
        if line.qty < 1:
            raise ValidationError("qty must be at least 1", {"product_id": line.product_id})

    reserved: list[StockMovement] = []
    try:
        for line in lines:
            if not _decrement(branch_id, line.product_id, line.qty):
                raise _reservation_failure(branch_id, line)

            row = _read_stock(line.product_id)
            movement = StockMovement(
                product_id=line.product_id,
                product_name=row.name,
                qty=line.qty,
                qty_before=row.stock + line.qty,
                qty_after=row.stock,
            )
            if commit:
                db.session.commit()
            # A line whose commit failed was rolled back and must not be released
            reserved.append(movement)
    except OrderEngineError:
        if reserved:
            _compensate(branch_id, reserved, commit=commit)
        raise
    except Exception:
        if commit and reserved:
            db.session.rollback()
            try:
                _compensate(branch_id, reserved, commit=True)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception(
                    "Stock compensation failed in branch %s; run inventory reconcile", branch_id
                )
        raise

    return reserved


def _compensate(branch_id: int, reserved: list[StockMovement], *, commit: bool) -> None:
    current_app.logger.info(
        "Compensating %s reserved line(s) in branch %s", len(reserved), branch_id
    )
    release(branch_id, [m.line for m in reversed(reserved)], commit=commit)


def release(branch_id: int, lines: list[StockLine], *, commit: bool = False) -> list[StockMovement]:
    """
    Unconditionally add stock back. Always succeeds for existing products.

    max_stock is advisory: an overshoot is logged, never rejected.
    """
    released: list[StockMovement] = []
    for line in lines:
        if not _increment(branch_id, line.product_id, line.qty):
            current_app.logger.warning(
                "Stock release skipped: product %s not found in branch %s", line.product_id, branch_id
            )
            continue

        row = _read_stock(line.product_id)
        if row.max_stock is not None and row.stock > row.max_stock:
            current_app.logger.warning(
                "Product %s stock %s exceeds advisory max_stock %s", line.product_id, row.stock, row.max_stock
            )
        released.append(
            StockMovement(
                product_id=line.product_id,
                product_name=row.name,
                qty=line.qty,
                qty_before=row.stock - line.qty,
                qty_after=row.stock,
            )
        )
        if commit:
            db.session.commit()

    return released


def log_change(
    *,
    branch_id: int,
    product_id: int,
    product_name: str,
    qty_change: int,
    qty_before: int,
    qty_after: int,
    reason: str,
    reference_order_id: int | None = None,
    actor_user_id: int | None = None,
    notes: str | None = None,
) -> InventoryLog:
    """Append one log entry to the current session (caller commits)."""
    if reason not in INVENTORY_REASONS:
        raise ValidationError(f"Invalid inventory reason: {reason}")

    entry = InventoryLog(
        branch_id=branch_id,
        product_id=product_id,
        product_name=product_name,
        qty_change=qty_change,
        qty_before=qty_before,
        qty_after=qty_after,
        reason=reason,
        reference_order_id=reference_order_id,
        actor_user_id=actor_user_id,
        notes=notes,
    )
    db.session.add(entry)
    return entry


def log_reservation(
    branch_id: int,
    movements: list[StockMovement],
    *,
    order_id: int,
    order_number: str,
    actor_user_id: int | None = None,
) -> list[InventoryLog]:
    return [
        log_change(
            branch_id=branch_id,
            product_id=m.product_id,
            product_name=m.product_name,
            qty_change=-m.qty,
            qty_before=m.qty_before,
            qty_after=m.qty_after,
            reason=REASON_ORDER,
            reference_order_id=order_id,
            actor_user_id=actor_user_id,
            notes=f"Order {order_number}",
        )
        for m in movements
    ]


def log_release(
    branch_id: int,
    movements: list[StockMovement],
    *,
    order_id: int,
    order_number: str,
    actor_user_id: int | None = None,
) -> list[InventoryLog]:
    return [
        log_change(
            branch_id=branch_id,
            product_id=m.product_id,
            product_name=m.product_name,
            qty_change=m.qty,
            qty_before=m.qty_before,
            qty_after=m.qty_after,
            reason=REASON_RETURN,
            reference_order_id=order_id,
            actor_user_id=actor_user_id,
            notes=f"Void order {order_number}",
        )
        for m in movements
    ]


# =============================================================================
# Inventory management (restock / wastage / adjustment)
# =============================================================================

def adjust_stock(
    branch_id: int,
    product_id: int,
    qty_change: int,
    reason: str,
    *,
    actor_user_id: int | None = None,
    notes: str | None = None,
) -> InventoryLog:
    """
    Manual stock change through the same primitives as order reservation.

    Negative changes use the conditional decrement, so an adjustment can
    never drive stock below zero.
    """
    if reason not in MANUAL_REASONS:
        raise ValidationError(
            f"Invalid reason '{reason}'. Must be one of: {', '.join(MANUAL_REASONS)}"
        )
    if qty_change == 0:
        raise ValidationError("qty_change must not be zero")

    def _op() -> InventoryLog:
        try:
            begin_write()
            if qty_change < 0:
                (movement,) = reserve(branch_id, [StockLine(product_id, -qty_change)])
                signed = -movement.qty
            else:
                released = release(branch_id, [StockLine(product_id, qty_change)])
                if not released:
                    raise NotFoundError.scoped("Product", product_id)
                (movement,) = released
                signed = movement.qty

            entry = log_change(
                branch_id=branch_id,
                product_id=movement.product_id,
                product_name=movement.product_name,
                qty_change=signed,
                qty_before=movement.qty_before,
                qty_after=movement.qty_after,
                reason=reason,
                actor_user_id=actor_user_id,
                notes=notes,
            )
            db.session.commit()
            return entry
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def list_logs(
    branch_id: int | None,
    *,
    product_id: int | None = None,
    reason: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[InventoryLog], dict]:
    query = db.session.query(InventoryLog)
    if branch_id is not None:
        query = query.filter(InventoryLog.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(InventoryLog.product_id == product_id)
    if reason:
        if reason not in INVENTORY_REASONS:
            raise ValidationError(f"Invalid inventory reason: {reason}")
        query = query.filter(InventoryLog.reason == reason)

    query = query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
    return paginate(query, page, limit)


def reconcile(branch_id: int | None, product_id: int) -> dict:
    """
    Compare the stock counter with the sum of logged changes.

    The log is written best-effort after order creation, so a difference
    points at a lost log write (or a crash mid-compensation) to investigate.
    """
    query = db.session.query(Product).populate_existing().filter(Product.id == product_id)
    if branch_id is not None:
        query = query.filter(Product.branch_id == branch_id)
    product = query.first()
    if product is None:
        raise NotFoundError.scoped("Product", product_id)

    logged_total = (
        db.session.query(func.coalesce(func.sum(InventoryLog.qty_change), 0))
        .filter(InventoryLog.product_id == product.id)
        .scalar()
    )
    return {
        "product_id": product.id,
        "branch_id": product.branch_id,
        "name": product.name,
        "stock": product.stock,
        "logged_total": int(logged_total),
        "difference": product.stock - int(logged_total),
        "consistent": product.stock == int(logged_total),
    }
