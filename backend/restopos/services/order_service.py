# Overview: Order creation pipeline (transaction and saga variants) plus branch-scoped order reads.

"""
Order Creation Pipeline

Turns a validated cart into a persisted, financially correct Order, or
fails with stock fully restored.

    validate -> resolve branch -> load catalog/table -> reserve stock
             -> snapshot prices + financials -> allocate number
             -> persist PENDING/UNPAID -> occupy table -> commit
             -> ORDER log entries (best-effort) -> new_order event

Two variants share every step:

- "transaction": one database transaction; any failure rolls all of it
  back. The whole unit is retried on lock/deadlock errors.
- "saga": each step commits on its own and registers a compensation; a
  failure runs the compensations of the completed steps in reverse.

Stock safety is identical in both because it lives in the per-line
conditional decrement of stock_service.reserve, not in the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..context import CallerContext
from ..errors import AuthenticationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, DiningTable, Order, OrderItem, OrderItemAttribute, Product
from ..models.orders import (
    PAYMENT_UNPAID,
    SOURCE_POS,
    STATUS_CONFIRMED,
    STATUS_COOKING,
    STATUS_PENDING,
)
from ..time_utils import to_utc_z
from ..validation import CreateOrderInput, OrderFilters, OrderLineInput
from . import event_service, stock_service, table_service
from .concurrency import begin_write, run_with_retry
from .event_service import NewOrderEvent
from .permission_service import require_permission
from .pricing import Financials, compute_financials, price_line
from .saga import Saga
from .sequence_service import next_order_number
from .stock_service import StockLine, StockMovement
from .tenant_service import get_scoped, paginate, read_scope, resolve_write_branch, scoped_query

MODE_TRANSACTION = "transaction"
MODE_SAGA = "saga"
CREATION_MODES = (MODE_TRANSACTION, MODE_SAGA)

KITCHEN_STATUSES = (STATUS_CONFIRMED, STATUS_COOKING)


@dataclass(frozen=True)
class PricedLine:
    line_no: int
    product_id: int
    name: str
    qty: int
    price_at_moment: int
    note: str | None
    attributes: tuple[tuple[str, str, int], ...]  # (name, selected, price_modifier)


# =============================================================================
# Pipeline steps (shared by both variants)
# =============================================================================

def _load_catalog(branch_id: int, items: tuple[OrderLineInput, ...]) -> dict[int, Product]:
    """Every referenced product must exist in the branch and be active."""
    product_ids = {item.product_id for item in items}
    products = (
        db.session.query(Product)
        .populate_existing()
        .filter(Product.branch_id == branch_id, Product.id.in_(product_ids))
        .all()
    )
    catalog = {p.id: p for p in products}

    for item in items:
        product = catalog.get(item.product_id)
        if product is None:
            raise NotFoundError.scoped("Product", item.product_id)
        if not product.is_active:
            raise ValidationError(
                f'Product "{product.name}" is not available',
                {"product_id": product.id},
            )
    return catalog


def _price_lines(items: tuple[OrderLineInput, ...], catalog: dict[int, Product]) -> list[PricedLine]:
    """Snapshot name and unit price (base + selected modifiers from the catalog)."""
    priced = []
    for line_no, item in enumerate(items, start=1):
        product = catalog[item.product_id]
        attributes = []
        for selection in item.attributes:
            option = product.find_option(selection.name, selection.selected)
            if option is None:
                raise ValidationError(
                    f'Unknown option "{selection.selected}" for "{selection.name}" on "{product.name}"',
                    {"product_id": product.id, "attribute": selection.name},
                )
            attributes.append((selection.name, selection.selected, int(option.get("price_modifier") or 0)))

        try:
            unit_price = price_line(product.price, (modifier for _, _, modifier in attributes))
        except ValueError as e:
            raise ValidationError(str(e), {"product_id": product.id})

        priced.append(
            PricedLine(
                line_no=line_no,
                product_id=product.id,
                name=product.name,
                qty=item.qty,
                price_at_moment=unit_price,
                note=item.note,
                attributes=tuple(attributes),
            )
        )
    return priced


def _financials(lines: list[PricedLine], apply_service_charge: bool) -> Financials:
    return compute_financials(
        ((line.price_at_moment, line.qty) for line in lines),
        tax_rate_bps=current_app.config["TAX_RATE_BPS"],
        service_charge_rate_bps=current_app.config["SERVICE_CHARGE_RATE_BPS"],
        apply_service_charge=apply_service_charge,
    )


def _stock_lines(lines: list[PricedLine]) -> list[StockLine]:
    return [StockLine(line.product_id, line.qty) for line in lines]


def _persist_order(
    *,
    ctx: CallerContext,
    branch: Branch,
    data: CreateOrderInput,
    lines: list[PricedLine],
    financials: Financials,
    order_number: str,
    table: DiningTable | None,
) -> Order:
    order = Order(
        branch_id=branch.id,
        order_number=order_number,
        order_source=data.order_source,
        table_id=table.id if table else None,
        table_number=table.number if table else None,
        user_id=ctx.user_id,
        guest_name=data.guest_info.name,
        guest_whatsapp=data.guest_info.whatsapp,
        guest_pax=data.guest_info.pax,
        notes=data.notes,
        status=STATUS_PENDING,
        payment_status=PAYMENT_UNPAID,
        subtotal=financials.subtotal,
        discount=financials.discount,
        tax=financials.tax,
        service_charge=financials.service_charge,
        total=financials.total,
    )
    for line in lines:
        item = OrderItem(
            line_no=line.line_no,
            product_id=line.product_id,
            name=line.name,
            qty=line.qty,
            price_at_moment=line.price_at_moment,
            note=line.note,
        )
        for name, selected, modifier in line.attributes:
            item.attributes.append(OrderItemAttribute(name=name, selected=selected, price_modifier=modifier))
        order.items.append(item)

    db.session.add(order)
    db.session.flush()
    return order


# =============================================================================
# Variants
# =============================================================================

def _create_in_transaction(
    ctx: CallerContext, branch: Branch, data: CreateOrderInput
) -> tuple[Order, list[StockMovement]]:
    def _op():
        try:
            begin_write()
            catalog = _load_catalog(branch.id, data.items)
            lines = _price_lines(data.items, catalog)
            table = table_service.require_occupiable(branch.id, data.table_id) if data.table_id else None

            movements = stock_service.reserve(branch.id, _stock_lines(lines))
            financials = _financials(lines, data.apply_service_charge)
            order_number = next_order_number(branch, data.order_source)
            order = _persist_order(
                ctx=ctx,
                branch=branch,
                data=data,
                lines=lines,
                financials=financials,
                order_number=order_number,
                table=table,
            )
            if table is not None:
                table_service.occupy(branch.id, table.id, order.id)

            db.session.commit()
            return order, movements
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def _delete_order(order_id: int) -> None:
    order = db.session.get(Order, order_id)
    if order is not None:
        db.session.delete(order)
        db.session.commit()


def _release_movements(branch_id: int, movements: list[StockMovement]) -> None:
    stock_service.release(branch_id, [m.line for m in movements], commit=True)


def _create_with_saga(
    ctx: CallerContext, branch: Branch, data: CreateOrderInput
) -> tuple[Order, list[StockMovement]]:
    catalog = _load_catalog(branch.id, data.items)
    lines = _price_lines(data.items, catalog)
    table = table_service.require_occupiable(branch.id, data.table_id) if data.table_id else None
    financials = _financials(lines, data.apply_service_charge)
    db.session.commit()

    saga = Saga("create_order")
    try:
        movements = saga.step(
            lambda: stock_service.reserve(branch.id, _stock_lines(lines), commit=True),
            lambda reserved: _release_movements(branch.id, reserved),
            label="reserve_stock",
        )

        def _persist() -> Order:
            order_number = next_order_number(branch, data.order_source)
            order = _persist_order(
                ctx=ctx,
                branch=branch,
                data=data,
                lines=lines,
                financials=financials,
                order_number=order_number,
                table=table,
            )
            db.session.commit()
            return order

        order = saga.step(
            lambda: run_with_retry(_persist),
            lambda persisted: _delete_order(persisted.id),
            label="persist_order",
        )
        order_id = order.id

        if table is not None:
            def _occupy() -> None:
                table_service.occupy(branch.id, table.id, order_id)
                db.session.commit()

            saga.step(lambda: run_with_retry(_occupy), label="occupy_table")
    except Exception:
        db.session.rollback()
        if saga.completed_steps:
            current_app.logger.warning(
                "Order creation failed after %s step(s); compensating", saga.completed_steps
            )
        saga.compensate()
        raise

    return order, movements


# =============================================================================
# Public API
# =============================================================================

def _write_reservation_logs(order: Order, movements: list[StockMovement], actor_user_id: int | None) -> None:
    """ORDER entries after the order is durable; a failure is a warning, never an order failure."""
    try:
        stock_service.log_reservation(
            order.branch_id,
            movements,
            order_id=order.id,
            order_number=order.order_number,
            actor_user_id=actor_user_id,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to write inventory logs for order %s", order.order_number, exc_info=True
        )


def new_order_event(order: Order) -> NewOrderEvent:
    table_name = None
    if order.table_id:
        table = db.session.get(DiningTable, order.table_id)
        table_name = table.name if table else None
    return NewOrderEvent(
        order_id=order.id,
        order_number=order.order_number,
        order_source=order.order_source,
        branch_id=order.branch_id,
        items_count=len(order.items),
        total=order.total,
        status=order.status,
        created_at=to_utc_z(order.created_at),
        table_number=order.table_number,
        table_name=table_name,
        guest_name=order.guest_name,
    )


def create_order(
    ctx: CallerContext,
    data: CreateOrderInput,
    *,
    requested_branch_id: int | None = None,
    mode: str | None = None,
) -> Order:
    """
    Create an order with atomic stock reservation.

    Guests may only submit WEB orders (branch from requested_branch_id);
    authenticated callers need CREATE_ORDER.
    """
    if ctx.is_authenticated:
        require_permission(ctx, "CREATE_ORDER")
    elif data.order_source == SOURCE_POS:
        raise AuthenticationError("Authentication required for POS orders")

    mode = mode or current_app.config.get("ORDER_CREATION_MODE", MODE_TRANSACTION)
    if mode not in CREATION_MODES:
        raise ValueError(f"Unknown ORDER_CREATION_MODE: {mode}")

    branch = resolve_write_branch(ctx, requested_branch_id)

    if mode == MODE_SAGA:
        order, movements = _create_with_saga(ctx, branch, data)
    else:
        order, movements = _create_in_transaction(ctx, branch, data)

    _write_reservation_logs(order, movements, ctx.user_id)

    current_app.logger.info(
        "Order %s created in branch %s (total=%s, mode=%s)", order.order_number, branch.id, order.total, mode
    )
    event_service.publish(new_order_event(order))
    return order


def get_order(ctx: CallerContext, order_id: int, requested_branch_id: int | None = None) -> Order:
    return get_scoped(Order, order_id, read_scope(ctx, requested_branch_id), "Order")


def list_orders(
    ctx: CallerContext,
    filters: OrderFilters,
    requested_branch_id: int | None = None,
) -> tuple[list[Order], dict]:
    """Newest first, branch-scoped."""
    query = scoped_query(Order, read_scope(ctx, requested_branch_id))
    if filters.status:
        query = query.filter(Order.status == filters.status)
    if filters.payment_status:
        query = query.filter(Order.payment_status == filters.payment_status)
    if filters.order_source:
        query = query.filter(Order.order_source == filters.order_source)
    if filters.table_id:
        query = query.filter(Order.table_id == filters.table_id)
    if filters.date_from:
        query = query.filter(Order.created_at >= filters.date_from)
    if filters.date_to:
        date_to = filters.date_to
        # A bare date means "through the end of that day"
        if date_to.hour == date_to.minute == date_to.second == 0:
            date_to = date_to + timedelta(days=1)
            query = query.filter(Order.created_at < date_to)
        else:
            query = query.filter(Order.created_at <= date_to)

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, filters.page, filters.limit)


def track_order(order_number: str, branch_id: int | None = None) -> dict:
    """Public, minimal projection for customers following their order."""
    query = db.session.query(Order).filter(Order.order_number == order_number)
    if branch_id is not None:
        query = query.filter(Order.branch_id == branch_id)
    order = query.order_by(Order.created_at.desc(), Order.id.desc()).first()
    if order is None:
        raise NotFoundError("Order not found", {"order_number": order_number})

    return {
        "order_number": order.order_number,
        "order_source": order.order_source,
        "status": order.status,
        "payment_status": order.payment_status,
        "table_number": order.table_number,
        "items": [{"name": item.name, "qty": item.qty} for item in order.items],
        "financials": {
            "subtotal": order.subtotal,
            "discount": order.discount,
            "tax": order.tax,
            "service_charge": order.service_charge,
            "total": order.total,
        },
        "created_at": to_utc_z(order.created_at),
    }


def kitchen_orders(ctx: CallerContext, requested_branch_id: int | None = None) -> dict:
    """Active kitchen queue (CONFIRMED/COOKING), oldest first."""
    orders = (
        scoped_query(Order, read_scope(ctx, requested_branch_id))
        .filter(Order.status.in_(KITCHEN_STATUSES))
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
    summary = {status.lower(): 0 for status in KITCHEN_STATUSES}
    for order in orders:
        summary[order.status.lower()] += 1
    summary["total"] = len(orders)
    return {"orders": orders, "summary": summary}

