# Overview: Payment recording against an order's immutable financials.

"""
Payment Service

One payment settles one order in full:

- CANCELLED orders are not payable
- payment_status must be UNPAID ("already paid" otherwise)
- amount must cover the total ("insufficient payment" otherwise)
- PAID + method are written by a conditional UPDATE on UNPAID
- a SALE PaymentTransaction is appended (never updated)

Financials are never recomputed here; change = amount - total is returned
for display only.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update

from ..context import CallerContext
from ..errors import AlreadyPaidError, InsufficientPaymentError, OrderNotPayableError, ValidationError
from ..extensions import db
from ..models import Order, PaymentTransaction
from ..models.orders import PAYMENT_METHODS, PAYMENT_PAID, PAYMENT_UNPAID, STATUS_CANCELLED, TRANSACTION_SALE
from ..time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .permission_service import require_permission
from .tenant_service import get_scoped, read_scope


@dataclass
class PaymentResult:
    order: Order
    transaction: PaymentTransaction
    change: int

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "transaction": self.transaction.to_dict(),
            "change": self.change,
        }


def _check_payable(order: Order, amount: int) -> None:
    if order.status == STATUS_CANCELLED:
        raise OrderNotPayableError("Cannot pay a cancelled order", {"order_id": order.id})
    if order.payment_status != PAYMENT_UNPAID:
        raise AlreadyPaidError(
            "Order is already paid", {"order_id": order.id, "payment_status": order.payment_status}
        )
    if amount < order.total:
        raise InsufficientPaymentError(
            f"Insufficient payment. Total: {order.total}, Paid: {amount}",
            {"total": order.total, "amount": amount, "shortfall": order.total - amount},
        )


def pay(ctx: CallerContext, order_id: int, method: str, amount: int) -> PaymentResult:
    require_permission(ctx, "TAKE_PAYMENT")
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Valid payment amount is required")

    branch_id = read_scope(ctx)

    def _op() -> tuple[int, int]:
        try:
            begin_write()
            order = get_scoped(Order, order_id, branch_id, "Order")
            _check_payable(order, amount)

            stmt = (
                update(Order)
                .where(
                    Order.id == order.id,
                    Order.payment_status == PAYMENT_UNPAID,
                    Order.status != STATUS_CANCELLED,
                )
                .values(payment_status=PAYMENT_PAID, payment_method=method, paid_at=utcnow(), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if db.session.execute(stmt).rowcount != 1:
                db.session.refresh(order)
                _check_payable(order, amount)
                raise AlreadyPaidError("Order is already paid", {"order_id": order.id})

            change = amount - order.total
            transaction = PaymentTransaction(
                branch_id=order.branch_id,
                order_id=order.id,
                order_number=order.order_number,
                transaction_type=TRANSACTION_SALE,
                payment_method=method,
                amount=order.total,
                subtotal=order.subtotal,
                discount=order.discount,
                tax=order.tax,
                service_charge=order.service_charge,
                user_id=ctx.user_id,
                notes=f"Tendered {amount}, change {change}",
            )
            db.session.add(transaction)
            db.session.commit()
            return transaction.id, change
        except Exception:
            db.session.rollback()
            raise

    transaction_id, change = run_with_retry(_op)
    transaction = db.session.get(PaymentTransaction, transaction_id)
    order = db.session.query(Order).populate_existing().filter_by(id=transaction.order_id).one()
    current_app.logger.info(
        "Order %s paid by %s (total=%s, change=%s)", order.order_number, method, order.total, change
    )
    return PaymentResult(order=order, transaction=transaction, change=change)

