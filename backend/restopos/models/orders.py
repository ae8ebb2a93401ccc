from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SOURCE_POS = "POS"
SOURCE_WEB = "WEB"
ORDER_SOURCES = (SOURCE_POS, SOURCE_WEB)

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_COOKING = "COOKING"
STATUS_READY = "READY"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
ORDER_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_COOKING,
    STATUS_READY,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)

PAYMENT_UNPAID = "UNPAID"
PAYMENT_PAID = "PAID"
PAYMENT_REFUNDED = "REFUNDED"
PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PAID, PAYMENT_REFUNDED)

PAYMENT_METHODS = ("CASH", "CARD", "QRIS", "TRANSFER")

TRANSACTION_SALE = "SALE"
TRANSACTION_REFUND = "REFUND"
TRANSACTION_VOID = "VOID"
TRANSACTION_TYPES = (TRANSACTION_SALE, TRANSACTION_REFUND, TRANSACTION_VOID)


class Order(db.Model):
    """
    Customer order aggregate.

    Financial fields are computed once at creation from snapshot prices and
    never recomputed. status / payment_status are only advanced through
    conditional UPDATEs in lifecycle_service and payment_service.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint(
            "total = subtotal - discount + tax + service_charge",
            name="ck_orders_total_arithmetic",
        ),
        db.CheckConstraint(
            "subtotal >= 0 AND discount >= 0 AND tax >= 0 AND service_charge >= 0",
            name="ck_orders_amounts_non_negative",
        ),
        db.Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Human-readable number, e.g. "POS-20250115-0001"
    order_number = db.Column(db.String(32), nullable=False)
    order_source = db.Column(db.String(8), nullable=False, default=SOURCE_POS)

    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True, index=True)
    table_number = db.Column(db.String(16), nullable=True)

    # Creating cashier (NULL for guest WEB orders)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    guest_name = db.Column(db.String(100), nullable=True)
    guest_whatsapp = db.Column(db.String(32), nullable=True)
    guest_pax = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_UNPAID, index=True)
    payment_method = db.Column(db.String(16), nullable=True)

    # Whole currency units
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    tax = db.Column(db.Integer, nullable=False, default=0)
    service_charge = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.line_no",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "order_number": self.order_number,
            "order_source": self.order_source,
            "table_id": self.table_id,
            "table_number": self.table_number,
            "user_id": self.user_id,
            "guest_info": {
                "name": self.guest_name,
                "whatsapp": self.guest_whatsapp,
                "pax": self.guest_pax,
            },
            "notes": self.notes,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "financials": {
                "subtotal": self.subtotal,
                "discount": self.discount,
                "tax": self.tax,
                "service_charge": self.service_charge,
                "total": self.total,
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "voided_by_user_id": self.voided_by_user_id,
            "void_reason": self.void_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    One order line with its price snapshot.

    price_at_moment already includes the selected attribute modifiers and is
    never re-derived from the live product price.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_no", name="uq_order_items_order_line"),
        db.CheckConstraint("qty >= 1", name="ck_order_items_qty_positive"),
        db.CheckConstraint("price_at_moment >= 0", name="ck_order_items_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)

    qty = db.Column(db.Integer, nullable=False)
    price_at_moment = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(200), nullable=True)

    order = db.relationship("Order", back_populates="items")
    attributes = db.relationship(
        "OrderItemAttribute",
        back_populates="item",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def line_total(self) -> int:
        return self.price_at_moment * self.qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "product_id": self.product_id,
            "name": self.name,
            "qty": self.qty,
            "price_at_moment": self.price_at_moment,
            "line_total": self.line_total,
            "note": self.note,
            "attributes": [attr.to_dict() for attr in self.attributes],
        }


class OrderItemAttribute(db.Model):
    """Selected option of a product attribute (e.g. Size = Large, +5000)."""
    __tablename__ = "order_item_attributes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(
        db.Integer, db.ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name = db.Column(db.String(64), nullable=False)
    selected = db.Column(db.String(64), nullable=False)
    price_modifier = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("OrderItem", back_populates="attributes")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "selected": self.selected,
            "price_modifier": self.price_modifier,
        }


class OrderSequence(db.Model):
    """
    Atomic per-business-day order counter shared by every branch.

    Order numbers carry no branch, so one counter per day keeps them
    globally unique. Replaces counting existing orders, which races under
    concurrent creation.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_date", name="uq_order_sequences_business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_date": self.business_date.isoformat(),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentTransaction(db.Model):
    """
    Immutable financial record (append-only).

    SALE when an order is paid, VOID when a paid order is voided. VOID rows
    are bookkeeping only; no money is moved by this engine.
    """
    __tablename__ = "payment_transactions"
    __table_args__ = (
        db.Index("ix_payment_transactions_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # SALE, REFUND, VOID
    payment_method = db.Column(db.String(16), nullable=True)

    amount = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    tax = db.Column(db.Integer, nullable=False, default=0)
    service_charge = db.Column(db.Integer, nullable=False, default=0)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "transaction_type": self.transaction_type,
            "payment_method": self.payment_method,
            "amount": self.amount,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "service_charge": self.service_charge,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
