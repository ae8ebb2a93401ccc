from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

REASON_ORDER = "ORDER"
REASON_RESTOCK = "RESTOCK"
REASON_WASTAGE = "WASTAGE"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_RETURN = "RETURN"

INVENTORY_REASONS = (
    REASON_ORDER,
    REASON_RESTOCK,
    REASON_WASTAGE,
    REASON_ADJUSTMENT,
    REASON_RETURN,
)


class InventoryLog(db.Model):
    """
    Append-only stock change log.

    - One row per stock mutation per product (never updated or deleted).
    - qty_after = qty_before + qty_change (CHECK enforced).
    - Summing qty_change per product reconciles to Product.stock; the log is
      eventually, not transactionally, consistent with the counter.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.CheckConstraint(
            "qty_after = qty_before + qty_change",
            name="ck_inventory_logs_arithmetic",
        ),
        db.Index("ix_inventory_logs_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_logs_branch_reason", "branch_id", "reason"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot for reporting
    product_name = db.Column(db.String(100), nullable=False)

    qty_change = db.Column(db.Integer, nullable=False)
    qty_before = db.Column(db.Integer, nullable=False)
    qty_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(16), nullable=False, index=True)
    reference_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty_change": self.qty_change,
            "qty_before": self.qty_before,
            "qty_after": self.qty_after,
            "reason": self.reason,
            "reference_order_id": self.reference_order_id,
            "actor_user_id": self.actor_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
