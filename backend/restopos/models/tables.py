from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TABLE_AVAILABLE = "Available"
TABLE_OCCUPIED = "Occupied"
TABLE_RESERVED = "Reserved"
TABLE_STATUSES = (TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_RESERVED)


class DiningTable(db.Model):
    """
    Physical table with 1:1 occupancy to its active order.

    INVARIANT: status == Occupied  <=>  current_order_id is set.
    current_order_id is a plain column (no FK) so orders and tables do not
    reference each other in a cycle.
    """
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "number", name="uq_dining_tables_branch_number"),
        db.CheckConstraint("capacity >= 1", name="ck_dining_tables_capacity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    number = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(64), nullable=True)
    capacity = db.Column(db.Integer, nullable=False, default=4)

    status = db.Column(db.String(16), nullable=False, default=TABLE_AVAILABLE, index=True)
    current_order_id = db.Column(db.Integer, nullable=True, index=True)

    # Reservation payload (cleared on release/reset)
    reserved_name = db.Column(db.String(100), nullable=True)
    reserved_whatsapp = db.Column(db.String(32), nullable=True)
    reserved_pax = db.Column(db.Integer, nullable=True)
    reservation_time = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("tables", lazy=True))

    def to_dict(self) -> dict:
        reservation = None
        if self.status == TABLE_RESERVED:
            reservation = {
                "name": self.reserved_name,
                "whatsapp": self.reserved_whatsapp,
                "pax": self.reserved_pax,
                "reservation_time": to_utc_z(self.reservation_time) if self.reservation_time else None,
            }
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "number": self.number,
            "name": self.name,
            "capacity": self.capacity,
            "status": self.status,
            "current_order_id": self.current_order_id,
            "reservation": reservation,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
