from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable menu item with its mutable stock counter.

    STOCK DISCIPLINE:
    stock is only ever changed through stock_service (conditional UPDATE
    statements). Never assign product.stock from application code; the
    CHECK constraint is the last line against a negative value at rest.

    attributes holds the option catalogue customers pick from, e.g.
    [{"name": "Size", "options": [{"label": "Large", "price_modifier": 5000}]}]
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sku", name="uq_products_branch_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_branch_active", "branch_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(64), nullable=False, default="General", index=True)

    # Whole currency units (no sub-unit currency)
    price = db.Column(db.Integer, nullable=False, default=0)
    cost_price = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    # Advisory only; never enforced on release
    max_stock = db.Column(db.Integer, nullable=True)

    attributes = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} branch_id={self.branch_id}>"

    def find_option(self, attribute_name: str, label: str) -> dict | None:
        for attribute in self.attributes or []:
            if attribute.get("name") != attribute_name:
                continue
            for option in attribute.get("options") or []:
                if option.get("label") == label:
                    return option
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "stock": self.stock,
            "max_stock": self.max_stock,
            "attributes": self.attributes or [],
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
