from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .enums import TireKind, enum_type, enum_value


class InventoryCatalogItem(db.Model):
    """
    Stock aggregate per (size, brand, model, kind).

    WHY: Dashboards and reorder checks need per-tire-type counts without
    scanning every tire.

    current_stock is a cache: it moves by relative deltas in the same
    transaction as the tire transition that causes it, and stock_service can
    recompute it from tire rows at any time. Never treat it as the source of
    truth.
    """
    __tablename__ = "inventory_catalog"
    __table_args__ = (
        db.UniqueConstraint("size", "brand", "model", "kind", name="uq_inventory_catalog_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    size = db.Column(db.String(32), nullable=False)
    brand = db.Column(db.String(64), nullable=False, default="")
    model = db.Column(db.String(64), nullable=False, default="")
    kind = db.Column(enum_type(TireKind), nullable=False)

    current_stock = db.Column(db.Integer, nullable=False, default=0)

    # Reorder thresholds
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)

    # Cost tracking
    last_purchase_date = db.Column(db.Date, nullable=True)
    last_purchase_price_cents = db.Column(db.Integer, nullable=True)
    average_cost_cents = db.Column(db.Integer, nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    @property
    def key(self) -> tuple:
        return (self.size, self.brand, self.model, self.kind)

    @property
    def needs_reorder(self) -> bool:
        threshold = max(self.reorder_point or 0, self.min_stock or 0)
        return self.is_active and threshold > 0 and self.current_stock <= threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "size": self.size,
            "brand": self.brand,
            "model": self.model,
            "kind": enum_value(self.kind),
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "reorder_point": self.reorder_point,
            "needs_reorder": self.needs_reorder,
            "last_purchase_date": to_iso_date(self.last_purchase_date),
            "last_purchase_price_cents": self.last_purchase_price_cents,
            "average_cost_cents": self.average_cost_cents,
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }
