from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .enums import (
    GoodsReceivedNoteStatus,
    PurchaseOrderStatus,
    SupplierKind,
    TireKind,
    enum_type,
    enum_value,
)


class Supplier(db.Model):
    """
    Tire vendor or retread service provider.

    balance_cents is the amount owed to the supplier. It only changes by
    relative deltas alongside a SupplierLedgerEntry, and must always equal the
    signed sum of that supplier's ledger entries.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_suppliers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    kind = db.Column(enum_type(SupplierKind), nullable=False, default=SupplierKind.TIRE)
    contact_person = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": enum_value(self.kind),
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "balance_cents": self.balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Supplier {self.id} {self.name}>"


class PurchaseOrder(db.Model):
    """
    Purchase order for new tires.

    LIFECYCLE:
    DRAFT -> PENDING_APPROVAL -> APPROVED -> ORDERED
      -> PARTIALLY_RECEIVED -> FULLY_RECEIVED -> CLOSED
    CANCELLED from any pre-receipt status.

    PARTIALLY_RECEIVED / FULLY_RECEIVED are derived from line quantities after
    every receipt; they are never set by hand.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        db.Index("ix_purchase_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(32), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    po_date = db.Column(db.Date, nullable=False)
    expected_delivery_date = db.Column(db.Date, nullable=True)

    status = db.Column(enum_type(PurchaseOrderStatus), nullable=False, default=PurchaseOrderStatus.DRAFT, index=True)

    # Sum of line totals, recomputed on every line change
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy="dynamic"))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_received(self) -> int:
        return sum(item.received_quantity for item in self.items)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "po_date": to_iso_date(self.po_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "status": enum_value(self.status),
            "total_amount_cents": self.total_amount_cents,
            "notes": self.notes,
            "terms": self.terms,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} {enum_value(self.status)}>"


class PurchaseOrderItem(db.Model):
    """
    Purchase order line: a quantity of one tire type (size, brand, model).

    INVARIANT: 0 <= received_quantity <= quantity; received_quantity only grows.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_po_items_quantity_positive"),
        db.CheckConstraint("received_quantity >= 0", name="ck_po_items_received_nonneg"),
        db.CheckConstraint("received_quantity <= quantity", name="ck_po_items_received_le_quantity"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_po_items_unit_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    size = db.Column(db.String(32), nullable=False)
    brand = db.Column(db.String(64), nullable=False, default="")
    model = db.Column(db.String(64), nullable=False, default="")
    kind = db.Column(enum_type(TireKind), nullable=False, default=TireKind.NEW)

    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - (self.received_quantity or 0)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_id": self.po_id,
            "size": self.size,
            "brand": self.brand,
            "model": self.model,
            "kind": enum_value(self.kind),
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "remaining_quantity": self.remaining_quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
        }


class GoodsReceivedNote(db.Model):
    """
    GRN: one physical receiving event against a purchase order.

    Each GRN item creates exactly quantity_received NEW tires. A GRN is
    written once, in the same transaction as its tires, movements, stock
    deltas and financial posting.
    """
    __tablename__ = "goods_received_notes"
    __table_args__ = (
        db.UniqueConstraint("grn_number", name="uq_grn_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    grn_number = db.Column(db.String(32), nullable=False)
    po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    receipt_date = db.Column(db.Date, nullable=False)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    supplier_invoice_number = db.Column(db.String(64), nullable=True)
    delivery_note_number = db.Column(db.String(64), nullable=True)
    vehicle_number = db.Column(db.String(32), nullable=True)
    driver_name = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(enum_type(GoodsReceivedNoteStatus), nullable=False, default=GoodsReceivedNoteStatus.COMPLETED)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("goods_received_notes", lazy=True))
    items = db.relationship(
        "GoodsReceivedNoteItem",
        backref="grn",
        order_by="GoodsReceivedNoteItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "grn_number": self.grn_number,
            "po_id": self.po_id,
            "receipt_date": to_iso_date(self.receipt_date),
            "received_by_user_id": self.received_by_user_id,
            "supplier_invoice_number": self.supplier_invoice_number,
            "delivery_note_number": self.delivery_note_number,
            "vehicle_number": self.vehicle_number,
            "driver_name": self.driver_name,
            "notes": self.notes,
            "total_cost_cents": self.total_cost_cents,
            "status": enum_value(self.status),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class GoodsReceivedNoteItem(db.Model):
    __tablename__ = "goods_received_note_items"
    __table_args__ = (
        db.CheckConstraint("quantity_received > 0", name="ck_grn_items_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_grn_items_unit_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=False, index=True)
    po_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=False, index=True)

    quantity_received = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    batch_number = db.Column(db.String(64), nullable=True)

    # Serials actually assigned to the created tires, in creation order
    serial_numbers = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    po_item = db.relationship("PurchaseOrderItem", backref=db.backref("grn_items", lazy=True))

    @property
    def line_cost_cents(self) -> int:
        return self.quantity_received * self.unit_cost_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "grn_id": self.grn_id,
            "po_item_id": self.po_item_id,
            "quantity_received": self.quantity_received,
            "unit_cost_cents": self.unit_cost_cents,
            "line_cost_cents": self.line_cost_cents,
            "batch_number": self.batch_number,
            "serial_numbers": list(self.serial_numbers or []),
            "notes": self.notes,
        }
