from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .enums import (
    RetreadItemStatus,
    RetreadOrderStatus,
    RetreadOutcome,
    enum_type,
    enum_value,
)


class RetreadOrder(db.Model):
    """
    Batch of used casings sent to a retread supplier.

    Unlike purchasing, retreading is per unit: every line is bound to exactly
    one existing tire.

    LIFECYCLE:
    1. DRAFT: lines being bound, tires AWAITING_RETREAD
    2. SENT: tires AT_RETREAD_SUPPLIER
    3. PARTIALLY_RECEIVED / FULLY_RECEIVED: derived from line outcomes
    4. CANCELLED: only from DRAFT
    """
    __tablename__ = "retread_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_retread_orders_number"),
        db.Index("ix_retread_orders_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    status = db.Column(enum_type(RetreadOrderStatus), nullable=False, default=RetreadOrderStatus.DRAFT, index=True)

    order_date = db.Column(db.Date, nullable=False)
    expected_return_date = db.Column(db.Date, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    total_tires = db.Column(db.Integer, nullable=False, default=0)
    # Sum of accepted lines' retread cost
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("retread_orders", lazy="dynamic"))
    items = db.relationship(
        "RetreadOrderItem",
        backref="order",
        order_by="RetreadOrderItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "status": enum_value(self.status),
            "order_date": to_iso_date(self.order_date),
            "expected_return_date": to_iso_date(self.expected_return_date),
            "sent_at": to_utc_z(self.sent_at),
            "sent_by_user_id": self.sent_by_user_id,
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "total_tires": self.total_tires,
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self) -> str:
        return f"<RetreadOrder {self.order_number} {enum_value(self.status)}>"


class RetreadOrderItem(db.Model):
    """
    One casing on a retread order.

    tire_id is the pre-existing tire; new_tire_id is filled when the casing
    comes back ACCEPTED under a new identity.
    """
    __tablename__ = "retread_order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "tire_id", name="uq_retread_items_order_tire"),
        db.CheckConstraint("quoted_cost_cents IS NULL OR quoted_cost_cents >= 0", name="ck_retread_items_quote_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("retread_orders.id"), nullable=False, index=True)
    tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=False, index=True)

    status = db.Column(enum_type(RetreadItemStatus), nullable=False, default=RetreadItemStatus.PENDING)

    quoted_cost_cents = db.Column(db.Integer, nullable=True)
    retread_cost_cents = db.Column(db.Integer, nullable=True)
    new_tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    tire = db.relationship("Tire", foreign_keys=[tire_id])
    new_tire = db.relationship("Tire", foreign_keys=[new_tire_id])

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_settled(self) -> bool:
        return self.status in (RetreadItemStatus.ACCEPTED, RetreadItemStatus.REJECTED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "tire_id": self.tire_id,
            "status": enum_value(self.status),
            "quoted_cost_cents": self.quoted_cost_cents,
            "retread_cost_cents": self.retread_cost_cents,
            "new_tire_id": self.new_tire_id,
            "notes": self.notes,
        }


class RetreadReceipt(db.Model):
    """RRN: outcome of casings returned by a retreader in one delivery."""
    __tablename__ = "retread_receipts"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", name="uq_retread_receipts_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("retread_orders.id"), nullable=False, index=True)

    received_date = db.Column(db.Date, nullable=False)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    supplier_invoice_number = db.Column(db.String(64), nullable=True)
    delivery_note_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    accepted_count = db.Column(db.Integer, nullable=False, default=0)
    rejected_count = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    accounting_transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("accounting_transactions.id", use_alter=True, name="fk_retread_receipts_transaction"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("RetreadOrder", backref=db.backref("receipts", lazy=True))
    items = db.relationship(
        "RetreadReceiptItem",
        backref="receipt",
        order_by="RetreadReceiptItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "order_id": self.order_id,
            "received_date": to_iso_date(self.received_date),
            "received_by_user_id": self.received_by_user_id,
            "supplier_invoice_number": self.supplier_invoice_number,
            "delivery_note_number": self.delivery_note_number,
            "notes": self.notes,
            "accepted_count": self.accepted_count,
            "rejected_count": self.rejected_count,
            "total_cost_cents": self.total_cost_cents,
            "accounting_transaction_id": self.accounting_transaction_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class RetreadReceiptItem(db.Model):
    __tablename__ = "retread_receipt_items"
    __table_args__ = (
        db.UniqueConstraint("order_item_id", name="uq_retread_receipt_items_order_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("retread_receipts.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("retread_order_items.id"), nullable=False)

    outcome = db.Column(enum_type(RetreadOutcome), nullable=False)
    new_serial_number = db.Column(db.String(64), nullable=True)
    new_tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=True)
    retread_cost_cents = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    order_item = db.relationship("RetreadOrderItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "order_item_id": self.order_item_id,
            "outcome": enum_value(self.outcome),
            "new_serial_number": self.new_serial_number,
            "new_tire_id": self.new_tire_id,
            "retread_cost_cents": self.retread_cost_cents,
            "notes": self.notes,
        }
