from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .enums import MovementType, TireKind, TireStatus, enum_type, enum_value


class Tire(db.Model):
    """
    A single physical tire, identified by its serial number.

    WHY: Every tire is tracked individually from receipt to disposal so cost,
    mileage and retread history can be attributed to one casing.

    STATUS:
    status is a cached projection of the latest TireMovement. It is only ever
    changed by tire_service alongside a new movement row (enforced at flush).

    LINEAGE (immutable after creation):
    - NEW tires: source_purchase_item_id + source_grn_item_id
    - RETREADED tires: source_retread_item_id (the retread line stores the
      casing's previous tire id)
    """
    __tablename__ = "tires"
    __table_args__ = (
        db.UniqueConstraint("serial_number", name="uq_tires_serial_number"),
        db.Index("ix_tires_catalog_key", "size", "brand", "model", "kind"),
        db.Index("ix_tires_status_size", "status", "size"),
        db.CheckConstraint("retread_count >= 0", name="ck_tires_retread_count_nonneg"),
        db.CheckConstraint("cost_cents >= 0", name="ck_tires_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    serial_number = db.Column(db.String(64), nullable=False)

    size = db.Column(db.String(32), nullable=False)
    brand = db.Column(db.String(64), nullable=False, default="")
    model = db.Column(db.String(64), nullable=False, default="")
    kind = db.Column(enum_type(TireKind), nullable=False, default=TireKind.NEW)

    status = db.Column(enum_type(TireStatus), nullable=False, index=True)

    # Cost basis in cents (purchase price or retread service cost)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    acquired_on = db.Column(db.Date, nullable=True)

    # Lineage
    source_purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True, index=True)
    source_grn_item_id = db.Column(db.Integer, db.ForeignKey("goods_received_note_items.id"), nullable=True, index=True)
    source_retread_item_id = db.Column(
        db.Integer,
        db.ForeignKey("retread_order_items.id", use_alter=True, name="fk_tires_source_retread_item"),
        nullable=True,
        index=True,
    )

    retread_count = db.Column(db.Integer, nullable=False, default=0)

    # Set when an accepted retread replaces this casing with a new identity
    superseded_by_tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=True)
    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Disposal metadata
    disposed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    disposal_method = db.Column(db.String(32), nullable=True)
    disposal_reason = db.Column(db.Text, nullable=True)
    disposal_authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("tires", lazy="dynamic"))

    __mapper_args__ = {"version_id_col": version_id}

    LINEAGE_FIELDS = ("source_purchase_item_id", "source_grn_item_id", "source_retread_item_id")

    @property
    def catalog_key(self) -> tuple:
        return (self.size, self.brand or "", self.model or "", self.kind)

    @property
    def is_superseded(self) -> bool:
        return self.superseded_by_tire_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "serial_number": self.serial_number,
            "size": self.size,
            "brand": self.brand,
            "model": self.model,
            "kind": enum_value(self.kind),
            "status": enum_value(self.status),
            "cost_cents": self.cost_cents,
            "supplier_id": self.supplier_id,
            "acquired_on": to_iso_date(self.acquired_on),
            "source_purchase_item_id": self.source_purchase_item_id,
            "source_grn_item_id": self.source_grn_item_id,
            "source_retread_item_id": self.source_retread_item_id,
            "retread_count": self.retread_count,
            "superseded_by_tire_id": self.superseded_by_tire_id,
            "superseded_at": to_utc_z(self.superseded_at),
            "disposed_at": to_utc_z(self.disposed_at),
            "disposal_method": self.disposal_method,
            "disposal_reason": self.disposal_reason,
            "disposal_authorized_by_user_id": self.disposal_authorized_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }

    def __repr__(self) -> str:
        return f"<Tire {self.id} {self.serial_number} {enum_value(self.status)}>"


class TireMovement(db.Model):
    """
    Immutable record of one tire status transition.

    INVARIANTS:
    - Rows are never updated or deleted.
    - The latest row for a tire (highest id) has to_status == Tire.status.
    - from_status is NULL only for PURCHASE_RECEIPT creation movements.
    - Exactly one causal reference is usually set; free-text note is optional.
    """
    __tablename__ = "tire_movements"
    __table_args__ = (
        db.Index("ix_tire_movements_tire_id_id", "tire_id", "id"),
        db.Index("ix_tire_movements_type_occurred", "movement_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=False)

    from_status = db.Column(enum_type(TireStatus), nullable=True)
    to_status = db.Column(enum_type(TireStatus), nullable=False)
    movement_type = db.Column(enum_type(MovementType), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Causal references
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=True, index=True)
    retread_order_id = db.Column(db.Integer, db.ForeignKey("retread_orders.id"), nullable=True, index=True)
    retread_item_id = db.Column(db.Integer, db.ForeignKey("retread_order_items.id"), nullable=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("tire_assignments.id"), nullable=True)

    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tire = db.relationship(
        "Tire",
        backref=db.backref("movements", lazy="dynamic", order_by="TireMovement.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tire_id": self.tire_id,
            "from_status": enum_value(self.from_status),
            "to_status": enum_value(self.to_status),
            "movement_type": enum_value(self.movement_type),
            "occurred_at": to_utc_z(self.occurred_at),
            "actor_user_id": self.actor_user_id,
            "purchase_item_id": self.purchase_item_id,
            "grn_id": self.grn_id,
            "retread_order_id": self.retread_order_id,
            "retread_item_id": self.retread_item_id,
            "assignment_id": self.assignment_id,
            "note": self.note,
        }

    def __repr__(self) -> str:
        return (
            f"<TireMovement {self.id} tire={self.tire_id} "
            f"{enum_value(self.from_status)}->{enum_value(self.to_status)}>"
        )


class Vehicle(db.Model):
    """Fleet vehicle (master data maintained elsewhere)."""
    __tablename__ = "vehicles"
    __table_args__ = (
        db.UniqueConstraint("vehicle_number", name="uq_vehicles_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vehicle_number = db.Column(db.String(32), nullable=False)
    make = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(64), nullable=True)
    current_odometer = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_number": self.vehicle_number,
            "make": self.make,
            "model": self.model,
            "current_odometer": self.current_odometer,
            "is_active": self.is_active,
        }


class WheelPosition(db.Model):
    """Named wheel slot on a vehicle (e.g. FL, RR-IN)."""
    __tablename__ = "wheel_positions"
    __table_args__ = (
        db.UniqueConstraint("vehicle_id", "position_code", name="uq_wheel_positions_vehicle_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    position_code = db.Column(db.String(16), nullable=False)
    position_name = db.Column(db.String(64), nullable=True)
    axle_number = db.Column(db.Integer, nullable=True)

    vehicle = db.relationship("Vehicle", backref=db.backref("positions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "position_code": self.position_code,
            "position_name": self.position_name,
            "axle_number": self.axle_number,
        }


class TireAssignment(db.Model):
    """
    Installation of a tire at a vehicle wheel position.

    An assignment is open while removed_at is NULL. A tire has at most one open
    assignment, and so does a wheel position.
    """
    __tablename__ = "tire_assignments"
    __table_args__ = (
        db.Index("ix_tire_assignments_tire_removed", "tire_id", "removed_at"),
        db.Index("ix_tire_assignments_position_removed", "position_id", "removed_at"),
        db.CheckConstraint(
            "removal_odometer IS NULL OR removal_odometer >= install_odometer",
            name="ck_tire_assignments_odometer_order",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=False)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    position_id = db.Column(db.Integer, db.ForeignKey("wheel_positions.id"), nullable=False)

    installed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    install_odometer = db.Column(db.Integer, nullable=False)
    installed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    removed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    removal_odometer = db.Column(db.Integer, nullable=True)
    removal_reason = db.Column(db.Text, nullable=True)
    removed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    tire = db.relationship("Tire", backref=db.backref("assignments", lazy="dynamic"))
    vehicle = db.relationship("Vehicle")
    position = db.relationship("WheelPosition")

    @property
    def distance_travelled(self) -> int | None:
        if self.removal_odometer is None:
            return None
        return self.removal_odometer - self.install_odometer

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tire_id": self.tire_id,
            "vehicle_id": self.vehicle_id,
            "position_id": self.position_id,
            "installed_at": to_utc_z(self.installed_at),
            "install_odometer": self.install_odometer,
            "installed_by_user_id": self.installed_by_user_id,
            "removed_at": to_utc_z(self.removed_at),
            "removal_odometer": self.removal_odometer,
            "removal_reason": self.removal_reason,
            "removed_by_user_id": self.removed_by_user_id,
            "distance_travelled": self.distance_travelled,
        }
