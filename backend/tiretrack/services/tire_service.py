# Overview: Service-layer operations for tires; the asset state machine and vehicle/disposal actions.

"""
Tire Asset Store

WHY: A tire's status, its movement log and the stock counters are three views
of the same fact. Every status change goes through transition_tire(), which
checks the transition table, writes the movement, updates the status and
applies the stock delta together.

STATES:
IN_STORE, ON_VEHICLE, AWAITING_RETREAD, AT_RETREAD_SUPPLIER, USED_STORE,
DISPOSED (terminal), SCRAP (terminal)

DESIGN:
- TRANSITIONS is the single source of allowed (status, movement type) pairs;
  anything missing is a StateConflictError.
- The tire row is locked (and version-checked) before every transition, so
  movements for one tire are inserted in commit order.
- A tire superseded by an accepted retread keeps its last status and accepts
  no further transitions.
- create_tire and transition_tire run inside the caller's transaction; the
  remaining public operations each run in their own.
"""

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..errors import (
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    DisposalMethod,
    MovementType,
    RetreadItemStatus,
    RetreadOrder,
    RetreadOrderItem,
    RetreadOrderStatus,
    TERMINAL_STATUSES,
    Tire,
    TireAssignment,
    TireKind,
    TireStatus,
    Vehicle,
    WheelPosition,
)
from ..permissions import DISPOSE_TIRES, REVERSE_DISPOSALS
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .movement_service import record_movement
from .permission_service import require_permission
from .stock_service import apply_stock_delta, stock_delta


# (current status, movement type) -> new status
TRANSITIONS = {
    (TireStatus.IN_STORE, MovementType.INSTALL): TireStatus.ON_VEHICLE,
    (TireStatus.USED_STORE, MovementType.INSTALL): TireStatus.ON_VEHICLE,
    (TireStatus.ON_VEHICLE, MovementType.REMOVAL): TireStatus.USED_STORE,
    (TireStatus.USED_STORE, MovementType.MARK_FOR_RETREAD): TireStatus.AWAITING_RETREAD,
    (TireStatus.AWAITING_RETREAD, MovementType.RETREAD_SENT): TireStatus.AT_RETREAD_SUPPLIER,
    (TireStatus.AT_RETREAD_SUPPLIER, MovementType.RETREAD_REJECTED): TireStatus.USED_STORE,
    (TireStatus.IN_STORE, MovementType.DISPOSAL): TireStatus.DISPOSED,
    (TireStatus.USED_STORE, MovementType.DISPOSAL): TireStatus.DISPOSED,
    (TireStatus.AWAITING_RETREAD, MovementType.DISPOSAL): TireStatus.DISPOSED,
    (TireStatus.IN_STORE, MovementType.SCRAP): TireStatus.SCRAP,
    (TireStatus.USED_STORE, MovementType.SCRAP): TireStatus.SCRAP,
    (TireStatus.AWAITING_RETREAD, MovementType.SCRAP): TireStatus.SCRAP,
    (TireStatus.DISPOSED, MovementType.DISPOSAL_REVERSAL): TireStatus.USED_STORE,
}

# Movement types that bring a new tire identity into existence:
# movement type -> (recorded from_status, initial status)
CREATION_TRANSITIONS = {
    MovementType.PURCHASE_RECEIPT: (None, TireStatus.IN_STORE),
    MovementType.RETREAD_RECEIPT: (TireStatus.AT_RETREAD_SUPPLIER, TireStatus.IN_STORE),
}

OPEN_RETREAD_ORDER_STATUSES = (
    RetreadOrderStatus.DRAFT,
    RetreadOrderStatus.SENT,
    RetreadOrderStatus.PARTIALLY_RECEIVED,
)
OPEN_RETREAD_ITEM_STATUSES = (RetreadItemStatus.PENDING, RetreadItemStatus.AT_RETREADER)


def resolve_transition(tire: Tire, movement_type: MovementType) -> TireStatus:
    """
    Return the status movement_type leads to from the tire's current status.

    Raises:
        StateConflictError: If the tire is superseded or the pair is not in TRANSITIONS
    """
    if tire.is_superseded:
        raise StateConflictError(
            f"Tire {tire.serial_number} was superseded by a retreaded tire",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
            attempted_state=movement_type,
            details={"superseded_by_tire_id": tire.superseded_by_tire_id},
        )
    target = TRANSITIONS.get((tire.status, movement_type))
    if target is None:
        reason = "is terminal" if tire.status in TERMINAL_STATUSES else "does not allow this action"
        raise StateConflictError(
            f"Tire {tire.serial_number} status {tire.status.value} {reason} ({movement_type.value})",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
            attempted_state=movement_type,
        )
    return target


def transition_tire(
    tire: Tire,
    movement_type: MovementType,
    *,
    actor_user_id: int,
    occurred_at: datetime | None = None,
    note: str | None = None,
    **references,
):
    """
    Move tire along one edge of the state machine (caller's transaction).

    Writes exactly one movement, then the status, then the stock delta.
    references are passed through to the movement (grn_id, assignment_id, ...).
    """
    from_status = tire.status
    to_status = resolve_transition(tire, movement_type)

    movement = record_movement(
        tire=tire,
        from_status=from_status,
        to_status=to_status,
        movement_type=movement_type,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,
        note=note,
        **references,
    )
    tire.status = to_status
    db.session.flush()

    apply_stock_delta(tire.catalog_key, stock_delta(from_status, to_status))
    return movement


def create_tire(
    *,
    serial_number: str,
    size: str,
    brand: str | None,
    model: str | None,
    kind: TireKind,
    cost_cents: int,
    supplier_id: int | None,
    acquired_on: date | None,
    movement_type: MovementType,
    actor_user_id: int,
    occurred_at: datetime | None = None,
    note: str | None = None,
    source_purchase_item_id: int | None = None,
    source_grn_item_id: int | None = None,
    source_retread_item_id: int | None = None,
    retread_count: int = 0,
    **references,
) -> Tire:
    """
    Create a tire with its creation movement and stock increment (caller's transaction).

    Serial uniqueness is checked by the caller for whole batches; the unique
    constraint backs it up.
    """
    if movement_type not in CREATION_TRANSITIONS:
        raise ValidationError(
            f"{movement_type.value} does not create tires",
            entity_type="tire",
            attempted_state=movement_type,
        )
    from_status, initial_status = CREATION_TRANSITIONS[movement_type]

    tire = Tire(
        serial_number=serial_number,
        size=size,
        brand=brand or "",
        model=model or "",
        kind=kind,
        status=initial_status,
        cost_cents=cost_cents,
        supplier_id=supplier_id,
        acquired_on=acquired_on,
        source_purchase_item_id=source_purchase_item_id,
        source_grn_item_id=source_grn_item_id,
        source_retread_item_id=source_retread_item_id,
        retread_count=retread_count,
    )
    db.session.add(tire)
    record_movement(
        tire=tire,
        from_status=from_status,
        to_status=initial_status,
        movement_type=movement_type,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,
        note=note,
        **references,
    )
    db.session.flush()

    apply_stock_delta(tire.catalog_key, stock_delta(None, initial_status))
    return tire


def find_existing_serials(serials) -> set[str]:
    serials = list(serials)
    if not serials:
        return set()
    rows = db.session.query(Tire.serial_number).filter(Tire.serial_number.in_(serials)).all()
    return {serial for (serial,) in rows}


def find_open_retread_item(tire_id: int, *, exclude_order_id: int | None = None) -> RetreadOrderItem | None:
    query = (
        db.session.query(RetreadOrderItem)
        .join(RetreadOrder, RetreadOrder.id == RetreadOrderItem.order_id)
        .filter(
            RetreadOrderItem.tire_id == tire_id,
            RetreadOrderItem.status.in_(OPEN_RETREAD_ITEM_STATUSES),
            RetreadOrder.status.in_(OPEN_RETREAD_ORDER_STATUSES),
        )
    )
    if exclude_order_id is not None:
        query = query.filter(RetreadOrder.id != exclude_order_id)
    return query.first()


def get_tire(tire_id: int) -> Tire:
    tire = db.session.get(Tire, tire_id)
    if not tire:
        raise NotFoundError(f"Tire {tire_id} not found", entity_type="tire", entity_id=tire_id)
    return tire


def lock_tire(tire_id: int) -> Tire:
    tire = lock_for_update(db.session.query(Tire).filter(Tire.id == tire_id)).first()
    if not tire:
        raise NotFoundError(f"Tire {tire_id} not found", entity_type="tire", entity_id=tire_id)
    return tire


def get_tire_by_serial(serial_number: str) -> Tire:
    tire = db.session.query(Tire).filter_by(serial_number=serial_number).first()
    if not tire:
        raise NotFoundError(f"Tire {serial_number} not found", entity_type="tire", entity_id=serial_number)
    return tire


def list_tires(
    *,
    status: TireStatus | str | None = None,
    size: str | None = None,
    kind: TireKind | str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Tire], int]:
    query = db.session.query(Tire)
    try:
        if status:
            query = query.filter(Tire.status == TireStatus(status))
        if kind:
            query = query.filter(Tire.kind == TireKind(kind))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if size:
        query = query.filter(Tire.size == size)
    if supplier_id:
        query = query.filter(Tire.supplier_id == supplier_id)

    total = query.count()
    limit = max(1, min(limit, 500))
    items = query.order_by(Tire.id.asc()).offset(max(0, offset)).limit(limit).all()
    return items, total


def get_open_assignment(tire_id: int) -> TireAssignment | None:
    return (
        db.session.query(TireAssignment)
        .filter(TireAssignment.tire_id == tire_id, TireAssignment.removed_at.is_(None))
        .first()
    )


def _require_odometer(odometer) -> int:
    if not isinstance(odometer, int) or isinstance(odometer, bool) or odometer < 0:
        raise ValidationError("odometer must be a non-negative integer", details={"odometer": odometer})
    return odometer


def install_tire(
    *,
    tire_id: int,
    vehicle_id: int,
    position_id: int,
    odometer: int,
    actor_user_id: int,
    note: str | None = None,
) -> TireAssignment:
    """
    Install a tire at a vehicle wheel position.

    Args:
        tire_id: Tire to install (must be IN_STORE or USED_STORE)
        vehicle_id: Target vehicle
        position_id: Wheel position belonging to that vehicle, currently free
        odometer: Vehicle odometer at installation
        actor_user_id: User performing the installation

    Returns:
        The open TireAssignment

    Raises:
        ValidationError: Bad odometer or position not on the vehicle
        NotFoundError: Unknown tire or vehicle
        StateConflictError: Tire status, occupied position, inactive vehicle
    """
    odometer = _require_odometer(odometer)

    def _op() -> TireAssignment:
        tire = lock_tire(tire_id)
        resolve_transition(tire, MovementType.INSTALL)

        vehicle = lock_for_update(db.session.query(Vehicle).filter(Vehicle.id == vehicle_id)).first()
        if not vehicle:
            raise NotFoundError(f"Vehicle {vehicle_id} not found", entity_type="vehicle", entity_id=vehicle_id)
        if not vehicle.is_active:
            raise StateConflictError(
                f"Vehicle {vehicle.vehicle_number} is inactive",
                entity_type="vehicle",
                entity_id=vehicle.id,
            )

        position = (
            db.session.query(WheelPosition)
            .filter(WheelPosition.id == position_id, WheelPosition.vehicle_id == vehicle.id)
            .first()
        )
        if not position:
            raise ValidationError(
                f"Wheel position {position_id} does not belong to vehicle {vehicle.vehicle_number}",
                entity_type="wheel_position",
                entity_id=position_id,
            )

        occupant = (
            db.session.query(TireAssignment)
            .filter(TireAssignment.position_id == position.id, TireAssignment.removed_at.is_(None))
            .first()
        )
        if occupant:
            raise StateConflictError(
                f"Position {position.position_code} on {vehicle.vehicle_number} is occupied",
                entity_type="wheel_position",
                entity_id=position.id,
                details={"occupied_by_tire_id": occupant.tire_id},
            )
        if get_open_assignment(tire.id):
            raise StateConflictError(
                f"Tire {tire.serial_number} already has an open assignment",
                entity_type="tire",
                entity_id=tire.id,
                current_state=tire.status,
            )

        now = utcnow()
        assignment = TireAssignment(
            tire_id=tire.id,
            vehicle_id=vehicle.id,
            position_id=position.id,
            installed_at=now,
            install_odometer=odometer,
            installed_by_user_id=actor_user_id,
        )
        db.session.add(assignment)
        db.session.flush()

        transition_tire(
            tire,
            MovementType.INSTALL,
            actor_user_id=actor_user_id,
            occurred_at=now,
            note=note or f"Installed on {vehicle.vehicle_number} at {position.position_code}",
            assignment_id=assignment.id,
        )
        if odometer > (vehicle.current_odometer or 0):
            vehicle.current_odometer = odometer
        return assignment

    assignment = run_in_transaction(_op)
    current_app.logger.info(
        "Tire %s installed on vehicle %s position %s", tire_id, vehicle_id, position_id
    )
    return assignment


def detach_from_vehicle(
    tire: Tire,
    *,
    odometer: int | None,
    reason: str | None,
    actor_user_id: int,
    occurred_at: datetime | None = None,
) -> TireAssignment:
    """
    Close the open assignment of a locked ON_VEHICLE tire and write its
    REMOVAL movement (caller's transaction).

    odometer=None takes the vehicle's last known reading, never lower than
    the install reading.
    """
    resolve_transition(tire, MovementType.REMOVAL)

    assignment = get_open_assignment(tire.id)
    if not assignment:
        raise StateConflictError(
            f"Tire {tire.serial_number} has no open vehicle assignment",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
        )
    vehicle = db.session.get(Vehicle, assignment.vehicle_id)
    if odometer is None:
        odometer = max(assignment.install_odometer, (vehicle.current_odometer if vehicle else 0) or 0)
    if odometer < assignment.install_odometer:
        raise ValidationError(
            "Removal odometer cannot be lower than the installation odometer",
            entity_type="tire_assignment",
            entity_id=assignment.id,
            details={"install_odometer": assignment.install_odometer, "odometer": odometer},
        )

    now = occurred_at or utcnow()
    assignment.removed_at = now
    assignment.removal_odometer = odometer
    assignment.removal_reason = reason
    assignment.removed_by_user_id = actor_user_id

    transition_tire(
        tire,
        MovementType.REMOVAL,
        actor_user_id=actor_user_id,
        occurred_at=now,
        note=reason,
        assignment_id=assignment.id,
    )

    if vehicle and odometer > (vehicle.current_odometer or 0):
        vehicle.current_odometer = odometer
    return assignment


def remove_tire(
    *,
    tire_id: int,
    odometer: int,
    reason: str | None,
    actor_user_id: int,
) -> TireAssignment:
    """
    Remove an ON_VEHICLE tire into used stock and close its assignment.

    Raises:
        ValidationError: Odometer below the install reading
        StateConflictError: Tire not ON_VEHICLE, or no open assignment
    """
    odometer = _require_odometer(odometer)

    def _op() -> TireAssignment:
        tire = lock_tire(tire_id)
        return detach_from_vehicle(tire, odometer=odometer, reason=reason, actor_user_id=actor_user_id)

    assignment = run_in_transaction(_op)
    current_app.logger.info("Tire %s removed from vehicle %s", tire_id, assignment.vehicle_id)
    return assignment


def mark_for_retread(*, tire_id: int, actor_user_id: int, note: str | None = None) -> Tire:
    """USED_STORE -> AWAITING_RETREAD."""
    def _op() -> Tire:
        tire = lock_tire(tire_id)
        transition_tire(tire, MovementType.MARK_FOR_RETREAD, actor_user_id=actor_user_id, note=note)
        return tire

    return run_in_transaction(_op)


def _parse_disposal_method(method) -> DisposalMethod:
    try:
        return DisposalMethod(method)
    except ValueError:
        raise ValidationError(
            f"Invalid disposal method. Must be one of: {', '.join(m.value for m in DisposalMethod)}",
            details={"method": method},
        ) from None


def dispose_tire(
    *,
    tire_id: int,
    method: DisposalMethod | str,
    reason: str,
    authorizer_user_id: int,
) -> Tire:
    """
    Dispose of (or scrap) a tire.

    Method SCRAP leads to SCRAP; every other method to DISPOSED. Only stocked
    or retread-queued tires can be disposed: a mounted tire must be removed
    first, and a tire at the retreader comes back through a retread receipt.

    Raises:
        ValidationError: Unknown method or missing reason
        AuthorizationError: Authorizer lacks DISPOSE_TIRES
        StateConflictError: Tire terminal, mounted, at the retreader, or on an open retread order
    """
    disposal_method = _parse_disposal_method(method)
    if not (reason or "").strip():
        raise ValidationError("A disposal reason is required", entity_type="tire", entity_id=tire_id)
    movement_type = MovementType.SCRAP if disposal_method == DisposalMethod.SCRAP else MovementType.DISPOSAL

    def _op() -> Tire:
        require_permission(authorizer_user_id, DISPOSE_TIRES, action="dispose_tire")
        tire = lock_tire(tire_id)
        resolve_transition(tire, movement_type)

        open_item = find_open_retread_item(tire.id)
        if open_item:
            raise StateConflictError(
                f"Tire {tire.serial_number} is on open retread order {open_item.order.order_number}",
                entity_type="tire",
                entity_id=tire.id,
                current_state=tire.status,
                attempted_state=movement_type,
                details={"retread_order_id": open_item.order_id},
            )

        now = utcnow()
        transition_tire(
            tire,
            movement_type,
            actor_user_id=authorizer_user_id,
            occurred_at=now,
            note=reason,
        )
        tire.disposed_at = now
        tire.disposal_method = disposal_method.value
        tire.disposal_reason = reason
        tire.disposal_authorized_by_user_id = authorizer_user_id
        return tire

    tire = run_in_transaction(_op)
    current_app.logger.info(
        "Tire %s disposed (%s) authorized by user %s", tire.serial_number, disposal_method.value, authorizer_user_id
    )
    return tire


def reverse_disposal(*, tire_id: int, reason: str, authorizer_user_id: int) -> Tire:
    """
    Return a DISPOSED tire to USED_STORE through a DISPOSAL_REVERSAL movement.

    SCRAP is irreversible. The disposal metadata is cleared on the tire; the
    original disposal stays in the movement history.
    """
    if not (reason or "").strip():
        raise ValidationError("A reversal reason is required", entity_type="tire", entity_id=tire_id)

    def _op() -> Tire:
        require_permission(authorizer_user_id, REVERSE_DISPOSALS, action="reverse_disposal")
        tire = lock_tire(tire_id)
        transition_tire(
            tire,
            MovementType.DISPOSAL_REVERSAL,
            actor_user_id=authorizer_user_id,
            note=reason,
        )
        tire.disposed_at = None
        tire.disposal_method = None
        tire.disposal_reason = None
        tire.disposal_authorized_by_user_id = None
        return tire

    tire = run_in_transaction(_op)
    current_app.logger.info("Disposal of tire %s reversed by user %s", tire.serial_number, authorizer_user_id)
    return tire
