"""
Tire state machine: install, removal, disposal, reversal, movement history
and the flush-time guards behind them.
"""

import pytest

from tiretrack.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from tiretrack.models import MovementType, Tire, TireMovement, TireStatus, Vehicle
from tiretrack.services import movement_service, stock_service, tire_service


def _history(tire_id):
    return [m.movement_type for m in movement_service.get_asset_movement_history(tire_id)]


def test_install_and_remove(db_session, receive_tires, positions, vehicle, clerk):
    tire_id = receive_tires(1)[0]
    tire = tire_service.get_tire(tire_id)
    key = tire.catalog_key

    assignment = tire_service.install_tire(
        tire_id=tire_id,
        vehicle_id=vehicle.id,
        position_id=positions["FL"].id,
        odometer=100500,
        actor_user_id=clerk.id,
    )

    assert tire_service.get_tire(tire_id).status == TireStatus.ON_VEHICLE
    assert assignment.removed_at is None
    assert db_session.get(Vehicle, vehicle.id).current_odometer == 100500
    assert stock_service.get_stock_level(key) == {"cached": 0, "actual": 0}

    with pytest.raises(ValidationError):
        tire_service.remove_tire(tire_id=tire_id, odometer=100000, reason="puncture", actor_user_id=clerk.id)

    closed = tire_service.remove_tire(tire_id=tire_id, odometer=140500, reason="worn", actor_user_id=clerk.id)

    assert closed.distance_travelled == 40000
    assert tire_service.get_tire(tire_id).status == TireStatus.USED_STORE
    assert stock_service.get_stock_level(key) == {"cached": 1, "actual": 1}
    assert _history(tire_id) == [MovementType.PURCHASE_RECEIPT, MovementType.INSTALL, MovementType.REMOVAL]

    movements = list(movement_service.get_asset_movement_history(tire_id))
    assert movements[1].assignment_id == assignment.id
    assert movements[2].from_status == TireStatus.ON_VEHICLE


def test_install_rules(db_session, receive_tires, positions, vehicle, clerk):
    first, second = receive_tires(2)
    tire_service.install_tire(
        tire_id=first, vehicle_id=vehicle.id, position_id=positions["FL"].id, odometer=100000, actor_user_id=clerk.id
    )

    with pytest.raises(StateConflictError):
        tire_service.install_tire(
            tire_id=second, vehicle_id=vehicle.id, position_id=positions["FL"].id, odometer=100000, actor_user_id=clerk.id
        )
    with pytest.raises(StateConflictError) as excinfo:
        tire_service.install_tire(
            tire_id=first, vehicle_id=vehicle.id, position_id=positions["FR"].id, odometer=100000, actor_user_id=clerk.id
        )
    assert excinfo.value.to_dict()["current_state"] == "ON_VEHICLE"

    with pytest.raises(ValidationError):
        tire_service.install_tire(
            tire_id=second, vehicle_id=vehicle.id, position_id=positions["FR"].id, odometer=-1, actor_user_id=clerk.id
        )
    with pytest.raises(NotFoundError):
        tire_service.install_tire(
            tire_id=99999, vehicle_id=vehicle.id, position_id=positions["FR"].id, odometer=1, actor_user_id=clerk.id
        )

    other = Vehicle(vehicle_number="TRK-002", current_odometer=0, is_active=True)
    db_session.add(other)
    db_session.commit()
    with pytest.raises(ValidationError):
        tire_service.install_tire(
            tire_id=second, vehicle_id=other.id, position_id=positions["FR"].id, odometer=1, actor_user_id=clerk.id
        )
    assert tire_service.get_tire(second).status == TireStatus.IN_STORE


def test_disposal_requires_capability_and_reason(db_session, receive_tires, clerk, approver):
    tire_id = receive_tires(1)[0]

    with pytest.raises(AuthorizationError):
        tire_service.dispose_tire(tire_id=tire_id, method="SALE", reason="sold", authorizer_user_id=clerk.id)
    with pytest.raises(ValidationError):
        tire_service.dispose_tire(tire_id=tire_id, method="SALE", reason=" ", authorizer_user_id=approver.id)
    with pytest.raises(ValidationError):
        tire_service.dispose_tire(tire_id=tire_id, method="BURN", reason="x", authorizer_user_id=approver.id)

    tire = tire_service.dispose_tire(tire_id=tire_id, method="SALE", reason="sold to farmer", authorizer_user_id=approver.id)

    assert tire.status == TireStatus.DISPOSED
    assert tire.disposal_method == "SALE"
    assert tire.disposal_authorized_by_user_id == approver.id
    assert stock_service.get_stock_level(tire.catalog_key)["cached"] == 0


def test_disposed_tire_cannot_be_installed(db_session, receive_tires, positions, vehicle, clerk, approver):
    tire_id = receive_tires(1)[0]
    tire_service.dispose_tire(tire_id=tire_id, method="RECYCLING", reason="sidewall damage", authorizer_user_id=approver.id)
    before = movement_service.count_movements(tire_id)

    with pytest.raises(StateConflictError) as excinfo:
        tire_service.install_tire(
            tire_id=tire_id, vehicle_id=vehicle.id, position_id=positions["FL"].id, odometer=1, actor_user_id=clerk.id
        )

    payload = excinfo.value.to_dict()
    assert payload["kind"] == "state_conflict"
    assert payload["current_state"] == "DISPOSED"
    assert payload["attempted_state"] == "INSTALL"
    assert movement_service.count_movements(tire_id) == before
    assert tire_service.get_open_assignment(tire_id) is None


def test_mounted_tire_cannot_be_disposed(db_session, receive_tires, positions, vehicle, clerk, approver):
    tire_id = receive_tires(1)[0]
    tire_service.install_tire(
        tire_id=tire_id, vehicle_id=vehicle.id, position_id=positions["FL"].id, odometer=1, actor_user_id=clerk.id
    )

    with pytest.raises(StateConflictError):
        tire_service.dispose_tire(tire_id=tire_id, method="SALE", reason="x", authorizer_user_id=approver.id)


def test_scrap_is_irreversible_and_disposal_reversible(db_session, receive_tires, clerk, approver):
    scrapped, disposed = receive_tires(2)

    tire = tire_service.dispose_tire(tire_id=scrapped, method="SCRAP", reason="blowout", authorizer_user_id=approver.id)
    assert tire.status == TireStatus.SCRAP
    with pytest.raises(StateConflictError):
        tire_service.reverse_disposal(tire_id=scrapped, reason="mistake", authorizer_user_id=approver.id)

    tire_service.dispose_tire(tire_id=disposed, method="LANDFILL", reason="old", authorizer_user_id=approver.id)
    with pytest.raises(AuthorizationError):
        tire_service.reverse_disposal(tire_id=disposed, reason="mistake", authorizer_user_id=clerk.id)

    tire = tire_service.reverse_disposal(tire_id=disposed, reason="wrong tire selected", authorizer_user_id=approver.id)
    assert tire.status == TireStatus.USED_STORE
    assert tire.disposal_method is None
    assert _history(disposed) == [
        MovementType.PURCHASE_RECEIPT,
        MovementType.DISPOSAL,
        MovementType.DISPOSAL_REVERSAL,
    ]
    assert stock_service.get_stock_level(tire.catalog_key) == {"cached": 1, "actual": 1}


def test_movement_history_is_restartable(db_session, receive_tires, positions, vehicle, clerk):
    tire_id = receive_tires(1)[0]
    for odometer in (1000, 2000, 3000):
        tire_service.install_tire(
            tire_id=tire_id, vehicle_id=vehicle.id, position_id=positions["FL"].id, odometer=odometer, actor_user_id=clerk.id
        )
        tire_service.remove_tire(tire_id=tire_id, odometer=odometer + 500, reason=None, actor_user_id=clerk.id)

    history = movement_service.get_asset_movement_history(tire_id, batch_size=2)
    first = [m.id for m in history]
    second = [m.id for m in history]

    assert len(first) == 7
    assert first == second == sorted(first)
    assert movement_service.get_last_movement(tire_id).to_status == tire_service.get_tire(tire_id).status

    with pytest.raises(NotFoundError):
        movement_service.get_asset_movement_history(123456)


def test_list_tires_filters(db_session, receive_tires, approver):
    ids = receive_tires(3)
    tire_service.dispose_tire(tire_id=ids[0], method="SALE", reason="sold", authorizer_user_id=approver.id)

    items, total = tire_service.list_tires(status="IN_STORE")
    assert total == 2
    assert [t.id for t in items] == ids[1:]

    with pytest.raises(ValidationError):
        tire_service.list_tires(status="FLYING")


def test_movements_are_append_only(db_session, receive_tires):
    tire_id = receive_tires(1)[0]
    movement = db_session.query(TireMovement).filter_by(tire_id=tire_id).one()

    movement.note = "edited"
    with pytest.raises(PersistenceError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(db_session.query(TireMovement).filter_by(tire_id=tire_id).one())
    with pytest.raises(PersistenceError):
        db_session.flush()
    db_session.rollback()


def test_status_change_requires_movement(db_session, receive_tires):
    tire = db_session.get(Tire, receive_tires(1)[0])

    tire.status = TireStatus.USED_STORE
    with pytest.raises(PersistenceError):
        db_session.flush()
    db_session.rollback()


def test_lineage_is_immutable(db_session, receive_tires):
    tire = db_session.get(Tire, receive_tires(1)[0])

    tire.source_purchase_item_id = None
    with pytest.raises(PersistenceError):
        db_session.flush()
    db_session.rollback()
