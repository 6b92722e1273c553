"""
Whole-database integrity checks against tampered rows.
"""

from sqlalchemy import text, update

from tiretrack.models import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, Tire, TireStatus
from tiretrack.services import integrity_service, tire_service


def test_clean_database_passes(db_session, receive_tires, positions, vehicle, clerk):
    ids = receive_tires(3)
    tire_service.install_tire(
        tire_id=ids[0], vehicle_id=vehicle.id, position_id=positions["FR"].id, odometer=100100, actor_user_id=clerk.id
    )

    report = integrity_service.run_integrity_checks()

    assert set(report) == {"tire_status", "po_lines", "po_status", "journal_balance", "supplier_balance", "stock"}
    assert all(not violations for violations in report.values())


def test_status_without_movement_is_reported(db_session, receive_tires):
    tire_id = receive_tires(1)[0]
    db_session.execute(update(Tire).where(Tire.id == tire_id).values(status=TireStatus.DISPOSED))
    db_session.commit()

    violations = integrity_service.check_tire_status_matches_movements()

    assert violations == [{
        "tire_id": tire_id,
        "serial_number": db_session.get(Tire, tire_id).serial_number,
        "status": "DISPOSED",
        "last_movement_status": "IN_STORE",
    }]


def test_purchase_order_status_drift(db_session, approved_po, receive_tires):
    receive_tires(4)
    db_session.execute(
        update(PurchaseOrder).where(PurchaseOrder.id == approved_po.id).values(status=PurchaseOrderStatus.FULLY_RECEIVED)
    )
    db_session.commit()

    violations = integrity_service.check_purchase_order_status()

    assert violations == [{
        "po_id": approved_po.id,
        "po_number": approved_po.po_number,
        "status": "FULLY_RECEIVED",
        "expected": "PARTIALLY_RECEIVED",
    }]
    assert integrity_service.check_purchase_order_lines() == []


def test_over_received_line_is_reported(db_session, approved_po, receive_tires):
    receive_tires(1)
    line_id = approved_po.items[0].id
    # the CHECK constraint rejects this row, so switch it off for the write only
    db_session.execute(text("PRAGMA ignore_check_constraints = ON"))
    try:
        db_session.execute(update(PurchaseOrderItem).where(PurchaseOrderItem.id == line_id).values(received_quantity=11))
        db_session.commit()
    finally:
        db_session.execute(text("PRAGMA ignore_check_constraints = OFF"))
        db_session.commit()

    violations = integrity_service.check_purchase_order_lines()

    assert violations == [{"line_id": line_id, "po_id": approved_po.id, "quantity": 10, "received_quantity": 11}]


def test_fix_repairs_counters_only(db_session, receive_tires):
    tire_id = receive_tires(2)[0]
    db_session.execute(update(Tire).where(Tire.id == tire_id).values(status=TireStatus.SCRAP))
    db_session.commit()

    first = integrity_service.run_integrity_checks(fix=True)
    assert len(first["stock"]) == 1
    assert len(first["tire_status"]) == 1

    db_session.expire_all()
    second = integrity_service.run_integrity_checks()
    assert second["stock"] == []
    assert len(second["tire_status"]) == 1
