"""
Pytest fixtures for tiretrack backend tests.

Provides the test app on an in-memory database, a clean session per test,
users with and without approval capabilities, suppliers, a vehicle with
wheel positions and purchase orders ready for receiving.
"""

import pytest

from tiretrack import create_app
from tiretrack.extensions import db
from tiretrack.models import Supplier, SupplierKind, Vehicle, WheelPosition
from tiretrack.permissions import (
    APPROVE_PURCHASE_ORDERS,
    APPROVE_RETREAD_ORDERS,
    DISPOSE_TIRES,
    REVERSE_DISPOSALS,
)
from tiretrack.services import permission_service, purchasing_service


TIRE_SIZE = "295/80R22.5"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def clerk(db_session):
    """Store clerk without any approval capability."""
    return permission_service.create_user(username="clerk", full_name="Store Clerk")


@pytest.fixture(scope='function')
def approver(db_session):
    """Fleet manager holding every capability."""
    user = permission_service.create_user(username="manager", full_name="Fleet Manager")
    for code in (APPROVE_PURCHASE_ORDERS, APPROVE_RETREAD_ORDERS, DISPOSE_TIRES, REVERSE_DISPOSALS):
        permission_service.grant_permission(user.id, code)
    return user


@pytest.fixture(scope='function')
def tire_supplier(db_session):
    supplier = Supplier(name="Roadgrip Tyres", kind=SupplierKind.TIRE, balance_cents=0, is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def retread_supplier(db_session):
    supplier = Supplier(name="Recap Works", kind=SupplierKind.RETREAD, balance_cents=0, is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def vehicle(db_session):
    """Truck with two steer positions."""
    truck = Vehicle(vehicle_number="TRK-001", make="Volvo", model="FH16", current_odometer=100000, is_active=True)
    db_session.add(truck)
    db_session.flush()
    db_session.add(WheelPosition(vehicle_id=truck.id, position_code="FL", position_name="Front Left", axle_number=1))
    db_session.add(WheelPosition(vehicle_id=truck.id, position_code="FR", position_name="Front Right", axle_number=1))
    db_session.commit()
    return truck


@pytest.fixture(scope='function')
def positions(vehicle):
    """Wheel positions of the test vehicle keyed by position code."""
    return {p.position_code: p for p in vehicle.positions}


@pytest.fixture(scope='function')
def make_approved_po(db_session, clerk, approver, tire_supplier):
    """Factory: PO created by the clerk and approved by the manager."""
    def _make(quantity=10, unit_price_cents=25000, size=TIRE_SIZE, brand="Michelin", model="X Multi"):
        po = purchasing_service.create_purchase_order(
            supplier_id=tire_supplier.id,
            created_by_user_id=clerk.id,
            lines=[{
                "size": size,
                "brand": brand,
                "model": model,
                "quantity": quantity,
                "unit_price_cents": unit_price_cents,
            }],
        )
        purchasing_service.update_purchase_order_status(
            po_id=po.id,
            new_status="APPROVED",
            approver_user_id=approver.id,
        )
        return po
    return _make


@pytest.fixture(scope='function')
def approved_po(make_approved_po):
    return make_approved_po()


@pytest.fixture(scope='function')
def receive_tires(approved_po, clerk):
    """Factory: receive n tires from the approved PO, returning the Tire ids."""
    def _receive(n=1, **kwargs):
        line = approved_po.items[0]
        result = purchasing_service.receive_purchase_order_line(
            line_id=line.id,
            quantity=n,
            actor_user_id=clerk.id,
            **kwargs,
        )
        return result["tire_ids"]
    return _receive
