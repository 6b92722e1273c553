"""
Transaction scoping and concurrent writers.

The threaded test runs against a file database so that each thread gets its
own connection and SQLite's locking is actually exercised.
"""

import threading

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tiretrack import create_app
from tiretrack.errors import OverReceiptError, PersistenceError, ValidationError
from tiretrack.extensions import db
from tiretrack.models import PurchaseOrderItem, Supplier, SupplierKind, Tire
from tiretrack.permissions import APPROVE_PURCHASE_ORDERS
from tiretrack.services import permission_service, purchasing_service
from tiretrack.services.concurrency import run_in_transaction


class Flaky:
    """Callable failing with exc for the first `failures` calls."""

    def __init__(self, exc, failures, result="done"):
        self.exc = exc
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.result


def _operational():
    return OperationalError("UPDATE x", {}, Exception("database is locked"))


def test_retries_stale_data(db_session):
    op = Flaky(StaleDataError("version mismatch"), failures=2)

    assert run_in_transaction(op, attempts=3) == "done"
    assert op.calls == 3


def test_exhausted_retries_are_retryable(db_session):
    op = Flaky(_operational(), failures=10)

    with pytest.raises(PersistenceError) as excinfo:
        run_in_transaction(op, attempts=4)

    assert excinfo.value.retryable is True
    assert excinfo.value.details == {"cause": "OperationalError", "attempts": 4}
    assert op.calls == 4


def test_integrity_error_is_not_retried(db_session):
    op = Flaky(IntegrityError("INSERT x", {}, Exception("UNIQUE constraint failed")), failures=1)

    with pytest.raises(PersistenceError) as excinfo:
        run_in_transaction(op, attempts=5)

    assert excinfo.value.retryable is False
    assert op.calls == 1


def test_service_error_rolls_back_everything(db_session):
    def _op():
        db.session.add(Supplier(name="Ghost Supplier", kind=SupplierKind.TIRE, balance_cents=0, is_active=True))
        db.session.flush()
        raise ValidationError("nope")

    with pytest.raises(ValidationError):
        run_in_transaction(_op)

    assert db_session.query(Supplier).filter_by(name="Ghost Supplier").count() == 0


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 30}},
        'TRANSACTION_RETRY_ATTEMPTS': 10,
        'TRANSACTION_RETRY_BACKOFF': 0.05,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_over_receipt(file_app):
    with file_app.app_context():
        clerk = permission_service.create_user(username="clerk", full_name="Store Clerk")
        manager = permission_service.create_user(username="manager", full_name="Fleet Manager")
        permission_service.grant_permission(manager.id, APPROVE_PURCHASE_ORDERS)
        supplier = Supplier(name="Roadgrip Tyres", kind=SupplierKind.TIRE, balance_cents=0, is_active=True)
        db.session.add(supplier)
        db.session.commit()

        po = purchasing_service.create_purchase_order(
            supplier_id=supplier.id,
            created_by_user_id=clerk.id,
            lines=[{"size": "295/80R22.5", "brand": "Michelin", "model": "X Multi", "quantity": 10, "unit_price_cents": 1000}],
        )
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=manager.id)
        line_id = po.items[0].id
        clerk_id = clerk.id
        supplier_id = supplier.id

    barrier = threading.Barrier(2)
    outcomes = []

    def receive(batch):
        with file_app.app_context():
            barrier.wait()
            try:
                purchasing_service.receive_purchase_order_line(
                    line_id=line_id, quantity=6, actor_user_id=clerk_id, batch_ref=batch
                )
                outcomes.append("ok")
            except (OverReceiptError, PersistenceError) as exc:
                outcomes.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=receive, args=(f"B{i}",)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(outcomes) == 2
    successes = outcomes.count("ok")
    assert successes == 1

    with file_app.app_context():
        line = db.session.get(PurchaseOrderItem, line_id)
        assert line.received_quantity == 6
        assert db.session.query(Tire).filter(Tire.source_purchase_item_id == line_id).count() == 6
        assert db.session.get(Supplier, supplier_id).balance_cents == 6000
