# Overview: Whole-database invariant checks; used by the CLI and tests.

"""
Integrity Checks

Each check returns a list of violation dicts (empty when the invariant holds):

- tire_status: Tire.status equals the to_status of its latest movement
- po_lines: 0 <= received_quantity <= quantity on every PO line
- po_status: PO header status matches the status derived from its lines
- journal_balance: every transaction balances (sum debit == sum credit)
- supplier_balance: supplier balance equals the signed sum of its ledger
- stock: catalog counters equal the count of in-stock tires per key

run_integrity_checks(fix=True) repairs only the derived counters (stock and
supplier balances). Movement, PO and journal violations need a person.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, Tire, TireMovement
from .accounting_service import find_unbalanced_transactions, reconcile_supplier_balances
from .purchasing_service import derive_receipt_status
from .stock_service import reconcile_stock


RECEIPT_DERIVED_STATUSES = (
    PurchaseOrderStatus.APPROVED,
    PurchaseOrderStatus.ORDERED,
    PurchaseOrderStatus.PARTIALLY_RECEIVED,
    PurchaseOrderStatus.FULLY_RECEIVED,
)


def check_tire_status_matches_movements() -> list[dict]:
    latest = (
        db.session.query(TireMovement.tire_id, func.max(TireMovement.id).label("movement_id"))
        .group_by(TireMovement.tire_id)
        .subquery()
    )
    rows = (
        db.session.query(Tire.id, Tire.serial_number, Tire.status, TireMovement.to_status)
        .outerjoin(latest, latest.c.tire_id == Tire.id)
        .outerjoin(TireMovement, TireMovement.id == latest.c.movement_id)
        .all()
    )
    return [
        {
            "tire_id": tire_id,
            "serial_number": serial,
            "status": status.value,
            "last_movement_status": last.value if last else None,
        }
        for tire_id, serial, status, last in rows
        if status != last
    ]


def check_purchase_order_lines() -> list[dict]:
    rows = (
        db.session.query(PurchaseOrderItem)
        .filter(
            (PurchaseOrderItem.received_quantity < 0)
            | (PurchaseOrderItem.received_quantity > PurchaseOrderItem.quantity)
        )
        .all()
    )
    return [
        {"line_id": line.id, "po_id": line.po_id, "quantity": line.quantity, "received_quantity": line.received_quantity}
        for line in rows
    ]


def check_purchase_order_status() -> list[dict]:
    violations = []
    orders = db.session.query(PurchaseOrder).filter(PurchaseOrder.status.in_(RECEIPT_DERIVED_STATUSES)).all()
    for po in orders:
        expected = derive_receipt_status(po.status, po.total_quantity, po.total_received)
        if po.total_received == 0 and po.status in (
            PurchaseOrderStatus.PARTIALLY_RECEIVED,
            PurchaseOrderStatus.FULLY_RECEIVED,
        ):
            expected = None
        if expected != po.status:
            violations.append({
                "po_id": po.id,
                "po_number": po.po_number,
                "status": po.status.value,
                "expected": expected.value if expected else "APPROVED/ORDERED",
            })
    return violations


def run_integrity_checks(*, fix: bool = False) -> dict[str, list[dict]]:
    """Run every check and return {check name: violations}."""
    report = {
        "tire_status": check_tire_status_matches_movements(),
        "po_lines": check_purchase_order_lines(),
        "po_status": check_purchase_order_status(),
        "journal_balance": find_unbalanced_transactions(),
        "supplier_balance": reconcile_supplier_balances(fix=fix),
        "stock": [drift.to_dict() for drift in reconcile_stock(fix=fix)],
    }
    failures = sum(len(v) for v in report.values())
    if failures:
        current_app.logger.warning("Integrity check found %d violation(s)", failures)
    return report
