"""
Purchase order lifecycle and goods receiving.

Covers approval rules, manual status transitions, GRN receiving (tires,
movements, stock, postings) and the over-receipt / zero-quantity guards.
"""

import pytest

from tiretrack.errors import (
    AuthorizationError,
    InvalidStatusError,
    OverReceiptError,
    StateConflictError,
    ValidationError,
)
from tiretrack.models import (
    AccountingTransaction,
    DocumentSequence,
    GoodsReceivedNote,
    InventoryCatalogItem,
    MovementType,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
    Tire,
    TireKind,
    TireMovement,
    TireStatus,
)
from tiretrack.services import purchasing_service, stock_service
from tiretrack.services.purchasing_service import derive_receipt_status


SIZE = "295/80R22.5"


def _line(quantity=10, unit_price_cents=25000, **extra):
    line = {"size": SIZE, "brand": "Michelin", "model": "X Multi", "quantity": quantity, "unit_price_cents": unit_price_cents}
    line.update(extra)
    return line


def test_create_purchase_order_numbers_and_totals(db_session, clerk, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id,
        created_by_user_id=clerk.id,
        lines=[_line(quantity=4, unit_price_cents=25000), _line(quantity=2, unit_price_cents=1000, size="12R22.5")],
    )

    assert po.status == PurchaseOrderStatus.DRAFT
    assert po.po_number.startswith("PO-")
    assert po.po_number.endswith("-0001")
    assert po.total_amount_cents == 4 * 25000 + 2 * 1000
    assert [item.received_quantity for item in po.items] == [0, 0]


def test_line_size_must_be_configured(db_session, clerk, tire_supplier):
    with pytest.raises(ValidationError):
        purchasing_service.create_purchase_order(
            supplier_id=tire_supplier.id,
            created_by_user_id=clerk.id,
            lines=[_line(size="999/99R99")],
        )


@pytest.mark.parametrize("bad", [{"quantity": 0}, {"quantity": -1}, {"quantity": 1.5}, {"unit_price_cents": -5}])
def test_bad_line_values_rejected(db_session, clerk, tire_supplier, bad):
    with pytest.raises(ValidationError):
        purchasing_service.create_purchase_order(
            supplier_id=tire_supplier.id,
            created_by_user_id=clerk.id,
            lines=[_line(**bad)],
        )


def test_approval_requires_capability(db_session, clerk, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=approver.id, lines=[_line()]
    )

    with pytest.raises(AuthorizationError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=clerk.id)
    with pytest.raises(AuthorizationError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED")

    assert purchasing_service.get_purchase_order(po.id).status == PurchaseOrderStatus.DRAFT


def test_creator_cannot_approve_own_order(db_session, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=approver.id, lines=[_line()]
    )

    with pytest.raises(AuthorizationError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=approver.id)


def test_approval_requires_lines(db_session, clerk, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(supplier_id=tire_supplier.id, created_by_user_id=clerk.id)

    with pytest.raises(ValidationError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=approver.id)


def test_status_transitions(db_session, clerk, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=clerk.id, lines=[_line()]
    )

    assert purchasing_service.update_purchase_order_status(po_id=po.id, new_status="DRAFT") is False
    with pytest.raises(InvalidStatusError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="SHIPPED")
    with pytest.raises(StateConflictError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="CLOSED")
    with pytest.raises(StateConflictError):
        purchasing_service.update_purchase_order_status(po_id=po.id, new_status="FULLY_RECEIVED")

    assert purchasing_service.update_purchase_order_status(po_id=po.id, new_status="PENDING_APPROVAL", actor_user_id=clerk.id)
    assert purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=approver.id)
    assert purchasing_service.update_purchase_order_status(po_id=po.id, new_status="ORDERED", actor_user_id=clerk.id)

    po = purchasing_service.get_purchase_order(po.id)
    assert po.status == PurchaseOrderStatus.ORDERED
    assert po.approved_by_user_id == approver.id


def test_lines_editable_only_before_approval(db_session, clerk, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=clerk.id, lines=[_line(quantity=2)]
    )
    extra = purchasing_service.add_purchase_order_item(po_id=po.id, line=_line(quantity=3, unit_price_cents=100))
    purchasing_service.update_purchase_order_item(line_id=extra.id, changes={"quantity": 5})
    assert purchasing_service.get_purchase_order(po.id).total_amount_cents == 2 * 25000 + 5 * 100

    purchasing_service.delete_purchase_order_item(line_id=extra.id)
    assert len(purchasing_service.get_purchase_order(po.id).items) == 1

    purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=approver.id)
    with pytest.raises(StateConflictError):
        purchasing_service.add_purchase_order_item(po_id=po.id, line=_line())


def test_receive_partial_then_full(db_session, approved_po, clerk, tire_supplier):
    """A PO of 10 receives 4, then the remaining 6."""
    line_id = approved_po.items[0].id

    result = purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=4, batch_ref="B-1", actor_user_id=clerk.id)

    assert result["po_status"] == "PARTIALLY_RECEIVED"
    assert result["received_quantity"] == 4
    assert len(result["tire_ids"]) == 4
    assert result["grn_number"].startswith("GRN-")

    tires = db_session.query(Tire).filter(Tire.id.in_(result["tire_ids"])).all()
    for tire in tires:
        assert tire.status == TireStatus.IN_STORE
        assert tire.kind == TireKind.NEW
        assert tire.cost_cents == 25000
        assert tire.source_purchase_item_id == line_id
        movements = db_session.query(TireMovement).filter_by(tire_id=tire.id).all()
        assert len(movements) == 1
        assert movements[0].movement_type == MovementType.PURCHASE_RECEIPT
        assert movements[0].from_status is None
        assert movements[0].to_status == TireStatus.IN_STORE
        assert movements[0].grn_id == result["grn_id"]

    key = stock_service.catalog_key(SIZE, "Michelin", "X Multi", TireKind.NEW)
    assert stock_service.get_stock_level(key) == {"cached": 4, "actual": 4}

    tx = db_session.query(AccountingTransaction).filter_by(grn_id=result["grn_id"]).one()
    assert tx.total_amount_cents == 100000
    assert tx.is_balanced
    assert {(e.account_code, e.debit_cents, e.credit_cents) for e in tx.entries} == {
        ("1200", 100000, 0),
        ("2000", 0, 100000),
    }
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 100000

    first_grn_id = result["grn_id"]
    result = purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=6, batch_ref="B-2", actor_user_id=clerk.id)
    assert result["po_status"] == "FULLY_RECEIVED"
    assert stock_service.get_stock_level(key)["cached"] == 10

    grns = purchasing_service.list_goods_received_notes(approved_po.id)
    assert [grn.id for grn in grns] == sorted({first_grn_id, result["grn_id"]})
    assert [item.batch_number for grn in grns for item in grn.items] == ["B-1", "B-2"]

    purchasing_service.update_purchase_order_status(po_id=approved_po.id, new_status="CLOSED", actor_user_id=clerk.id)
    assert purchasing_service.get_purchase_order(approved_po.id).status == PurchaseOrderStatus.CLOSED


def test_over_receipt_rejected_without_side_effects(db_session, approved_po, clerk, tire_supplier):
    line_id = approved_po.items[0].id
    purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=8, actor_user_id=clerk.id)
    grns_before = db_session.query(GoodsReceivedNote).count()

    with pytest.raises(OverReceiptError) as excinfo:
        purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=3, actor_user_id=clerk.id)

    assert excinfo.value.details["remaining"] == 2
    assert db_session.get(PurchaseOrderItem, line_id).received_quantity == 8
    assert db_session.query(Tire).count() == 8
    assert db_session.query(GoodsReceivedNote).count() == grns_before
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 8 * 25000


def test_zero_quantity_rejected_before_any_write(db_session, approved_po, clerk):
    line_id = approved_po.items[0].id

    with pytest.raises(ValidationError):
        purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=0, actor_user_id=clerk.id)

    assert db_session.get(PurchaseOrderItem, line_id).received_quantity == 0
    assert db_session.query(Tire).count() == 0
    assert db_session.query(GoodsReceivedNote).count() == 0
    assert db_session.query(DocumentSequence).filter_by(document_type="GOODS_RECEIVED_NOTE").count() == 0
    assert purchasing_service.get_purchase_order(approved_po.id).status == PurchaseOrderStatus.APPROVED


def test_receiving_requires_approved_order(db_session, clerk, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=clerk.id, lines=[_line()]
    )

    with pytest.raises(StateConflictError):
        purchasing_service.receive_purchase_order_line(line_id=po.items[0].id, quantity=1, actor_user_id=clerk.id)


def test_serial_numbers_given_and_generated(db_session, approved_po, clerk):
    line_id = approved_po.items[0].id

    result = purchasing_service.receive_purchase_order_line(
        line_id=line_id, quantity=3, actor_user_id=clerk.id, serial_numbers=["MX-0001"]
    )

    serials = [db_session.get(Tire, tid).serial_number for tid in result["tire_ids"]]
    assert serials[0] == "MX-0001"
    assert serials[1:] == [
        f"{result['grn_number']}-{line_id:03d}-002",
        f"{result['grn_number']}-{line_id:03d}-003",
    ]

    with pytest.raises(ValidationError):
        purchasing_service.receive_purchase_order_line(
            line_id=line_id, quantity=1, actor_user_id=clerk.id, serial_numbers=["MX-0001"]
        )
    with pytest.raises(ValidationError):
        purchasing_service.receive_purchase_order_line(
            line_id=line_id, quantity=2, actor_user_id=clerk.id, serial_numbers=["A", "A"]
        )
    with pytest.raises(ValidationError):
        purchasing_service.receive_purchase_order_line(
            line_id=line_id, quantity=1, actor_user_id=clerk.id, serial_numbers=["B", "C"]
        )


def test_multi_line_grn(db_session, clerk, approver, tire_supplier):
    po = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id,
        created_by_user_id=clerk.id,
        lines=[_line(quantity=2), _line(quantity=2, size="12R22.5", unit_price_cents=18000)],
    )
    purchasing_service.update_purchase_order_status(po_id=po.id, new_status="APPROVED", approver_user_id=approver.id)
    first, second = [item.id for item in po.items]

    grn = purchasing_service.receive_goods(
        po_id=po.id,
        items=[{"line_id": first, "quantity": 2}, {"line_id": second, "quantity": 1}],
        received_by_user_id=clerk.id,
        supplier_invoice_number="INV-778",
    )

    assert grn.total_cost_cents == 2 * 25000 + 18000
    assert len(grn.items) == 2
    assert purchasing_service.get_purchase_order(po.id).status == PurchaseOrderStatus.PARTIALLY_RECEIVED
    tx = db_session.query(AccountingTransaction).filter_by(grn_id=grn.id).one()
    assert tx.reference_number == "INV-778"

    with pytest.raises(ValidationError):
        purchasing_service.receive_goods(
            po_id=po.id,
            items=[{"line_id": second, "quantity": 1}, {"line_id": second, "quantity": 1}],
            received_by_user_id=clerk.id,
        )


def test_receipt_date_accepts_iso_strings(db_session, approved_po, clerk):
    line_id = approved_po.items[0].id

    grn = purchasing_service.receive_goods(
        po_id=approved_po.id,
        items=[{"line_id": line_id, "quantity": 1}],
        received_by_user_id=clerk.id,
        receipt_date="2026-09-30T23:30:00-02:00",
    )
    assert grn.to_dict()["receipt_date"] == "2026-10-01"

    with pytest.raises(ValidationError):
        purchasing_service.receive_goods(
            po_id=approved_po.id,
            items=[{"line_id": line_id, "quantity": 1}],
            received_by_user_id=clerk.id,
            receipt_date="last tuesday",
        )
    assert db_session.query(GoodsReceivedNote).count() == 1


def test_zero_cost_receipt_posts_nothing(db_session, approved_po, clerk, tire_supplier):
    result = purchasing_service.receive_purchase_order_line(
        line_id=approved_po.items[0].id, quantity=2, actor_user_id=clerk.id, unit_cost_cents=0
    )

    assert len(result["tire_ids"]) == 2
    assert db_session.query(AccountingTransaction).count() == 0
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 0


def test_average_cost_rounds_half_up(db_session, approved_po, clerk):
    line_id = approved_po.items[0].id
    purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=1, actor_user_id=clerk.id, unit_cost_cents=20000)
    purchasing_service.receive_purchase_order_line(line_id=line_id, quantity=1, actor_user_id=clerk.id, unit_cost_cents=25001)

    item = db_session.query(InventoryCatalogItem).one()
    assert item.average_cost_cents == 22501
    assert item.last_purchase_price_cents == 25001


def test_cancel_and_delete(db_session, clerk, approved_po, receive_tires, tire_supplier):
    receive_tires(1)
    with pytest.raises(StateConflictError):
        purchasing_service.update_purchase_order_status(po_id=approved_po.id, new_status="CANCELLED")

    draft = purchasing_service.create_purchase_order(
        supplier_id=tire_supplier.id, created_by_user_id=clerk.id, lines=[_line()]
    )
    assert purchasing_service.update_purchase_order_status(po_id=draft.id, new_status="CANCELLED", actor_user_id=clerk.id)
    purchasing_service.delete_purchase_order(po_id=draft.id)

    items, total = purchasing_service.list_purchase_orders()
    assert total == 1
    assert items[0].id == approved_po.id

    with pytest.raises(StateConflictError):
        purchasing_service.delete_purchase_order(po_id=approved_po.id)


def test_derive_receipt_status():
    current = PurchaseOrderStatus.ORDERED
    assert derive_receipt_status(current, 10, 0) == PurchaseOrderStatus.ORDERED
    assert derive_receipt_status(current, 10, 4) == PurchaseOrderStatus.PARTIALLY_RECEIVED
    assert derive_receipt_status(current, 10, 10) == PurchaseOrderStatus.FULLY_RECEIVED
