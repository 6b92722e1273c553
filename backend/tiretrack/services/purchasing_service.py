# Overview: Service-layer operations for purchase orders and goods receiving; creates tires from GRNs.

"""
Purchasing Workflow

WHY: Tires enter the fleet through purchase orders. A GRN (goods received
note) is the physical receipt against one or more PO lines; it is the only
place new-tire identities are created.

LIFECYCLE:
1. DRAFT: Created, lines being edited
2. PENDING_APPROVAL: Submitted; lines still editable
3. APPROVED: Approved by a user holding APPROVE_PURCHASE_ORDERS (not the creator)
4. ORDERED: Sent to the supplier
5. PARTIALLY_RECEIVED / FULLY_RECEIVED: Derived from line received quantities
6. CLOSED / CANCELLED: Final

RECEIVING (one transaction per GRN):
- GRN header + items
- One tire per unit, each with a PURCHASE_RECEIPT movement and +1 stock
- Line received_quantity, catalog cost tracking, derived PO status
- Financial posting (inventory / accounts payable, supplier ledger)

CONCURRENCY:
- PO and lines are read FOR UPDATE and carry version_id; a concurrent receipt
  against the same line makes the loser retry and re-check the remaining
  quantity, so received_quantity never exceeds quantity.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import (
    AuthorizationError,
    InvalidStatusError,
    NotFoundError,
    OverReceiptError,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    GoodsReceivedNote,
    GoodsReceivedNoteItem,
    GoodsReceivedNoteStatus,
    MovementType,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
    Tire,
    TireKind,
    enum_value,
)
from ..permissions import APPROVE_PURCHASE_ORDERS
from ..time_utils import normalize_date, utcnow
from . import document_service
from .accounting_service import RECEIPT_PURCHASE, ReceiptEvent, post_receipt
from .activity_service import append_activity_event
from .concurrency import lock_for_update, run_in_transaction
from .permission_service import require_permission, resolve_actor
from .stock_service import catalog_key, record_receipt_cost
from .tire_service import create_tire, find_existing_serials


# Manual transitions; PARTIALLY_RECEIVED / FULLY_RECEIVED are derived only
PO_STATUS_TRANSITIONS = {
    PurchaseOrderStatus.DRAFT: {
        PurchaseOrderStatus.PENDING_APPROVAL,
        PurchaseOrderStatus.APPROVED,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.PENDING_APPROVAL: {
        PurchaseOrderStatus.DRAFT,
        PurchaseOrderStatus.APPROVED,
        PurchaseOrderStatus.CANCELLED,
    },
    PurchaseOrderStatus.APPROVED: {PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.ORDERED: {PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.PARTIALLY_RECEIVED: {PurchaseOrderStatus.CLOSED},
    PurchaseOrderStatus.FULLY_RECEIVED: {PurchaseOrderStatus.CLOSED},
    PurchaseOrderStatus.CANCELLED: set(),
    PurchaseOrderStatus.CLOSED: set(),
}

EDITABLE_STATUSES = (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.PENDING_APPROVAL)
RECEIVABLE_STATUSES = (
    PurchaseOrderStatus.APPROVED,
    PurchaseOrderStatus.ORDERED,
    PurchaseOrderStatus.PARTIALLY_RECEIVED,
    PurchaseOrderStatus.FULLY_RECEIVED,
)
DELETABLE_STATUSES = (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.CANCELLED)


def _parse_status(value) -> PurchaseOrderStatus:
    try:
        return PurchaseOrderStatus(value)
    except ValueError:
        raise InvalidStatusError(
            f"Invalid purchase order status. Must be one of: {', '.join(s.value for s in PurchaseOrderStatus)}",
            entity_type="purchase_order",
            attempted_state=value,
        ) from None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_line(line: dict) -> dict:
    """Normalize and validate one PO line payload."""
    size = (line.get("size") or "").strip()
    if not size:
        raise ValidationError("Line size is required", entity_type="purchase_order_item")
    allowed = current_app.config.get("TIRE_SIZES") or []
    if allowed and size not in allowed:
        raise ValidationError(
            f"Unsupported tire size: {size}",
            entity_type="purchase_order_item",
            details={"size": size, "allowed": list(allowed)},
        )

    try:
        kind = TireKind(line.get("kind") or TireKind.NEW)
    except ValueError:
        raise ValidationError(
            f"Invalid tire kind: {line.get('kind')}",
            entity_type="purchase_order_item",
        ) from None

    quantity = line.get("quantity")
    if not _is_int(quantity) or quantity <= 0:
        raise ValidationError(
            "Line quantity must be a positive integer",
            entity_type="purchase_order_item",
            details={"quantity": quantity},
        )
    unit_price = line.get("unit_price_cents")
    if not _is_int(unit_price) or unit_price < 0:
        raise ValidationError(
            "unit_price_cents must be a non-negative integer",
            entity_type="purchase_order_item",
            details={"unit_price_cents": unit_price},
        )

    return {
        "size": size,
        "brand": (line.get("brand") or "").strip(),
        "model": (line.get("model") or "").strip(),
        "kind": kind,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "notes": line.get("notes"),
    }


def _recalculate_total(po: PurchaseOrder) -> None:
    po.total_amount_cents = sum(item.line_total_cents for item in po.items)


def _require_editable(po: PurchaseOrder) -> None:
    if po.status not in EDITABLE_STATUSES:
        raise StateConflictError(
            f"Purchase order {po.po_number} cannot be edited in status {po.status.value}",
            entity_type="purchase_order",
            entity_id=po.id,
            current_state=po.status,
        )


def _lock_po(po_id: int) -> PurchaseOrder:
    po = lock_for_update(db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)).first()
    if not po:
        raise NotFoundError(f"Purchase order {po_id} not found", entity_type="purchase_order", entity_id=po_id)
    return po


def _lock_line(line_id: int) -> PurchaseOrderItem:
    line = lock_for_update(db.session.query(PurchaseOrderItem).filter(PurchaseOrderItem.id == line_id)).first()
    if not line:
        raise NotFoundError(f"Purchase order line {line_id} not found", entity_type="purchase_order_item", entity_id=line_id)
    return line


def create_purchase_order(
    *,
    supplier_id: int,
    created_by_user_id: int,
    lines: list[dict] | None = None,
    po_date: date | None = None,
    expected_delivery_date: date | None = None,
    notes: str | None = None,
    terms: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order, optionally with its lines.

    Args:
        supplier_id: Active supplier the order is placed with
        created_by_user_id: User creating the order (cannot approve it later)
        lines: Dicts with size, quantity, unit_price_cents and optional brand, model, kind, notes

    Returns:
        The created PurchaseOrder

    Raises:
        ValidationError: Bad line data or inactive supplier
        NotFoundError: Unknown supplier
        AuthorizationError: Unknown or inactive creator
    """
    validated = [_validate_line(line) for line in (lines or [])]

    def _op() -> PurchaseOrder:
        resolve_actor(created_by_user_id)
        supplier = db.session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found", entity_type="supplier", entity_id=supplier_id)
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.name} is inactive", entity_type="supplier", entity_id=supplier.id)

        now = utcnow()
        po = PurchaseOrder(
            po_number=document_service.allocate(document_service.PURCHASE_ORDER, at=now),
            supplier_id=supplier.id,
            po_date=po_date or now.date(),
            expected_delivery_date=expected_delivery_date,
            status=PurchaseOrderStatus.DRAFT,
            notes=notes,
            terms=terms,
            created_by_user_id=created_by_user_id,
        )
        for data in validated:
            po.items.append(PurchaseOrderItem(received_quantity=0, **data))
        _recalculate_total(po)
        db.session.add(po)
        db.session.flush()

        append_activity_event(
            event_type="purchase_order.created",
            entity_type="purchase_order",
            entity_id=po.id,
            actor_user_id=created_by_user_id,
            occurred_at=now,
            note=f"Purchase order {po.po_number} created",
            payload={"line_count": len(validated), "total_amount_cents": po.total_amount_cents},
        )
        return po

    po = run_in_transaction(_op)
    current_app.logger.info("Purchase order %s created for supplier %s", po.po_number, supplier_id)
    return po


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if not po:
        raise NotFoundError(f"Purchase order {po_id} not found", entity_type="purchase_order", entity_id=po_id)
    return po


def list_purchase_orders(
    *,
    status=None,
    supplier_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == _parse_status(status))
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)

    total = query.count()
    items = (
        query.order_by(PurchaseOrder.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 500)))
        .all()
    )
    return items, total


def add_purchase_order_item(*, po_id: int, line: dict) -> PurchaseOrderItem:
    data = _validate_line(line)

    def _op() -> PurchaseOrderItem:
        po = _lock_po(po_id)
        _require_editable(po)
        item = PurchaseOrderItem(received_quantity=0, **data)
        po.items.append(item)
        _recalculate_total(po)
        db.session.flush()
        return item

    return run_in_transaction(_op)


def update_purchase_order_item(*, line_id: int, changes: dict) -> PurchaseOrderItem:
    """Apply changes (any of the line fields) to an editable line."""
    def _op() -> PurchaseOrderItem:
        item = _lock_line(line_id)
        po = _lock_po(item.po_id)
        _require_editable(po)

        merged = {
            "size": item.size,
            "brand": item.brand,
            "model": item.model,
            "kind": item.kind,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "notes": item.notes,
        }
        merged.update({k: v for k, v in changes.items() if k in merged})
        data = _validate_line(merged)
        if data["quantity"] < (item.received_quantity or 0):
            raise ValidationError(
                "Line quantity cannot be lower than the quantity already received",
                entity_type="purchase_order_item",
                entity_id=item.id,
            )
        for key, value in data.items():
            setattr(item, key, value)
        _recalculate_total(po)
        return item

    return run_in_transaction(_op)


def delete_purchase_order_item(*, line_id: int) -> None:
    """
    Delete an editable line.

    Raises:
        StateConflictError: PO not editable, line partly received, or tires trace lineage to it
    """
    def _op() -> None:
        item = _lock_line(line_id)
        po = _lock_po(item.po_id)
        _require_editable(po)
        has_lineage = (
            db.session.query(Tire.id).filter(Tire.source_purchase_item_id == item.id).first() is not None
        )
        if (item.received_quantity or 0) > 0 or has_lineage:
            raise StateConflictError(
                f"Line {item.id} has received tires and cannot be deleted",
                entity_type="purchase_order_item",
                entity_id=item.id,
                details={"received_quantity": item.received_quantity},
            )
        po.items.remove(item)
        _recalculate_total(po)

    run_in_transaction(_op)


def update_purchase_order_status(
    *,
    po_id: int,
    new_status,
    approver_user_id: int | None = None,
    actor_user_id: int | None = None,
) -> bool:
    """
    Apply a manual PO status transition.

    Returns:
        True if the status changed, False if the PO already had new_status

    Raises:
        InvalidStatusError: new_status is not a PO status
        StateConflictError: Transition not allowed from the current status
        AuthorizationError: Approval without a qualified approver, or self-approval
        ValidationError: Approving a PO without lines
    """
    target = _parse_status(new_status)

    def _op() -> bool:
        po = _lock_po(po_id)
        if po.status == target:
            return False

        if target not in PO_STATUS_TRANSITIONS.get(po.status, set()):
            raise StateConflictError(
                f"Cannot move purchase order {po.po_number} from {po.status.value} to {target.value}",
                entity_type="purchase_order",
                entity_id=po.id,
                current_state=po.status,
                attempted_state=target,
            )

        now = utcnow()
        previous = po.status
        if target == PurchaseOrderStatus.APPROVED:
            if approver_user_id is None:
                raise AuthorizationError(
                    "An approver is required to approve a purchase order",
                    entity_type="purchase_order",
                    entity_id=po.id,
                )
            require_permission(approver_user_id, APPROVE_PURCHASE_ORDERS, action="approve_purchase_order")
            if approver_user_id == po.created_by_user_id:
                raise AuthorizationError(
                    "The creator of a purchase order cannot approve it",
                    entity_type="purchase_order",
                    entity_id=po.id,
                    details={"approver_user_id": approver_user_id},
                )
            if not po.items:
                raise ValidationError(
                    f"Purchase order {po.po_number} has no lines",
                    entity_type="purchase_order",
                    entity_id=po.id,
                )
            po.approved_by_user_id = approver_user_id
            po.approved_at = now
        elif target == PurchaseOrderStatus.CANCELLED:
            if po.total_received > 0:
                raise StateConflictError(
                    f"Purchase order {po.po_number} has received goods and cannot be cancelled",
                    entity_type="purchase_order",
                    entity_id=po.id,
                    current_state=po.status,
                    attempted_state=target,
                )
            po.cancelled_at = now
        elif target == PurchaseOrderStatus.CLOSED:
            po.closed_at = now
        elif target == PurchaseOrderStatus.DRAFT:
            po.approved_by_user_id = None
            po.approved_at = None

        po.status = target
        append_activity_event(
            event_type="purchase_order.status_changed",
            entity_type="purchase_order",
            entity_id=po.id,
            actor_user_id=approver_user_id or actor_user_id,
            occurred_at=now,
            payload={"from": previous.value, "to": target.value},
        )
        return True

    changed = run_in_transaction(_op)
    if changed:
        current_app.logger.info("Purchase order %s moved to %s", po_id, target.value)
    return changed


def delete_purchase_order(*, po_id: int) -> None:
    def _op() -> None:
        po = _lock_po(po_id)
        if po.status not in DELETABLE_STATUSES:
            raise StateConflictError(
                f"Purchase order {po.po_number} cannot be deleted in status {po.status.value}",
                entity_type="purchase_order",
                entity_id=po.id,
                current_state=po.status,
            )
        if db.session.query(GoodsReceivedNote.id).filter(GoodsReceivedNote.po_id == po.id).first():
            raise StateConflictError(
                f"Purchase order {po.po_number} has goods received notes",
                entity_type="purchase_order",
                entity_id=po.id,
            )
        db.session.delete(po)

    run_in_transaction(_op)
    current_app.logger.info("Purchase order %s deleted", po_id)


def derive_receipt_status(current: PurchaseOrderStatus, total_ordered: int, total_received: int) -> PurchaseOrderStatus:
    """Header status implied by line totals; nothing received leaves it unchanged."""
    if total_received <= 0:
        return current
    if total_received < total_ordered:
        return PurchaseOrderStatus.PARTIALLY_RECEIVED
    return PurchaseOrderStatus.FULLY_RECEIVED


def _validate_receipt_items(items) -> list[dict]:
    if not items:
        raise ValidationError("At least one receipt item is required", entity_type="goods_received_note")

    normalized = []
    seen_lines = set()
    seen_serials = set()
    for raw in items:
        line_id = raw.get("line_id", raw.get("po_item_id"))
        if line_id is None:
            raise ValidationError("line_id is required for every receipt item", entity_type="goods_received_note")
        if line_id in seen_lines:
            raise ValidationError(
                f"Line {line_id} appears more than once in the receipt",
                entity_type="purchase_order_item",
                entity_id=line_id,
            )
        seen_lines.add(line_id)

        quantity = raw.get("quantity")
        if not _is_int(quantity) or quantity <= 0:
            raise ValidationError(
                "Received quantity must be a positive integer",
                entity_type="purchase_order_item",
                entity_id=line_id,
                details={"quantity": quantity},
            )

        unit_cost = raw.get("unit_cost_cents")
        if unit_cost is not None and (not _is_int(unit_cost) or unit_cost < 0):
            raise ValidationError(
                "unit_cost_cents must be a non-negative integer",
                entity_type="purchase_order_item",
                entity_id=line_id,
            )

        serials = [str(s).strip() for s in (raw.get("serial_numbers") or [])]
        if any(not s for s in serials):
            raise ValidationError("Serial numbers cannot be blank", entity_type="purchase_order_item", entity_id=line_id)
        if len(serials) > quantity:
            raise ValidationError(
                f"{len(serials)} serial numbers given for {quantity} tires",
                entity_type="purchase_order_item",
                entity_id=line_id,
            )
        duplicates = sorted({s for s in serials if s in seen_serials or serials.count(s) > 1})
        if duplicates:
            raise ValidationError(
                "Duplicate serial numbers in receipt",
                entity_type="goods_received_note",
                details={"serial_numbers": duplicates},
            )
        seen_serials.update(serials)

        normalized.append({
            "line_id": line_id,
            "quantity": quantity,
            "unit_cost_cents": unit_cost,
            "serial_numbers": serials,
            "batch_number": raw.get("batch_number") or raw.get("batch_ref"),
            "notes": raw.get("notes"),
        })
    return normalized


def receive_goods(
    *,
    po_id: int,
    items: list[dict],
    received_by_user_id: int,
    receipt_date: date | str | None = None,
    supplier_invoice_number: str | None = None,
    delivery_note_number: str | None = None,
    vehicle_number: str | None = None,
    driver_name: str | None = None,
    notes: str | None = None,
) -> GoodsReceivedNote:
    """
    Receive goods against one or more lines of a purchase order as one GRN.

    Args:
        po_id: Purchase order being received
        items: Dicts with line_id, quantity and optional unit_cost_cents
            (defaults to the line price), serial_numbers, batch_number, notes
        received_by_user_id: Receiving user; recorded on every movement

    Returns:
        The GoodsReceivedNote

    Raises:
        ValidationError: Bad quantities or serials, line not on this PO, serial already in use
        OverReceiptError: Quantity exceeds a line's remaining quantity
        StateConflictError: PO not in a receivable status
        NotFoundError: Unknown PO
    """
    validated = _validate_receipt_items(items)
    if received_by_user_id is None:
        raise ValidationError("received_by_user_id is required", entity_type="goods_received_note")
    try:
        received_date = normalize_date(receipt_date or None)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid receipt_date: {receipt_date!r}", entity_type="goods_received_note") from None

    def _op() -> GoodsReceivedNote:
        resolve_actor(received_by_user_id)
        po = _lock_po(po_id)
        if po.status not in RECEIVABLE_STATUSES:
            raise StateConflictError(
                f"Purchase order {po.po_number} cannot be received in status {po.status.value}",
                entity_type="purchase_order",
                entity_id=po.id,
                current_state=po.status,
            )

        line_ids = [item["line_id"] for item in validated]
        lines = {
            line.id: line
            for line in lock_for_update(
                db.session.query(PurchaseOrderItem).filter(PurchaseOrderItem.id.in_(line_ids))
            ).all()
        }
        for item in validated:
            line = lines.get(item["line_id"])
            if not line or line.po_id != po.id:
                raise ValidationError(
                    f"Line {item['line_id']} does not belong to purchase order {po.po_number}",
                    entity_type="purchase_order_item",
                    entity_id=item["line_id"],
                )
            if item["quantity"] > line.remaining_quantity:
                raise OverReceiptError(
                    f"Cannot receive {item['quantity']} on line {line.id}; {line.remaining_quantity} remaining",
                    entity_type="purchase_order_item",
                    entity_id=line.id,
                    details={
                        "quantity": item["quantity"],
                        "ordered": line.quantity,
                        "received": line.received_quantity,
                        "remaining": line.remaining_quantity,
                    },
                )

        existing = find_existing_serials(s for item in validated for s in item["serial_numbers"])
        if existing:
            raise ValidationError(
                "Serial numbers already in use",
                entity_type="tire",
                details={"serial_numbers": sorted(existing)},
            )

        now = utcnow()
        received_on = received_date or now.date()
        grn = GoodsReceivedNote(
            grn_number=document_service.allocate(document_service.GOODS_RECEIVED_NOTE, at=now),
            po_id=po.id,
            receipt_date=received_on,
            received_by_user_id=received_by_user_id,
            supplier_invoice_number=supplier_invoice_number,
            delivery_note_number=delivery_note_number,
            vehicle_number=vehicle_number,
            driver_name=driver_name,
            notes=notes,
            status=GoodsReceivedNoteStatus.COMPLETED,
        )
        db.session.add(grn)
        db.session.flush()

        total_cost = 0
        tire_count = 0
        for item in validated:
            line = lines[item["line_id"]]
            unit_cost = item["unit_cost_cents"] if item["unit_cost_cents"] is not None else line.unit_price_cents
            quantity = item["quantity"]

            serials = list(item["serial_numbers"])
            serials += [
                f"{grn.grn_number}-{line.id:03d}-{n:03d}"
                for n in range(len(serials) + 1, quantity + 1)
            ]

            grn_item = GoodsReceivedNoteItem(
                grn_id=grn.id,
                po_item_id=line.id,
                quantity_received=quantity,
                unit_cost_cents=unit_cost,
                batch_number=item["batch_number"],
                serial_numbers=serials,
                notes=item["notes"],
            )
            db.session.add(grn_item)
            db.session.flush()

            for serial in serials:
                create_tire(
                    serial_number=serial,
                    size=line.size,
                    brand=line.brand,
                    model=line.model,
                    kind=line.kind,
                    cost_cents=unit_cost,
                    supplier_id=po.supplier_id,
                    acquired_on=received_on,
                    movement_type=MovementType.PURCHASE_RECEIPT,
                    actor_user_id=received_by_user_id,
                    occurred_at=now,
                    note=f"Received on {grn.grn_number}",
                    source_purchase_item_id=line.id,
                    source_grn_item_id=grn_item.id,
                    purchase_item_id=line.id,
                    grn_id=grn.id,
                )

            line.received_quantity = (line.received_quantity or 0) + quantity
            record_receipt_cost(
                catalog_key(line.size, line.brand, line.model, line.kind),
                unit_cost_cents=unit_cost,
                supplier_id=po.supplier_id,
                received_on=received_on,
            )
            total_cost += unit_cost * quantity
            tire_count += quantity

        grn.total_cost_cents = total_cost
        po.status = derive_receipt_status(po.status, po.total_quantity, po.total_received)
        db.session.flush()

        transaction_id = None
        if total_cost > 0:
            tx = post_receipt(ReceiptEvent(
                kind=RECEIPT_PURCHASE,
                supplier_id=po.supplier_id,
                amount_cents=total_cost,
                actor_user_id=received_by_user_id,
                occurred_at=now,
                reference_number=supplier_invoice_number or grn.grn_number,
                description=f"Goods received {grn.grn_number} against {po.po_number}",
                po_id=po.id,
                grn_id=grn.id,
            ))
            transaction_id = tx.id

        append_activity_event(
            event_type="grn.posted",
            entity_type="goods_received_note",
            entity_id=grn.id,
            actor_user_id=received_by_user_id,
            occurred_at=now,
            note=f"{grn.grn_number} received against {po.po_number}",
            payload={
                "po_id": po.id,
                "tire_count": tire_count,
                "total_cost_cents": total_cost,
                "accounting_transaction_id": transaction_id,
                "po_status": po.status.value,
            },
        )
        return grn

    grn = run_in_transaction(_op)
    current_app.logger.info(
        "GRN %s posted for PO %s: %s cents", grn.grn_number, po_id, grn.total_cost_cents
    )
    return grn


def receive_purchase_order_line(
    *,
    line_id: int,
    quantity: int,
    batch_ref: str | None = None,
    actor_user_id: int,
    serial_numbers: list[str] | None = None,
    unit_cost_cents: int | None = None,
    receipt_date: date | str | None = None,
    supplier_invoice_number: str | None = None,
    notes: str | None = None,
) -> dict:
    """Receive a single PO line on its own GRN."""
    item = {
        "line_id": line_id,
        "quantity": quantity,
        "batch_number": batch_ref,
        "serial_numbers": serial_numbers,
        "unit_cost_cents": unit_cost_cents,
        "notes": notes,
    }
    _validate_receipt_items([item])

    line = db.session.get(PurchaseOrderItem, line_id)
    if not line:
        raise NotFoundError(f"Purchase order line {line_id} not found", entity_type="purchase_order_item", entity_id=line_id)

    grn = receive_goods(
        po_id=line.po_id,
        items=[item],
        received_by_user_id=actor_user_id,
        receipt_date=receipt_date,
        supplier_invoice_number=supplier_invoice_number,
    )

    grn_item_ids = [grn_item.id for grn_item in grn.items]
    tire_ids = [
        tire_id
        for (tire_id,) in db.session.query(Tire.id)
        .filter(Tire.source_grn_item_id.in_(grn_item_ids))
        .order_by(Tire.id)
        .all()
    ]
    line = db.session.get(PurchaseOrderItem, line_id)
    return {
        "line_id": line_id,
        "po_status": enum_value(line.purchase_order.status),
        "grn_id": grn.id,
        "grn_number": grn.grn_number,
        "tire_ids": tire_ids,
        "received_quantity": line.received_quantity,
    }


def list_goods_received_notes(po_id: int) -> list[GoodsReceivedNote]:
    return (
        db.session.query(GoodsReceivedNote)
        .filter(GoodsReceivedNote.po_id == po_id)
        .order_by(GoodsReceivedNote.id.asc())
        .all()
    )
