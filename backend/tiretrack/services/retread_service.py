# Overview: Service-layer operations for retread orders; send casings out and receive them back.

"""
Retread Workflow

WHY: Worn casings are sent to a retreader and come back either as a new,
retreaded tire (a new asset identity with its own serial and cost) or rejected
(the same casing returns to used stock).

LIFECYCLE:
1. DRAFT: Created; ON_VEHICLE tires are removed first, then USED_STORE tires
   are marked AWAITING_RETREAD
2. SENT: Released by a user holding APPROVE_RETREAD_ORDERS; tires AT_RETREAD_SUPPLIER
3. PARTIALLY_RECEIVED / FULLY_RECEIVED: Derived from item outcomes
4. CANCELLED: Only from DRAFT; tires stay AWAITING_RETREAD

ACCEPTED OUTCOME:
- New RETREADED tire (lineage = the order item, retread_count + 1) with a
  RETREAD_RECEIPT movement and +1 stock for the RETREADED key
- The original tire keeps AT_RETREAD_SUPPLIER, gets no movement, and is
  closed by superseded_by_tire_id

Receiving posts one RETREAD_SERVICE transaction per receipt when the accepted
cost is positive.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import (
    IneligibleTireError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    MovementType,
    RetreadItemStatus,
    RetreadOrder,
    RetreadOrderItem,
    RetreadOrderStatus,
    RetreadOutcome,
    RetreadReceipt,
    RetreadReceiptItem,
    Supplier,
    Tire,
    TireKind,
    TireStatus,
)
from ..permissions import APPROVE_RETREAD_ORDERS
from ..time_utils import normalize_date, utcnow
from . import document_service
from .accounting_service import RECEIPT_RETREAD, ReceiptEvent, post_receipt
from .activity_service import append_activity_event
from .concurrency import lock_for_update, run_in_transaction
from .permission_service import require_permission, resolve_actor
from .tire_service import (
    create_tire,
    detach_from_vehicle,
    find_existing_serials,
    find_open_retread_item,
    lock_tire,
    transition_tire,
)


ELIGIBLE_STATUSES = (TireStatus.USED_STORE, TireStatus.ON_VEHICLE, TireStatus.AWAITING_RETREAD)
RECEIVABLE_STATUSES = (RetreadOrderStatus.SENT, RetreadOrderStatus.PARTIALLY_RECEIVED)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _lock_order(order_id: int) -> RetreadOrder:
    order = lock_for_update(db.session.query(RetreadOrder).filter(RetreadOrder.id == order_id)).first()
    if not order:
        raise NotFoundError(f"Retread order {order_id} not found", entity_type="retread_order", entity_id=order_id)
    return order


def _validate_tire_lines(tire_lines) -> list[dict]:
    if not tire_lines:
        raise ValidationError("A retread order needs at least one tire", entity_type="retread_order")

    normalized = []
    seen = set()
    for raw in tire_lines:
        line = raw if isinstance(raw, dict) else {"tire_id": raw}
        tire_id = line.get("tire_id")
        if tire_id is None:
            raise ValidationError("tire_id is required for every retread line", entity_type="retread_order")
        if tire_id in seen:
            raise IneligibleTireError(
                f"Tire {tire_id} appears more than once in the order",
                entity_type="tire",
                entity_id=tire_id,
            )
        seen.add(tire_id)

        quoted = line.get("quoted_cost_cents")
        if quoted is not None and (not _is_int(quoted) or quoted < 0):
            raise ValidationError(
                "quoted_cost_cents must be a non-negative integer",
                entity_type="tire",
                entity_id=tire_id,
            )
        odometer = line.get("removal_odometer")
        if odometer is not None and (not _is_int(odometer) or odometer < 0):
            raise ValidationError(
                "removal_odometer must be a non-negative integer",
                entity_type="tire",
                entity_id=tire_id,
            )
        normalized.append({
            "tire_id": tire_id,
            "quoted_cost_cents": quoted,
            "removal_odometer": odometer,
            "notes": line.get("notes"),
        })
    return normalized


def _check_eligible(tire_id: int) -> Tire:
    tire = lock_for_update(db.session.query(Tire).filter(Tire.id == tire_id)).first()
    if not tire:
        raise IneligibleTireError(f"Tire {tire_id} does not exist", entity_type="tire", entity_id=tire_id)
    if tire.is_superseded:
        raise IneligibleTireError(
            f"Tire {tire.serial_number} was superseded by a retreaded tire",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
        )
    if tire.status not in ELIGIBLE_STATUSES:
        raise IneligibleTireError(
            f"Tire {tire.serial_number} in status {tire.status.value} cannot be sent for retreading",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
            attempted_state=TireStatus.AWAITING_RETREAD,
        )
    open_item = find_open_retread_item(tire.id)
    if open_item:
        raise IneligibleTireError(
            f"Tire {tire.serial_number} is already on retread order {open_item.order.order_number}",
            entity_type="tire",
            entity_id=tire.id,
            current_state=tire.status,
            details={"retread_order_id": open_item.order_id},
        )
    return tire


def create_retread_order(
    *,
    supplier_id: int,
    created_by_user_id: int,
    tire_lines: list,
    expected_return_date: date | None = None,
    notes: str | None = None,
) -> RetreadOrder:
    """
    Create a DRAFT retread order for a batch of used casings.

    Args:
        supplier_id: Retreading supplier
        created_by_user_id: User creating the order
        tire_lines: Dicts with tire_id and optional quoted_cost_cents, notes,
            removal_odometer (for mounted tires; plain tire ids are accepted too)
        expected_return_date: When the retreader expects to return the batch

    Returns:
        The created RetreadOrder

    Raises:
        ValidationError: No lines, bad quoted cost or removal odometer
        IneligibleTireError: Tire missing, superseded, in the wrong status,
            duplicated in the request or on another open order
        NotFoundError: Unknown supplier
    """
    validated = _validate_tire_lines(tire_lines)

    def _op() -> RetreadOrder:
        resolve_actor(created_by_user_id)
        supplier = db.session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found", entity_type="supplier", entity_id=supplier_id)
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.name} is inactive", entity_type="supplier", entity_id=supplier.id)

        tires = [_check_eligible(line["tire_id"]) for line in validated]

        now = utcnow()
        order = RetreadOrder(
            order_number=document_service.allocate(document_service.RETREAD_ORDER, at=now),
            supplier_id=supplier.id,
            status=RetreadOrderStatus.DRAFT,
            order_date=now.date(),
            expected_return_date=expected_return_date,
            total_tires=len(validated),
            total_cost_cents=sum(line["quoted_cost_cents"] or 0 for line in validated),
            notes=notes,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(order)
        db.session.flush()

        for tire, line in zip(tires, validated):
            item = RetreadOrderItem(
                order_id=order.id,
                tire_id=tire.id,
                status=RetreadItemStatus.PENDING,
                quoted_cost_cents=line["quoted_cost_cents"],
                notes=line["notes"],
            )
            db.session.add(item)
            db.session.flush()
            if tire.status == TireStatus.ON_VEHICLE:
                detach_from_vehicle(
                    tire,
                    odometer=line["removal_odometer"],
                    reason=f"Removed for retread on {order.order_number}",
                    actor_user_id=created_by_user_id,
                    occurred_at=now,
                )
            if tire.status == TireStatus.USED_STORE:
                transition_tire(
                    tire,
                    MovementType.MARK_FOR_RETREAD,
                    actor_user_id=created_by_user_id,
                    occurred_at=now,
                    note=f"Queued on {order.order_number}",
                    retread_order_id=order.id,
                    retread_item_id=item.id,
                )

        append_activity_event(
            event_type="retread_order.created",
            entity_type="retread_order",
            entity_id=order.id,
            actor_user_id=created_by_user_id,
            occurred_at=now,
            note=f"Retread order {order.order_number} created",
            payload={"tire_ids": [tire.id for tire in tires]},
        )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Retread order %s created with %d tires", order.order_number, order.total_tires)
    return order


def send_retread_order(*, order_id: int, actor_user_id: int) -> bool:
    """
    Release a DRAFT order to the retreader.

    Every tire moves AWAITING_RETREAD -> AT_RETREAD_SUPPLIER with one
    RETREAD_SENT movement.

    Raises:
        AuthorizationError: Actor lacks APPROVE_RETREAD_ORDERS
        StateConflictError: Order not DRAFT, or a tire not AWAITING_RETREAD
        ValidationError: Order has no lines
    """
    def _op() -> bool:
        require_permission(actor_user_id, APPROVE_RETREAD_ORDERS, action="send_retread_order")
        order = _lock_order(order_id)
        if order.status != RetreadOrderStatus.DRAFT:
            raise StateConflictError(
                f"Retread order {order.order_number} cannot be sent in status {order.status.value}",
                entity_type="retread_order",
                entity_id=order.id,
                current_state=order.status,
                attempted_state=RetreadOrderStatus.SENT,
            )
        if not order.items:
            raise ValidationError(
                f"Retread order {order.order_number} has no tires",
                entity_type="retread_order",
                entity_id=order.id,
            )

        now = utcnow()
        for item in order.items:
            tire = lock_tire(item.tire_id)
            transition_tire(
                tire,
                MovementType.RETREAD_SENT,
                actor_user_id=actor_user_id,
                occurred_at=now,
                note=f"Sent on {order.order_number}",
                retread_order_id=order.id,
                retread_item_id=item.id,
            )
            item.status = RetreadItemStatus.AT_RETREADER

        order.status = RetreadOrderStatus.SENT
        order.sent_at = now
        order.sent_by_user_id = actor_user_id
        append_activity_event(
            event_type="retread_order.sent",
            entity_type="retread_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=now,
        )
        return True

    run_in_transaction(_op)
    current_app.logger.info("Retread order %s sent by user %s", order_id, actor_user_id)
    return True


def cancel_retread_order(*, order_id: int, actor_user_id: int, reason: str) -> RetreadOrder:
    """Cancel a DRAFT order. Its tires stay AWAITING_RETREAD and can be queued again."""
    if not (reason or "").strip():
        raise ValidationError("A cancellation reason is required", entity_type="retread_order", entity_id=order_id)

    def _op() -> RetreadOrder:
        resolve_actor(actor_user_id)
        order = _lock_order(order_id)
        if order.status != RetreadOrderStatus.DRAFT:
            raise StateConflictError(
                f"Retread order {order.order_number} cannot be cancelled in status {order.status.value}",
                entity_type="retread_order",
                entity_id=order.id,
                current_state=order.status,
                attempted_state=RetreadOrderStatus.CANCELLED,
            )
        now = utcnow()
        order.status = RetreadOrderStatus.CANCELLED
        order.cancelled_at = now
        order.cancel_reason = reason
        append_activity_event(
            event_type="retread_order.cancelled",
            entity_type="retread_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=now,
            note=reason,
        )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Retread order %s cancelled", order.order_number)
    return order


def derive_retread_status(items) -> RetreadOrderStatus:
    """FULLY_RECEIVED once every item is settled, PARTIALLY_RECEIVED once any is."""
    settled = [item.is_settled for item in items]
    if settled and all(settled):
        return RetreadOrderStatus.FULLY_RECEIVED
    if any(settled):
        return RetreadOrderStatus.PARTIALLY_RECEIVED
    return RetreadOrderStatus.SENT


def _validate_outcomes(line_outcomes) -> list[dict]:
    if not line_outcomes:
        raise ValidationError("At least one line outcome is required", entity_type="retread_receipt")

    normalized = []
    seen_items = set()
    seen_serials = set()
    for raw in line_outcomes:
        item_id = raw.get("item_id")
        if item_id is None:
            raise ValidationError("item_id is required for every outcome", entity_type="retread_receipt")
        if item_id in seen_items:
            raise ValidationError(
                f"Retread item {item_id} appears more than once in the receipt",
                entity_type="retread_order_item",
                entity_id=item_id,
            )
        seen_items.add(item_id)

        try:
            outcome = RetreadOutcome(raw.get("outcome"))
        except ValueError:
            raise ValidationError(
                f"Invalid outcome. Must be one of: {', '.join(o.value for o in RetreadOutcome)}",
                entity_type="retread_order_item",
                entity_id=item_id,
            ) from None

        cost = raw.get("retread_cost_cents")
        if cost is not None and (not _is_int(cost) or cost < 0):
            raise ValidationError(
                "retread_cost_cents must be a non-negative integer",
                entity_type="retread_order_item",
                entity_id=item_id,
            )

        serial = raw.get("new_serial_number")
        if serial is not None:
            serial = str(serial).strip()
            if not serial:
                raise ValidationError("new_serial_number cannot be blank", entity_type="retread_order_item", entity_id=item_id)
            if serial in seen_serials:
                raise ValidationError(
                    f"Serial {serial} appears more than once in the receipt",
                    entity_type="retread_receipt",
                    details={"serial_number": serial},
                )
            seen_serials.add(serial)

        normalized.append({
            "item_id": item_id,
            "outcome": outcome,
            "retread_cost_cents": cost,
            "new_serial_number": serial,
            "notes": raw.get("notes"),
        })
    return normalized


def receive_retread_order(*, order_id: int, receipt_header: dict, line_outcomes: list[dict]) -> dict:
    """
    Record the retreader's return of some or all casings as one receipt (RRN).

    Args:
        order_id: SENT or PARTIALLY_RECEIVED order
        receipt_header: received_by_user_id plus optional received_date (date,
            datetime or ISO-8601 string),
            supplier_invoice_number, delivery_note_number, notes
        line_outcomes: Dicts with item_id, outcome (ACCEPTED / REJECTED) and
            optional retread_cost_cents, new_serial_number, notes

    Returns:
        Dict with receipt_id, receipt_number, accepted_count, rejected_count,
        accounting_transaction_id, order_status

    Raises:
        ValidationError: Bad outcomes, duplicate items, unknown accepted cost, serial in use
        StateConflictError: Order not receivable, or an item not of this order / not AT_RETREADER
        NotFoundError: Unknown order
    """
    header = receipt_header or {}
    actor_user_id = header.get("received_by_user_id")
    if actor_user_id is None:
        raise ValidationError("received_by_user_id is required", entity_type="retread_receipt")
    validated = _validate_outcomes(line_outcomes)
    try:
        received_date = normalize_date(header.get("received_date") or None)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Invalid received_date: {header.get('received_date')!r}", entity_type="retread_receipt"
        ) from None

    def _op() -> dict:
        resolve_actor(actor_user_id)
        order = _lock_order(order_id)
        if order.status not in RECEIVABLE_STATUSES:
            raise StateConflictError(
                f"Retread order {order.order_number} cannot be received in status {order.status.value}",
                entity_type="retread_order",
                entity_id=order.id,
                current_state=order.status,
            )

        item_ids = [line["item_id"] for line in validated]
        items = {
            item.id: item
            for item in lock_for_update(
                db.session.query(RetreadOrderItem).filter(RetreadOrderItem.id.in_(item_ids))
            ).all()
        }
        for line in validated:
            item = items.get(line["item_id"])
            if not item or item.order_id != order.id:
                raise StateConflictError(
                    f"Item {line['item_id']} is not part of retread order {order.order_number}",
                    entity_type="retread_order_item",
                    entity_id=line["item_id"],
                )
            if item.status != RetreadItemStatus.AT_RETREADER:
                raise StateConflictError(
                    f"Retread item {item.id} is {item.status.value}, not at the retreader",
                    entity_type="retread_order_item",
                    entity_id=item.id,
                    current_state=item.status,
                    attempted_state=line["outcome"],
                )
            if line["outcome"] == RetreadOutcome.ACCEPTED:
                cost = line["retread_cost_cents"]
                if cost is None:
                    cost = item.quoted_cost_cents
                if cost is None:
                    raise ValidationError(
                        f"Retread cost for item {item.id} is unknown",
                        entity_type="retread_order_item",
                        entity_id=item.id,
                    )
                line["retread_cost_cents"] = cost

        existing = find_existing_serials(
            line["new_serial_number"] for line in validated if line["new_serial_number"]
        )
        if existing:
            raise ValidationError(
                "Serial numbers already in use",
                entity_type="tire",
                details={"serial_numbers": sorted(existing)},
            )

        now = utcnow()
        received_on = received_date or now.date()
        receipt = RetreadReceipt(
            receipt_number=document_service.allocate(document_service.RETREAD_RECEIPT, at=now),
            order_id=order.id,
            received_date=received_on,
            received_by_user_id=actor_user_id,
            supplier_invoice_number=header.get("supplier_invoice_number"),
            delivery_note_number=header.get("delivery_note_number"),
            notes=header.get("notes"),
        )
        db.session.add(receipt)
        db.session.flush()

        accepted = rejected = total_cost = 0
        for line in validated:
            item = items[line["item_id"]]
            tire = lock_tire(item.tire_id)
            receipt_item = RetreadReceiptItem(
                receipt_id=receipt.id,
                order_item_id=item.id,
                outcome=line["outcome"],
                notes=line["notes"],
            )

            if line["outcome"] == RetreadOutcome.ACCEPTED:
                if tire.status != TireStatus.AT_RETREAD_SUPPLIER or tire.is_superseded:
                    raise StateConflictError(
                        f"Tire {tire.serial_number} is not at the retreader",
                        entity_type="tire",
                        entity_id=tire.id,
                        current_state=tire.status,
                    )
                cost = line["retread_cost_cents"]
                serial = line["new_serial_number"] or f"{receipt.receipt_number}-{item.id:03d}"
                new_tire = create_tire(
                    serial_number=serial,
                    size=tire.size,
                    brand=tire.brand,
                    model=tire.model,
                    kind=TireKind.RETREADED,
                    cost_cents=cost,
                    supplier_id=order.supplier_id,
                    acquired_on=received_on,
                    movement_type=MovementType.RETREAD_RECEIPT,
                    actor_user_id=actor_user_id,
                    occurred_at=now,
                    note=f"Retreaded from {tire.serial_number} on {receipt.receipt_number}",
                    source_retread_item_id=item.id,
                    retread_count=(tire.retread_count or 0) + 1,
                    retread_order_id=order.id,
                    retread_item_id=item.id,
                )
                tire.superseded_by_tire_id = new_tire.id
                tire.superseded_at = now

                item.status = RetreadItemStatus.ACCEPTED
                item.retread_cost_cents = cost
                item.new_tire_id = new_tire.id
                receipt_item.new_serial_number = serial
                receipt_item.new_tire_id = new_tire.id
                receipt_item.retread_cost_cents = cost
                accepted += 1
                total_cost += cost
            else:
                transition_tire(
                    tire,
                    MovementType.RETREAD_REJECTED,
                    actor_user_id=actor_user_id,
                    occurred_at=now,
                    note=line["notes"] or f"Rejected on {receipt.receipt_number}",
                    retread_order_id=order.id,
                    retread_item_id=item.id,
                )
                item.status = RetreadItemStatus.REJECTED
                rejected += 1

            db.session.add(receipt_item)

        receipt.accepted_count = accepted
        receipt.rejected_count = rejected
        receipt.total_cost_cents = total_cost

        order.status = derive_retread_status(order.items)
        if order.status == RetreadOrderStatus.FULLY_RECEIVED:
            order.received_at = now
        db.session.flush()

        transaction_id = None
        if total_cost > 0:
            tx = post_receipt(ReceiptEvent(
                kind=RECEIPT_RETREAD,
                supplier_id=order.supplier_id,
                amount_cents=total_cost,
                actor_user_id=actor_user_id,
                occurred_at=now,
                reference_number=header.get("supplier_invoice_number") or receipt.receipt_number,
                description=f"Retread receipt {receipt.receipt_number} for {order.order_number}",
                retread_order_id=order.id,
                retread_receipt_id=receipt.id,
            ))
            receipt.accounting_transaction_id = tx.id
            transaction_id = tx.id

        append_activity_event(
            event_type="retread_order.received",
            entity_type="retread_order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=now,
            note=f"{receipt.receipt_number}: {accepted} accepted, {rejected} rejected",
            payload={"receipt_id": receipt.id, "total_cost_cents": total_cost},
        )
        return {
            "receipt_id": receipt.id,
            "receipt_number": receipt.receipt_number,
            "accepted_count": accepted,
            "rejected_count": rejected,
            "accounting_transaction_id": transaction_id,
            "order_status": order.status.value,
        }

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Retread order %s received on %s: %d accepted, %d rejected",
        order_id, result["receipt_number"], result["accepted_count"], result["rejected_count"],
    )
    return result


def get_retread_order(order_id: int) -> RetreadOrder:
    order = db.session.get(RetreadOrder, order_id)
    if not order:
        raise NotFoundError(f"Retread order {order_id} not found", entity_type="retread_order", entity_id=order_id)
    return order


def list_retread_orders(
    *,
    status=None,
    supplier_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[RetreadOrder], int]:
    query = db.session.query(RetreadOrder)
    if status:
        try:
            query = query.filter(RetreadOrder.status == RetreadOrderStatus(status))
        except ValueError:
            raise ValidationError(f"Invalid retread order status: {status}", entity_type="retread_order") from None
    if supplier_id is not None:
        query = query.filter(RetreadOrder.supplier_id == supplier_id)

    total = query.count()
    items = (
        query.order_by(RetreadOrder.id.desc())
        .offset(max(0, offset))
        .limit(max(1, min(limit, 500)))
        .all()
    )
    return items, total
