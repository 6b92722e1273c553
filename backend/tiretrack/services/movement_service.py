# Overview: Service-layer operations for the movement ledger; append-only tire transitions.

from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import MovementType, Tire, TireMovement, TireStatus
from ..time_utils import utcnow
"""
Movement Ledger Invariants (authoritative)

- Append-only: movements are never updated or deleted.
- One movement per status transition, written in the same transaction as the
  Tire.status change it explains (tire_service is the only writer).
- Tire.status == to_status of the tire's latest movement (highest id).
- Per-tire order is insertion order; callers lock the tire row first, so rows
  for one tire are inserted in the order their transactions commit.
"""


def record_movement(
    *,
    tire: Tire,
    from_status: Optional[TireStatus],
    to_status: TireStatus,
    movement_type: MovementType,
    actor_user_id: int,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    purchase_item_id: int | None = None,
    grn_id: int | None = None,
    retread_order_id: int | None = None,
    retread_item_id: int | None = None,
    assignment_id: int | None = None,
) -> TireMovement:
    """
    Stage one movement row for tire.

    Not flushed here: the caller sets Tire.status next and flushes both
    together, which is what the flush guard checks.
    """
    movement = TireMovement(
        tire=tire,
        from_status=from_status,
        to_status=to_status,
        movement_type=movement_type,
        occurred_at=occurred_at or utcnow(),
        actor_user_id=actor_user_id,
        purchase_item_id=purchase_item_id,
        grn_id=grn_id,
        retread_order_id=retread_order_id,
        retread_item_id=retread_item_id,
        assignment_id=assignment_id,
        note=note,
    )
    db.session.add(movement)
    return movement


class MovementHistory:
    """
    Ordered, lazy, restartable view over one tire's movements.

    Every iteration starts a fresh keyset-paginated scan (id > last seen), so
    the sequence can be iterated again and always reflects committed rows.
    """

    def __init__(self, tire_id: int, batch_size: int):
        self.tire_id = tire_id
        self.batch_size = max(1, batch_size)

    def __iter__(self) -> Iterator[TireMovement]:
        last_id = 0
        while True:
            batch = (
                db.session.query(TireMovement)
                .filter(TireMovement.tire_id == self.tire_id, TireMovement.id > last_id)
                .order_by(TireMovement.id.asc())
                .limit(self.batch_size)
                .all()
            )
            yield from batch
            if len(batch) < self.batch_size:
                return
            last_id = batch[-1].id

    def __repr__(self) -> str:
        return f"<MovementHistory tire={self.tire_id}>"


def get_asset_movement_history(tire_id: int, *, batch_size: int | None = None) -> MovementHistory:
    """
    Return the tire's movements, oldest first.

    Raises:
        NotFoundError: If the tire does not exist
    """
    if not db.session.get(Tire, tire_id):
        raise NotFoundError(f"Tire {tire_id} not found", entity_type="tire", entity_id=tire_id)
    if batch_size is None:
        batch_size = current_app.config.get("MOVEMENT_HISTORY_BATCH_SIZE", 200)
    return MovementHistory(tire_id, batch_size)


def get_last_movement(tire_id: int) -> TireMovement | None:
    return (
        db.session.query(TireMovement)
        .filter(TireMovement.tire_id == tire_id)
        .order_by(TireMovement.id.desc())
        .first()
    )


def count_movements(tire_id: int) -> int:
    return db.session.query(TireMovement).filter(TireMovement.tire_id == tire_id).count()
