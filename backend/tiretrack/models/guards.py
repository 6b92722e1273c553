"""
Flush-time invariant guards.

These run on every ORM flush and reject writes that would break the
tire/movement/ledger invariants even if a caller bypasses the services:

- TireMovement, JournalEntry, SupplierLedgerEntry and ActivityEvent rows are
  append-only (no UPDATE, no DELETE through the ORM).
- A Tire's lineage columns never change after insert.
- A Tire's status never changes (or is first set) without a new TireMovement
  for that tire, in the same flush, whose to_status matches.
"""

from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..errors import PersistenceError
from .accounting import JournalEntry, SupplierLedgerEntry
from .documents import ActivityEvent
from .tires import Tire, TireMovement


APPEND_ONLY_MODELS = (TireMovement, JournalEntry, SupplierLedgerEntry, ActivityEvent)

_registered = False


def _check_append_only(session: Session) -> None:
    for obj in session.deleted:
        if isinstance(obj, APPEND_ONLY_MODELS):
            raise PersistenceError(
                f"{type(obj).__name__} rows are append-only and cannot be deleted",
                entity_type=type(obj).__tablename__,
                entity_id=obj.id,
            )
    for obj in session.dirty:
        if isinstance(obj, APPEND_ONLY_MODELS) and session.is_modified(obj, include_collections=False):
            raise PersistenceError(
                f"{type(obj).__name__} rows are append-only and cannot be updated",
                entity_type=type(obj).__tablename__,
                entity_id=obj.id,
            )


def _check_lineage(session: Session) -> None:
    for obj in session.dirty:
        if not isinstance(obj, Tire):
            continue
        state = inspect(obj)
        for field in Tire.LINEAGE_FIELDS:
            history = state.attrs[field].history
            if history.deleted and history.deleted[0] is not None:
                raise PersistenceError(
                    "Tire lineage is immutable after creation",
                    entity_type="tire",
                    entity_id=obj.id,
                    details={"field": field},
                )


def _check_status_has_movement(session: Session) -> None:
    new_movements = [obj for obj in session.new if isinstance(obj, TireMovement)]

    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, Tire):
            continue
        history = inspect(obj).attrs["status"].history
        if not history.added:
            continue
        covered = any(
            (m.tire is obj or (obj.id is not None and m.tire_id == obj.id))
            and m.to_status == obj.status
            for m in new_movements
        )
        if not covered:
            raise PersistenceError(
                "Tire status changed without a matching movement",
                entity_type="tire",
                entity_id=obj.id,
                current_state=history.deleted[0] if history.deleted else None,
                attempted_state=obj.status,
            )


def _before_flush(session, flush_context, instances):
    _check_append_only(session)
    _check_lineage(session)
    _check_status_has_movement(session)


def register_model_guards() -> None:
    """Attach the guards to every Session (idempotent)."""
    global _registered
    if _registered:
        return
    event.listen(Session, "before_flush", _before_flush)
    _registered = True
