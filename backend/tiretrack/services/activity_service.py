# Overview: Service-layer operations for the activity trail; append-only document events.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import ActivityEvent
"""
Activity Trail Invariants

- Append-only: no updates or deletes (enforced by the flush guards).
- Written inside the same DB transaction as the document change it records,
  so a rolled-back operation leaves no trace here either.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_activity_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityEvent:
    ev = ActivityEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_activity_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[ActivityEvent]:
    query = db.session.query(ActivityEvent)
    if entity_type:
        query = query.filter(ActivityEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActivityEvent.entity_id == entity_id)
    if event_type:
        query = query.filter(ActivityEvent.event_type == event_type)
    return query.order_by(ActivityEvent.id.asc()).limit(max(1, min(limit, 500))).all()
