"""
Error taxonomy for tire lifecycle operations.

Every error carries the structured detail an API layer needs to build an
actionable message without re-querying: the error kind, the offending entity,
and the current vs attempted state when a state rule was violated.

- ValidationError: malformed or out-of-range input. Raised before any write.
- NotFoundError: a referenced entity does not exist.
- StateConflictError: operation not valid for the entity's current state.
- AuthorizationError: the actor lacks the capability the operation needs.
- PersistenceError: the transaction could not be committed.
"""

from __future__ import annotations

from typing import Any


class TireTrackError(Exception):
    """Base class for every error raised by the service layer."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: Any = None,
        current_state: Any = None,
        attempted_state: Any = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = _state_value(current_state)
        self.attempted_state = _state_value(attempted_state)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "error": type(self).__name__,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "current_state": self.current_state,
            "attempted_state": self.attempted_state,
            "details": self.details,
        }


class ValidationError(TireTrackError):
    """Malformed or out-of-range input; nothing was written."""
    kind = "validation"


class OverReceiptError(ValidationError):
    """Received quantity exceeds what remains open on the purchase order line."""
    pass


class InvalidStatusError(ValidationError):
    """Requested status is not part of the document's status vocabulary."""
    pass


class NotFoundError(TireTrackError):
    """Referenced entity does not exist."""
    kind = "not_found"


class StateConflictError(TireTrackError):
    """Operation is not valid for the entity's current state."""
    kind = "state_conflict"


class IneligibleTireError(StateConflictError):
    """Tire cannot be bound to a retread order in its current state."""
    pass


class AuthorizationError(TireTrackError):
    """Actor lacks the capability required for the operation."""
    kind = "authorization"


class PersistenceError(TireTrackError):
    """
    Transaction or commit failure.

    retryable is True for transient failures (locks, stale rows) and False for
    constraint violations that need caller correction.
    """
    kind = "persistence"

    def __init__(self, message: str, *, retryable: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.retryable = retryable

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        return payload


def _state_value(state):
    return getattr(state, "value", state)
