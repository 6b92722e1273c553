# Overview: Service-layer operations for actors and capabilities; resolves callers for approval checks.

"""
Actor Resolution and Capability Checks

WHY: Approval, retread release and disposal are segregated duties. The
workflows ask this module who the caller is and what they may do; they never
read grant tables themselves.

DESIGN PRINCIPLES:
- Fail closed: unknown or inactive users hold no capabilities
- Pluggable: an app may install its own resolver via the ACTOR_RESOLVER
  config key (callable user_id -> Actor | None), e.g. one backed by an
  external identity provider
- Denials are logged on the app logger
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User, UserPermission
from ..permissions import PERMISSION_CODES


@dataclass(frozen=True)
class Actor:
    id: int
    username: str
    permissions: frozenset = field(default_factory=frozenset)
    is_active: bool = True

    def can(self, permission_code: str) -> bool:
        return self.is_active and permission_code in self.permissions


def _resolve_from_database(user_id: int) -> Actor | None:
    user = db.session.get(User, user_id)
    if not user:
        return None
    codes = (
        db.session.query(UserPermission.permission_code)
        .filter(UserPermission.user_id == user_id)
        .all()
    )
    return Actor(
        id=user.id,
        username=user.username,
        permissions=frozenset(code for (code,) in codes),
        is_active=user.is_active,
    )


def resolve_actor(user_id: int | None) -> Actor:
    """
    Map a caller id to an Actor with its capability set.

    Raises:
        AuthorizationError: If no id is given, or the user is unknown or inactive
    """
    if user_id is None:
        raise AuthorizationError("An authenticated actor is required", entity_type="user")

    resolver = current_app.config.get("ACTOR_RESOLVER") or _resolve_from_database
    actor = resolver(user_id)
    if actor is None:
        raise AuthorizationError(f"Unknown actor {user_id}", entity_type="user", entity_id=user_id)
    if not actor.is_active:
        raise AuthorizationError(f"Actor {user_id} is inactive", entity_type="user", entity_id=user_id)
    return actor


def user_has_permission(user_id: int | None, permission_code: str) -> bool:
    try:
        return resolve_actor(user_id).can(permission_code)
    except AuthorizationError:
        return False


def require_permission(user_id: int | None, permission_code: str, *, action: str | None = None) -> Actor:
    """
    Resolve the actor and ensure it holds permission_code.

    Returns:
        The resolved Actor

    Raises:
        AuthorizationError: If the actor is missing, inactive, or lacks the capability
    """
    actor = resolve_actor(user_id)
    if not actor.can(permission_code):
        current_app.logger.warning(
            "Permission denied: user=%s permission=%s action=%s",
            user_id, permission_code, action,
        )
        raise AuthorizationError(
            f"User {user_id} lacks permission {permission_code}",
            entity_type="user",
            entity_id=user_id,
            details={"permission": permission_code, "action": action},
        )
    return actor


def create_user(*, username: str, full_name: str | None = None, email: str | None = None) -> User:
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required", entity_type="user")
    if db.session.query(User).filter_by(username=username).first():
        raise ValidationError(f"User '{username}' already exists", entity_type="user")

    user = User(username=username, full_name=full_name, email=email, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


def grant_permission(user_id: int, permission_code: str, *, granted_by_user_id: int | None = None) -> UserPermission:
    """Grant a capability (idempotent)."""
    if permission_code not in PERMISSION_CODES:
        raise ValidationError(f"Unknown permission: {permission_code}", details={"permission": permission_code})
    if not db.session.get(User, user_id):
        raise NotFoundError(f"User {user_id} not found", entity_type="user", entity_id=user_id)

    grant = (
        db.session.query(UserPermission)
        .filter_by(user_id=user_id, permission_code=permission_code)
        .first()
    )
    if grant:
        return grant

    grant = UserPermission(
        user_id=user_id,
        permission_code=permission_code,
        granted_by_user_id=granted_by_user_id,
    )
    db.session.add(grant)
    db.session.commit()
    return grant


def revoke_permission(user_id: int, permission_code: str) -> bool:
    deleted = (
        db.session.query(UserPermission)
        .filter_by(user_id=user_id, permission_code=permission_code)
        .delete()
    )
    db.session.commit()
    return bool(deleted)
