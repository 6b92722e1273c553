# Overview: Transaction scoping for composite operations; row locks, retry and rollback.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows that are contended on SQLite carry a version_id column, so a stale
    write still fails with StaleDataError and the operation is retried.
    """
    return query.with_for_update()


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute func as one composite transaction and commit once at the end.

    - Any exception rolls back everything func wrote; nothing is recovered locally.
    - OperationalError (locks, dropped connections) and StaleDataError
      (optimistic locking conflicts) re-run func from scratch with exponential
      backoff, then surface as a retryable PersistenceError.
    - IntegrityError surfaces as a non-retryable PersistenceError.
    - Service errors (validation, state, authorization) propagate unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.1)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(
                    "Transaction failed after retries",
                    retryable=True,
                    details={"cause": type(exc).__name__, "attempts": attempts},
                ) from exc
            current_app.logger.warning(
                "Transaction conflict (%s), retrying attempt %d/%d",
                type(exc).__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            raise PersistenceError(
                "Constraint violation",
                retryable=False,
                details={"cause": str(getattr(exc, "orig", exc))},
            ) from exc
        except Exception:
            db.session.rollback()
            raise
