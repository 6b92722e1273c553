# Overview: Service-layer operations for document numbering; collision-safe sequences.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import period_key, utcnow


# document_type -> prefix
PURCHASE_ORDER = ("PURCHASE_ORDER", "PO")
GOODS_RECEIVED_NOTE = ("GOODS_RECEIVED_NOTE", "GRN")
RETREAD_ORDER = ("RETREAD_ORDER", "RT")
RETREAD_RECEIPT = ("RETREAD_RECEIPT", "RRN")
PURCHASE_INVOICE = ("PURCHASE_INVOICE", "INV")
SUPPLIER_PAYMENT = ("SUPPLIER_PAYMENT", "PAY")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_value(document_type: str, period: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    at: datetime | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next number for (document_type, period) inside the caller's
    transaction, formatted as PREFIX-YYYYMM-NNNN.

    The counter moves by a relative UPDATE, so concurrent writers serialize on
    the sequence row instead of counting existing documents. The first number
    of a period inserts the row inside a savepoint; if another writer inserted
    it first, the unique constraint fires and the UPDATE path is used instead.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    period = period_key(at or utcnow())

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_value(document_type, period) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(
                    f"Could not allocate sequence for {document_type} {period}"
                )
            next_num = _current_value(document_type, period) - 1

    return f"{prefix}-{period}-{next_num:0{pad}d}"


def allocate(kind: tuple[str, str], *, at: datetime | None = None) -> str:
    """Shorthand for next_document_number with one of the module's (type, prefix) pairs."""
    document_type, prefix = kind
    return next_document_number(document_type=document_type, prefix=prefix, at=at)
