"""
Document numbering: PREFIX-YYYYMM-NNNN per document type and period.
"""

from datetime import datetime

import pytest

from tiretrack.models import DocumentSequence
from tiretrack.services import document_service
from tiretrack.services.document_service import DocumentSequenceError, next_document_number


JAN = datetime(2026, 1, 15, 9, 30)
FEB = datetime(2026, 2, 1, 0, 0)


def test_numbers_are_sequential_per_type(db_session):
    first = document_service.allocate(document_service.PURCHASE_ORDER, at=JAN)
    second = document_service.allocate(document_service.PURCHASE_ORDER, at=JAN)
    grn = document_service.allocate(document_service.GOODS_RECEIVED_NOTE, at=JAN)
    db_session.commit()

    assert first == "PO-202601-0001"
    assert second == "PO-202601-0002"
    assert grn == "GRN-202601-0001"


def test_new_period_restarts_numbering(db_session):
    document_service.allocate(document_service.RETREAD_ORDER, at=JAN)
    document_service.allocate(document_service.RETREAD_ORDER, at=JAN)

    assert document_service.allocate(document_service.RETREAD_ORDER, at=FEB) == "RT-202602-0001"
    assert document_service.allocate(document_service.RETREAD_ORDER, at=JAN) == "RT-202601-0003"
    db_session.commit()

    rows = db_session.query(DocumentSequence).filter_by(document_type="RETREAD_ORDER").all()
    assert {(r.period, r.next_number) for r in rows} == {("202601", 4), ("202602", 2)}


def test_rolled_back_allocation_is_not_consumed(db_session):
    document_service.allocate(document_service.SUPPLIER_PAYMENT, at=JAN)
    db_session.commit()
    document_service.allocate(document_service.SUPPLIER_PAYMENT, at=JAN)
    db_session.rollback()

    assert document_service.allocate(document_service.SUPPLIER_PAYMENT, at=JAN) == "PAY-202601-0002"


def test_custom_padding(db_session):
    assert next_document_number(document_type="CREDIT_NOTE", prefix="CN", at=JAN, pad=6) == "CN-202601-000001"


@pytest.mark.parametrize("document_type,prefix", [("", "PO"), ("PURCHASE_ORDER", "")])
def test_missing_type_or_prefix(db_session, document_type, prefix):
    with pytest.raises(DocumentSequenceError):
        next_document_number(document_type=document_type, prefix=prefix, at=JAN)
