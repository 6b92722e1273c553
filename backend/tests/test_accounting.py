"""
Financial posting: receipt postings, supplier payments, statements and
balance reconciliation.
"""

import pytest
from sqlalchemy import update

from tiretrack.errors import NotFoundError, StateConflictError, ValidationError
from tiretrack.models import (
    AccountingTransaction,
    ActivityEvent,
    ChartOfAccount,
    Supplier,
    TransactionType,
)
from tiretrack.services import accounting_service, purchasing_service
from tiretrack.services.accounting_service import (
    RECEIPT_PURCHASE,
    RECEIPT_RETREAD,
    ReceiptEvent,
)


def test_chart_of_accounts_seed_is_idempotent(db_session):
    created = accounting_service.seed_chart_of_accounts()

    assert created == len(accounting_service.DEFAULT_CHART_OF_ACCOUNTS)
    assert accounting_service.seed_chart_of_accounts() == 0
    codes = {a.account_code for a in db_session.query(ChartOfAccount).all()}
    assert {"1000", "1200", "2000"} <= codes


def test_standalone_receipt_posting(db_session, tire_supplier, clerk):
    tx_id = accounting_service.post_receipt_financials(ReceiptEvent(
        kind=RECEIPT_PURCHASE,
        supplier_id=tire_supplier.id,
        amount_cents=123456,
        actor_user_id=clerk.id,
        reference_number="SUP-INV-1",
    ))

    tx = accounting_service.get_transaction(tx_id)
    assert tx.transaction_type == TransactionType.PURCHASE_INVOICE
    assert tx.transaction_number.startswith("INV-")
    assert tx.is_balanced
    assert {(e.account_code, e.debit_cents, e.credit_cents) for e in tx.entries} == {
        ("1200", 123456, 0),
        ("2000", 0, 123456),
    }
    assert accounting_service.get_supplier_balance(tire_supplier.id) == {
        "supplier_id": tire_supplier.id,
        "balance_cents": 123456,
        "ledger_balance_cents": 123456,
    }


@pytest.mark.parametrize("amount", [0, -5, 10.5, "100", True])
def test_posting_rejects_bad_amounts(db_session, tire_supplier, clerk, amount):
    with pytest.raises(ValidationError):
        accounting_service.post_receipt_financials(ReceiptEvent(
            kind=RECEIPT_RETREAD,
            supplier_id=tire_supplier.id,
            amount_cents=amount,
            actor_user_id=clerk.id,
        ))
    assert db_session.query(AccountingTransaction).count() == 0


def test_posting_rejects_unknown_kind_and_supplier(db_session, tire_supplier, clerk):
    with pytest.raises(ValidationError):
        accounting_service.post_receipt_financials(ReceiptEvent(
            kind="GIFT", supplier_id=tire_supplier.id, amount_cents=100, actor_user_id=clerk.id
        ))
    with pytest.raises(NotFoundError):
        accounting_service.post_receipt_financials(ReceiptEvent(
            kind=RECEIPT_PURCHASE, supplier_id=9999, amount_cents=100, actor_user_id=clerk.id
        ))


def test_grn_is_posted_once(db_session, approved_po, tire_supplier, clerk):
    result = purchasing_service.receive_purchase_order_line(
        line_id=approved_po.items[0].id, quantity=2, actor_user_id=clerk.id
    )

    with pytest.raises(StateConflictError):
        accounting_service.post_receipt_financials(ReceiptEvent(
            kind=RECEIPT_PURCHASE,
            supplier_id=tire_supplier.id,
            amount_cents=50000,
            actor_user_id=clerk.id,
            grn_id=result["grn_id"],
        ))

    assert db_session.query(AccountingTransaction).filter_by(grn_id=result["grn_id"]).count() == 1
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 50000


def test_payment_and_statement(db_session, tire_supplier, clerk):
    accounting_service.post_receipt_financials(ReceiptEvent(
        kind=RECEIPT_PURCHASE, supplier_id=tire_supplier.id, amount_cents=80000, actor_user_id=clerk.id
    ))

    tx_id = accounting_service.record_supplier_payment(
        supplier_id=tire_supplier.id,
        amount_cents=30000,
        actor_user_id=clerk.id,
        reference_number="CHQ-0091",
    )

    tx = accounting_service.get_transaction(tx_id)
    assert tx.transaction_type == TransactionType.PAYMENT
    assert tx.transaction_number.startswith("PAY-")
    assert {(e.account_code, e.debit_cents, e.credit_cents) for e in tx.entries} == {
        ("2000", 30000, 0),
        ("1000", 0, 30000),
    }
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 50000

    statement = accounting_service.get_supplier_statement(tire_supplier.id)
    assert [row["entry_type"] for row in statement] == ["PURCHASE", "PAYMENT"]
    assert [row["running_balance_cents"] for row in statement] == [80000, 50000]

    event = db_session.query(ActivityEvent).filter_by(event_type="supplier.paid").one()
    assert event.entity_id == tire_supplier.id


def test_payment_validation(db_session, tire_supplier, clerk):
    with pytest.raises(ValidationError):
        accounting_service.record_supplier_payment(supplier_id=tire_supplier.id, amount_cents=0, actor_user_id=clerk.id)
    with pytest.raises(NotFoundError):
        accounting_service.record_supplier_payment(supplier_id=4242, amount_cents=100, actor_user_id=clerk.id)


def test_reconcile_supplier_balances(db_session, tire_supplier, clerk):
    accounting_service.post_receipt_financials(ReceiptEvent(
        kind=RECEIPT_PURCHASE, supplier_id=tire_supplier.id, amount_cents=1000, actor_user_id=clerk.id
    ))
    assert accounting_service.reconcile_supplier_balances() == []

    db_session.execute(update(Supplier).where(Supplier.id == tire_supplier.id).values(balance_cents=999999))
    db_session.commit()

    drifts = accounting_service.reconcile_supplier_balances()
    assert drifts == [{
        "supplier_id": tire_supplier.id,
        "name": "Roadgrip Tyres",
        "balance_cents": 999999,
        "ledger_balance_cents": 1000,
    }]

    accounting_service.reconcile_supplier_balances(fix=True)
    db_session.expire_all()
    assert db_session.get(Supplier, tire_supplier.id).balance_cents == 1000
    assert accounting_service.reconcile_supplier_balances() == []


def test_every_posted_transaction_balances(db_session, tire_supplier, clerk):
    for amount in (1, 999, 250000):
        accounting_service.post_receipt_financials(ReceiptEvent(
            kind=RECEIPT_PURCHASE, supplier_id=tire_supplier.id, amount_cents=amount, actor_user_id=clerk.id
        ))

    assert accounting_service.find_unbalanced_transactions() == []
    assert accounting_service.compute_ledger_balance(tire_supplier.id) == 251000
