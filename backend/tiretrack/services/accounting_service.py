# Overview: Service-layer operations for financial posting; double-entry transactions and supplier ledger.

"""
Financial Posting Engine

WHY: Every receipt of goods or retread services creates a liability to the
supplier and an inventory asset of the same value. Both the general journal
and the supplier sub-ledger must reflect it, in the same transaction as the
receipt itself.

POSTING RULES:
- Receipt (PURCHASE or RETREAD): debit Inventory, credit Accounts Payable;
  supplier ledger PURCHASE / RETREAD_SERVICE; balance += amount
- Supplier payment: debit Accounts Payable, credit Cash;
  supplier ledger PAYMENT; balance -= amount

INVARIANTS:
- Every transaction's entries balance exactly (integer cents, so no rounding
  happens after posting).
- Supplier.balance_cents == signed sum of the supplier's ledger entries. The
  balance only moves by relative deltas next to the ledger entry.
- A GRN or retread receipt is posted at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func, update

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import (
    AccountingTransaction,
    AccountType,
    ChartOfAccount,
    JournalEntry,
    Supplier,
    SupplierLedgerEntry,
    SupplierLedgerEntryType,
    TransactionStatus,
    TransactionType,
)
from ..time_utils import utcnow
from . import document_service
from .activity_service import append_activity_event
from .concurrency import run_in_transaction


RECEIPT_PURCHASE = "PURCHASE"
RECEIPT_RETREAD = "RETREAD"

RECEIPT_LEDGER_TYPES = {
    RECEIPT_PURCHASE: SupplierLedgerEntryType.PURCHASE,
    RECEIPT_RETREAD: SupplierLedgerEntryType.RETREAD_SERVICE,
}

# (code, name, type, normal balance)
DEFAULT_CHART_OF_ACCOUNTS = [
    ("1000", "Cash", AccountType.ASSET, "DEBIT"),
    ("1100", "Accounts Receivable", AccountType.ASSET, "DEBIT"),
    ("1200", "Inventory", AccountType.ASSET, "DEBIT"),
    ("1300", "Prepaid Expenses", AccountType.ASSET, "DEBIT"),
    ("2000", "Accounts Payable", AccountType.LIABILITY, "CREDIT"),
    ("2100", "Accrued Expenses", AccountType.LIABILITY, "CREDIT"),
    ("2200", "Tax Payable", AccountType.LIABILITY, "CREDIT"),
    ("3000", "Owner's Equity", AccountType.EQUITY, "CREDIT"),
    ("3100", "Retained Earnings", AccountType.EQUITY, "CREDIT"),
    ("4000", "Sales Revenue", AccountType.REVENUE, "CREDIT"),
    ("4100", "Service Revenue", AccountType.REVENUE, "CREDIT"),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE, "DEBIT"),
    ("5100", "Purchases", AccountType.EXPENSE, "DEBIT"),
    ("5200", "Shipping Expense", AccountType.EXPENSE, "DEBIT"),
    ("5300", "Retread Service Cost", AccountType.EXPENSE, "DEBIT"),
]


@dataclass(frozen=True)
class ReceiptEvent:
    """A completed receipt with a known total cost, ready to post."""
    kind: str
    supplier_id: int
    amount_cents: int
    actor_user_id: int
    occurred_at: datetime | None = None
    reference_number: str | None = None
    description: str | None = None
    po_id: int | None = None
    grn_id: int | None = None
    retread_order_id: int | None = None
    retread_receipt_id: int | None = None


def _require_amount(amount_cents) -> int:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError(
            "amount_cents must be a positive integer",
            details={"amount_cents": amount_cents},
        )
    return amount_cents


def _get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found", entity_type="supplier", entity_id=supplier_id)
    return supplier


def ensure_chart_of_accounts() -> int:
    """
    Insert any missing default accounts (caller's transaction).

    Safe to call repeatedly (idempotent). Returns the number of accounts created.
    """
    existing = {code for (code,) in db.session.query(ChartOfAccount.account_code).all()}
    created = 0
    for code, name, account_type, normal_balance in DEFAULT_CHART_OF_ACCOUNTS:
        if code in existing:
            continue
        db.session.add(ChartOfAccount(
            account_code=code,
            account_name=name,
            account_type=account_type,
            normal_balance=normal_balance,
        ))
        created += 1
    if created:
        db.session.flush()
    return created


def seed_chart_of_accounts() -> int:
    return run_in_transaction(ensure_chart_of_accounts)


def _create_transaction(
    *,
    transaction_type: TransactionType,
    number_kind: tuple[str, str],
    amount_cents: int,
    debit_account: str,
    credit_account: str,
    actor_user_id: int,
    occurred_at: datetime,
    description: str | None,
    reference_number: str | None,
    supplier_id: int,
    **references,
) -> AccountingTransaction:
    ensure_chart_of_accounts()

    tx = AccountingTransaction(
        transaction_number=document_service.allocate(number_kind, at=occurred_at),
        transaction_type=transaction_type,
        status=TransactionStatus.POSTED,
        transaction_date=occurred_at.date(),
        posted_at=utcnow(),
        description=description,
        reference_number=reference_number,
        total_amount_cents=amount_cents,
        currency=current_app.config.get("CURRENCY", "USD"),
        supplier_id=supplier_id,
        created_by_user_id=actor_user_id,
        **references,
    )
    tx.entries.append(JournalEntry(account_code=debit_account, debit_cents=amount_cents, credit_cents=0, description=description))
    tx.entries.append(JournalEntry(account_code=credit_account, debit_cents=0, credit_cents=amount_cents, description=description))

    if not tx.is_balanced:
        raise ValidationError(
            "Journal entries do not balance",
            entity_type="accounting_transaction",
            details={"debit": tx.total_debit_cents, "credit": tx.total_credit_cents},
        )

    db.session.add(tx)
    db.session.flush()
    return tx


def _append_supplier_ledger(
    *,
    supplier_id: int,
    entry_type: SupplierLedgerEntryType,
    amount_cents: int,
    tx: AccountingTransaction,
    actor_user_id: int,
    description: str | None,
    reference_number: str | None,
    po_id: int | None = None,
    grn_id: int | None = None,
    retread_order_id: int | None = None,
) -> SupplierLedgerEntry:
    entry = SupplierLedgerEntry(
        supplier_id=supplier_id,
        entry_date=tx.transaction_date,
        entry_type=entry_type,
        amount_cents=amount_cents,
        description=description,
        reference_number=reference_number,
        po_id=po_id,
        grn_id=grn_id,
        retread_order_id=retread_order_id,
        accounting_transaction_id=tx.id,
        created_by_user_id=actor_user_id,
    )
    db.session.add(entry)

    signed = -amount_cents if entry_type == SupplierLedgerEntryType.PAYMENT else amount_cents
    db.session.execute(
        update(Supplier)
        .where(Supplier.id == supplier_id)
        .values(balance_cents=Supplier.balance_cents + signed)
        .execution_options(synchronize_session=False)
    )
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is not None:
        db.session.expire(supplier, ["balance_cents"])
    db.session.flush()
    return entry


def post_receipt(event: ReceiptEvent) -> AccountingTransaction:
    """
    Post a receipt event inside the caller's transaction.

    Used by the purchasing and retread workflows so the posting commits (or
    rolls back) together with the tires, movements and stock deltas.

    Raises:
        ValidationError: Unknown kind, non-positive amount, missing actor
        NotFoundError: Unknown supplier
        StateConflictError: The GRN / retread receipt was already posted
    """
    ledger_type = RECEIPT_LEDGER_TYPES.get(event.kind)
    if ledger_type is None:
        raise ValidationError(
            f"Unknown receipt kind: {event.kind}",
            details={"kind": event.kind},
        )
    amount = _require_amount(event.amount_cents)
    if event.actor_user_id is None:
        raise ValidationError("actor_user_id is required for postings")
    _get_supplier(event.supplier_id)

    if event.grn_id is not None:
        existing = db.session.query(AccountingTransaction.id).filter_by(grn_id=event.grn_id).first()
        if existing:
            raise StateConflictError(
                f"GRN {event.grn_id} is already posted",
                entity_type="goods_received_note",
                entity_id=event.grn_id,
                details={"accounting_transaction_id": existing[0]},
            )
    if event.retread_receipt_id is not None:
        existing = db.session.query(AccountingTransaction.id).filter_by(retread_receipt_id=event.retread_receipt_id).first()
        if existing:
            raise StateConflictError(
                f"Retread receipt {event.retread_receipt_id} is already posted",
                entity_type="retread_receipt",
                entity_id=event.retread_receipt_id,
                details={"accounting_transaction_id": existing[0]},
            )

    occurred_at = event.occurred_at or utcnow()
    description = event.description or (
        "Tire purchase receipt" if event.kind == RECEIPT_PURCHASE else "Retread service receipt"
    )
    config = current_app.config

    tx = _create_transaction(
        transaction_type=TransactionType.PURCHASE_INVOICE,
        number_kind=document_service.PURCHASE_INVOICE,
        amount_cents=amount,
        debit_account=config.get("INVENTORY_ACCOUNT_CODE", "1200"),
        credit_account=config.get("ACCOUNTS_PAYABLE_ACCOUNT_CODE", "2000"),
        actor_user_id=event.actor_user_id,
        occurred_at=occurred_at,
        description=description,
        reference_number=event.reference_number,
        supplier_id=event.supplier_id,
        po_id=event.po_id,
        grn_id=event.grn_id,
        retread_order_id=event.retread_order_id,
        retread_receipt_id=event.retread_receipt_id,
    )
    _append_supplier_ledger(
        supplier_id=event.supplier_id,
        entry_type=ledger_type,
        amount_cents=amount,
        tx=tx,
        actor_user_id=event.actor_user_id,
        description=description,
        reference_number=event.reference_number,
        po_id=event.po_id,
        grn_id=event.grn_id,
        retread_order_id=event.retread_order_id,
    )
    return tx


def post_receipt_financials(event: ReceiptEvent) -> int:
    """
    Standalone posting of a receipt event in its own transaction.

    Returns:
        The accounting transaction id
    """
    tx = run_in_transaction(lambda: post_receipt(event))
    current_app.logger.info(
        "Posted %s %s for supplier %s: %s cents",
        event.kind, tx.transaction_number, event.supplier_id, event.amount_cents,
    )
    return tx.id


def record_supplier_payment(
    *,
    supplier_id: int,
    amount_cents: int,
    actor_user_id: int,
    payment_date: datetime | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> int:
    """
    Record a payment to a supplier.

    Debits Accounts Payable, credits Cash, appends a PAYMENT ledger entry and
    lowers the supplier balance, all in one transaction.

    Returns:
        The accounting transaction id
    """
    amount = _require_amount(amount_cents)
    if actor_user_id is None:
        raise ValidationError("actor_user_id is required for payments")

    def _op() -> AccountingTransaction:
        supplier = _get_supplier(supplier_id)
        occurred_at = payment_date or utcnow()
        description = notes or f"Payment to {supplier.name}"
        config = current_app.config

        tx = _create_transaction(
            transaction_type=TransactionType.PAYMENT,
            number_kind=document_service.SUPPLIER_PAYMENT,
            amount_cents=amount,
            debit_account=config.get("ACCOUNTS_PAYABLE_ACCOUNT_CODE", "2000"),
            credit_account=config.get("CASH_ACCOUNT_CODE", "1000"),
            actor_user_id=actor_user_id,
            occurred_at=occurred_at,
            description=description,
            reference_number=reference_number,
            supplier_id=supplier.id,
        )
        _append_supplier_ledger(
            supplier_id=supplier.id,
            entry_type=SupplierLedgerEntryType.PAYMENT,
            amount_cents=amount,
            tx=tx,
            actor_user_id=actor_user_id,
            description=description,
            reference_number=reference_number,
        )
        append_activity_event(
            event_type="supplier.paid",
            entity_type="supplier",
            entity_id=supplier.id,
            actor_user_id=actor_user_id,
            note=f"{tx.transaction_number}: {amount} cents",
        )
        return tx

    tx = run_in_transaction(_op)
    current_app.logger.info("Supplier %s paid %s cents (%s)", supplier_id, amount, tx.transaction_number)
    return tx.id


def get_transaction(transaction_id: int) -> AccountingTransaction:
    tx = db.session.get(AccountingTransaction, transaction_id)
    if not tx:
        raise NotFoundError(
            f"Accounting transaction {transaction_id} not found",
            entity_type="accounting_transaction",
            entity_id=transaction_id,
        )
    return tx


def _signed_amount():
    return case(
        (SupplierLedgerEntry.entry_type == SupplierLedgerEntryType.PAYMENT, -SupplierLedgerEntry.amount_cents),
        else_=SupplierLedgerEntry.amount_cents,
    )


def compute_ledger_balance(supplier_id: int) -> int:
    """Balance recomputed from the supplier's ledger entries."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_amount()), 0))
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .scalar()
    )
    return int(total or 0)


def get_supplier_balance(supplier_id: int) -> dict:
    supplier = _get_supplier(supplier_id)
    return {
        "supplier_id": supplier.id,
        "balance_cents": supplier.balance_cents,
        "ledger_balance_cents": compute_ledger_balance(supplier.id),
    }


def get_supplier_statement(supplier_id: int) -> list[dict]:
    """Ledger entries oldest first, each with the running balance after it."""
    _get_supplier(supplier_id)
    entries = (
        db.session.query(SupplierLedgerEntry)
        .filter(SupplierLedgerEntry.supplier_id == supplier_id)
        .order_by(SupplierLedgerEntry.id.asc())
        .all()
    )
    running = 0
    rows = []
    for entry in entries:
        running += entry.signed_amount_cents
        row = entry.to_dict()
        row["running_balance_cents"] = running
        rows.append(row)
    return rows


def find_supplier_balance_drift() -> list[dict]:
    ledger_totals = dict(
        db.session.query(SupplierLedgerEntry.supplier_id, func.sum(_signed_amount()))
        .group_by(SupplierLedgerEntry.supplier_id)
        .all()
    )
    drifts = []
    for supplier in db.session.query(Supplier).order_by(Supplier.id).all():
        expected = int(ledger_totals.get(supplier.id) or 0)
        if supplier.balance_cents != expected:
            drifts.append({
                "supplier_id": supplier.id,
                "name": supplier.name,
                "balance_cents": supplier.balance_cents,
                "ledger_balance_cents": expected,
            })
    return drifts


def reconcile_supplier_balances(*, fix: bool = False) -> list[dict]:
    """
    Compare every supplier balance with its ledger.

    With fix=True, balances are reset to the ledger total (the ledger is
    authoritative).
    """
    def _op() -> list[dict]:
        drifts = find_supplier_balance_drift()
        for drift in drifts:
            current_app.logger.warning(
                "Supplier %s balance drift: stored=%s ledger=%s",
                drift["supplier_id"], drift["balance_cents"], drift["ledger_balance_cents"],
            )
            if fix:
                supplier = db.session.get(Supplier, drift["supplier_id"])
                supplier.balance_cents = drift["ledger_balance_cents"]
        return drifts

    if not fix:
        return find_supplier_balance_drift()
    return run_in_transaction(_op)


def find_unbalanced_transactions() -> list[dict]:
    rows = (
        db.session.query(
            AccountingTransaction.id,
            AccountingTransaction.transaction_number,
            func.coalesce(func.sum(JournalEntry.debit_cents), 0),
            func.coalesce(func.sum(JournalEntry.credit_cents), 0),
            func.count(JournalEntry.id),
        )
        .outerjoin(JournalEntry, JournalEntry.transaction_id == AccountingTransaction.id)
        .group_by(AccountingTransaction.id, AccountingTransaction.transaction_number)
        .all()
    )
    return [
        {
            "transaction_id": tx_id,
            "transaction_number": number,
            "debit_cents": int(debit),
            "credit_cents": int(credit),
            "entry_count": count,
        }
        for tx_id, number, debit, credit, count in rows
        if debit != credit or count < 2
    ]
