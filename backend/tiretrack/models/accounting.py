from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .enums import (
    AccountType,
    SupplierLedgerEntryType,
    TransactionStatus,
    TransactionType,
    enum_type,
    enum_value,
)


class ChartOfAccount(db.Model):
    """Flat chart of accounts used by the posting engine."""
    __tablename__ = "chart_of_accounts"
    __table_args__ = (
        db.UniqueConstraint("account_code", name="uq_chart_of_accounts_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_code = db.Column(db.String(16), nullable=False)
    account_name = db.Column(db.String(128), nullable=False)
    account_type = db.Column(enum_type(AccountType), nullable=False)
    # DEBIT or CREDIT
    normal_balance = db.Column(db.String(8), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_code": self.account_code,
            "account_name": self.account_name,
            "account_type": enum_value(self.account_type),
            "normal_balance": self.normal_balance,
            "is_active": self.is_active,
        }


class AccountingTransaction(db.Model):
    """
    Double-entry transaction header.

    INVARIANT: sum(debit_cents) == sum(credit_cents) across its entries, and
    total_amount_cents equals either side. Transactions are posted once and
    never edited.
    """
    __tablename__ = "accounting_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_accounting_transactions_number"),
        db.Index("ix_accounting_transactions_supplier_date", "supplier_id", "transaction_date"),
        db.CheckConstraint("total_amount_cents > 0", name="ck_accounting_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(32), nullable=False)
    transaction_type = db.Column(enum_type(TransactionType), nullable=False, index=True)
    status = db.Column(enum_type(TransactionStatus), nullable=False, default=TransactionStatus.POSTED)

    transaction_date = db.Column(db.Date, nullable=False)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False)

    description = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=True, unique=True)
    retread_order_id = db.Column(db.Integer, db.ForeignKey("retread_orders.id"), nullable=True)
    retread_receipt_id = db.Column(db.Integer, db.ForeignKey("retread_receipts.id"), nullable=True, unique=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    entries = db.relationship(
        "JournalEntry",
        backref="transaction",
        order_by="JournalEntry.id",
        cascade="all, delete-orphan",
    )

    @property
    def total_debit_cents(self) -> int:
        return sum(e.debit_cents for e in self.entries)

    @property
    def total_credit_cents(self) -> int:
        return sum(e.credit_cents for e in self.entries)

    @property
    def is_balanced(self) -> bool:
        return self.total_debit_cents == self.total_credit_cents

    def to_dict(self, include_entries: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "transaction_type": enum_value(self.transaction_type),
            "status": enum_value(self.status),
            "transaction_date": to_iso_date(self.transaction_date),
            "posted_at": to_utc_z(self.posted_at),
            "description": self.description,
            "reference_number": self.reference_number,
            "total_amount_cents": self.total_amount_cents,
            "currency": self.currency,
            "supplier_id": self.supplier_id,
            "po_id": self.po_id,
            "grn_id": self.grn_id,
            "retread_order_id": self.retread_order_id,
            "retread_receipt_id": self.retread_receipt_id,
            "created_by_user_id": self.created_by_user_id,
        }
        if include_entries:
            data["entries"] = [e.to_dict() for e in self.entries]
        return data


class JournalEntry(db.Model):
    """One side of a double-entry posting. Exactly one of debit/credit is non-zero."""
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_journal_entries_nonneg"),
        db.CheckConstraint(
            "(debit_cents = 0 AND credit_cents > 0) OR (credit_cents = 0 AND debit_cents > 0)",
            name="ck_journal_entries_one_side",
        ),
        db.Index("ix_journal_entries_account", "account_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("accounting_transactions.id"), nullable=False, index=True)

    account_code = db.Column(db.String(16), db.ForeignKey("chart_of_accounts.account_code"), nullable=False)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("ChartOfAccount")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "account_code": self.account_code,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "description": self.description,
        }


class SupplierLedgerEntry(db.Model):
    """
    Append-only supplier sub-ledger.

    amount_cents is always positive; the sign comes from entry_type
    (PURCHASE and RETREAD_SERVICE raise the balance, PAYMENT lowers it).
    """
    __tablename__ = "supplier_ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_supplier_ledger_amount_positive"),
        db.Index("ix_supplier_ledger_supplier_date", "supplier_id", "entry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    entry_type = db.Column(enum_type(SupplierLedgerEntryType), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    description = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)

    po_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True)
    grn_id = db.Column(db.Integer, db.ForeignKey("goods_received_notes.id"), nullable=True)
    retread_order_id = db.Column(db.Integer, db.ForeignKey("retread_orders.id"), nullable=True)
    accounting_transaction_id = db.Column(db.Integer, db.ForeignKey("accounting_transactions.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("ledger_entries", lazy="dynamic"))

    @property
    def signed_amount_cents(self) -> int:
        if self.entry_type == SupplierLedgerEntryType.PAYMENT:
            return -self.amount_cents
        return self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "entry_date": to_iso_date(self.entry_date),
            "entry_type": enum_value(self.entry_type),
            "amount_cents": self.amount_cents,
            "signed_amount_cents": self.signed_amount_cents,
            "description": self.description,
            "reference_number": self.reference_number,
            "po_id": self.po_id,
            "grn_id": self.grn_id,
            "retread_order_id": self.retread_order_id,
            "accounting_transaction_id": self.accounting_transaction_id,
            "created_by_user_id": self.created_by_user_id,
        }
