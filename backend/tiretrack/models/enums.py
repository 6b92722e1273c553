"""
Status and type vocabularies.

Persisted as their string values through db.Enum(native_enum=False), so the
schema stays portable and the ORM hands back enum members, not free strings.
"""

from __future__ import annotations

import enum

from ..extensions import db


class TireStatus(str, enum.Enum):
    IN_STORE = "IN_STORE"
    ON_VEHICLE = "ON_VEHICLE"
    AWAITING_RETREAD = "AWAITING_RETREAD"
    AT_RETREAD_SUPPLIER = "AT_RETREAD_SUPPLIER"
    USED_STORE = "USED_STORE"
    DISPOSED = "DISPOSED"
    SCRAP = "SCRAP"


# Statuses counted by the stock aggregator
IN_STOCK_STATUSES = frozenset({TireStatus.IN_STORE, TireStatus.USED_STORE})
TERMINAL_STATUSES = frozenset({TireStatus.DISPOSED, TireStatus.SCRAP})


class TireKind(str, enum.Enum):
    NEW = "NEW"
    RETREADED = "RETREADED"


class MovementType(str, enum.Enum):
    PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
    RETREAD_RECEIPT = "RETREAD_RECEIPT"
    INSTALL = "INSTALL"
    REMOVAL = "REMOVAL"
    MARK_FOR_RETREAD = "MARK_FOR_RETREAD"
    RETREAD_SENT = "RETREAD_SENT"
    RETREAD_REJECTED = "RETREAD_REJECTED"
    DISPOSAL = "DISPOSAL"
    SCRAP = "SCRAP"
    DISPOSAL_REVERSAL = "DISPOSAL_REVERSAL"


class DisposalMethod(str, enum.Enum):
    SALE = "SALE"
    RECYCLING = "RECYCLING"
    RETURNED_TO_SUPPLIER = "RETURNED_TO_SUPPLIER"
    LANDFILL = "LANDFILL"
    SCRAP = "SCRAP"


class PurchaseOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CANCELLED = "CANCELLED"
    CLOSED = "CLOSED"


class GoodsReceivedNoteStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"


class RetreadOrderStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CANCELLED = "CANCELLED"


class RetreadItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    AT_RETREADER = "AT_RETREADER"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class RetreadOutcome(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class SupplierKind(str, enum.Enum):
    TIRE = "TIRE"
    RETREAD = "RETREAD"
    SERVICE = "SERVICE"
    OTHER = "OTHER"


class SupplierLedgerEntryType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    PAYMENT = "PAYMENT"
    RETREAD_SERVICE = "RETREAD_SERVICE"


class TransactionType(str, enum.Enum):
    PURCHASE_INVOICE = "PURCHASE_INVOICE"
    PAYMENT = "PAYMENT"


class TransactionStatus(str, enum.Enum):
    POSTED = "POSTED"


class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


def enum_type(enum_cls) -> db.Enum:
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


def enum_value(value):
    """Serialize an enum member (or None) for to_dict payloads."""
    return getattr(value, "value", value)
