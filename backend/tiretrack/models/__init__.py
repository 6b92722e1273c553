from .enums import (
    TireStatus,
    TireKind,
    MovementType,
    DisposalMethod,
    PurchaseOrderStatus,
    GoodsReceivedNoteStatus,
    RetreadOrderStatus,
    RetreadItemStatus,
    RetreadOutcome,
    SupplierKind,
    SupplierLedgerEntryType,
    TransactionType,
    TransactionStatus,
    AccountType,
    IN_STOCK_STATUSES,
    TERMINAL_STATUSES,
    enum_value,
)
from .auth import User, UserPermission
from .documents import DocumentSequence, ActivityEvent
from .tires import Tire, TireMovement, Vehicle, WheelPosition, TireAssignment
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem, GoodsReceivedNote, GoodsReceivedNoteItem
from .retreads import RetreadOrder, RetreadOrderItem, RetreadReceipt, RetreadReceiptItem
from .accounting import ChartOfAccount, AccountingTransaction, JournalEntry, SupplierLedgerEntry
from .inventory import InventoryCatalogItem

__all__ = [
    'TireStatus', 'TireKind', 'MovementType', 'DisposalMethod',
    'PurchaseOrderStatus', 'GoodsReceivedNoteStatus',
    'RetreadOrderStatus', 'RetreadItemStatus', 'RetreadOutcome',
    'SupplierKind', 'SupplierLedgerEntryType',
    'TransactionType', 'TransactionStatus', 'AccountType',
    'IN_STOCK_STATUSES', 'TERMINAL_STATUSES', 'enum_value',
    'User', 'UserPermission',
    'DocumentSequence', 'ActivityEvent',
    'Tire', 'TireMovement', 'Vehicle', 'WheelPosition', 'TireAssignment',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem', 'GoodsReceivedNote', 'GoodsReceivedNoteItem',
    'RetreadOrder', 'RetreadOrderItem', 'RetreadReceipt', 'RetreadReceiptItem',
    'ChartOfAccount', 'AccountingTransaction', 'JournalEntry', 'SupplierLedgerEntry',
    'InventoryCatalogItem',
]
