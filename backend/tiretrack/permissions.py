"""
Capability definitions

WHY: Approval and disposal steps must be performed by users who explicitly
hold the matching capability. Grants are flat (user -> code); role matrices
live outside this package.

Each capability is defined as: (code, name, description, category)
"""


class PermissionCategory:
    """Capability categories for display and grouping."""
    PURCHASING = "PURCHASING"
    RETREADING = "RETREADING"
    ASSETS = "ASSETS"


APPROVE_PURCHASE_ORDERS = "APPROVE_PURCHASE_ORDERS"
APPROVE_RETREAD_ORDERS = "APPROVE_RETREAD_ORDERS"
DISPOSE_TIRES = "DISPOSE_TIRES"
REVERSE_DISPOSALS = "REVERSE_DISPOSALS"


PERMISSION_DEFINITIONS = [
    (
        APPROVE_PURCHASE_ORDERS,
        "Approve Purchase Orders",
        "Move purchase orders to APPROVED (cannot approve own orders)",
        PermissionCategory.PURCHASING,
    ),
    (
        APPROVE_RETREAD_ORDERS,
        "Send Retread Orders",
        "Release retread orders and ship their tires to the retreader",
        PermissionCategory.RETREADING,
    ),
    (
        DISPOSE_TIRES,
        "Dispose Tires",
        "Authorize disposal or scrapping of tires",
        PermissionCategory.ASSETS,
    ),
    (
        REVERSE_DISPOSALS,
        "Reverse Disposals",
        "Return a disposed tire to used stock",
        PermissionCategory.ASSETS,
    ),
]

PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)
