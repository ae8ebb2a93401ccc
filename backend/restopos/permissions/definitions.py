# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "CREATE_ORDER",
        "Create Order",
        "Take POS orders (stock is reserved on creation)",
        PermissionCategory.ORDERS,
    ),
    (
        "VIEW_ORDERS",
        "View Orders",
        "List and open orders of the caller's branch",
        PermissionCategory.ORDERS,
    ),
    (
        "UPDATE_ORDER_STATUS",
        "Update Order Status",
        "Move orders through the fulfilment workflow",
        PermissionCategory.ORDERS,
    ),
    (
        "VOID_ORDER",
        "Void Order",
        "Cancel orders and restore their stock",
        PermissionCategory.ORDERS,
    ),
]


# -- KITCHEN --

KITCHEN_PERMISSIONS = [
    (
        "VIEW_KITCHEN",
        "View Kitchen Queue",
        "See CONFIRMED/COOKING orders on the kitchen display",
        PermissionCategory.KITCHEN,
    ),
    (
        "KITCHEN_UPDATE",
        "Kitchen Update",
        "Start cooking and mark orders ready",
        PermissionCategory.KITCHEN,
    ),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "TAKE_PAYMENT",
        "Take Payment",
        "Record payment for an order",
        PermissionCategory.PAYMENTS,
    ),
]


# -- TABLES --

TABLE_PERMISSIONS = [
    (
        "VIEW_TABLES",
        "View Tables",
        "See table occupancy",
        PermissionCategory.TABLES,
    ),
    (
        "MANAGE_TABLES",
        "Manage Tables",
        "Reserve, release and reset tables",
        PermissionCategory.TABLES,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "MANAGE_INVENTORY",
        "Manage Inventory",
        "Restock, record wastage, adjust stock and read the inventory log",
        PermissionCategory.INVENTORY,
    ),
]


# Combined list of all permissions (preserves original ordering)
PERMISSION_DEFINITIONS = (
    ORDER_PERMISSIONS
    + KITCHEN_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + TABLE_PERMISSIONS
    + INVENTORY_PERMISSIONS
)
