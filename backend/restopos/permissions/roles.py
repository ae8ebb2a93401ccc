# Overview: Default permission sets per role.

from .definitions import PERMISSION_DEFINITIONS

VALID_ROLES = ("owner", "admin", "manager", "cashier", "kitchen")

_ALL = frozenset(perm[0] for perm in PERMISSION_DEFINITIONS)

DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "owner": _ALL,
    "admin": _ALL,
    "manager": _ALL,
    "cashier": frozenset({
        "CREATE_ORDER",
        "VIEW_ORDERS",
        "UPDATE_ORDER_STATUS",
        "TAKE_PAYMENT",
        "VIEW_TABLES",
        "MANAGE_TABLES",
        "VIEW_KITCHEN",
    }),
    "kitchen": frozenset({
        "VIEW_ORDERS",
        "VIEW_KITCHEN",
        "KITCHEN_UPDATE",
    }),
}
