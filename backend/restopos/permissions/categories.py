# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ORDERS = "ORDERS"
    KITCHEN = "KITCHEN"
    PAYMENTS = "PAYMENTS"
    TABLES = "TABLES"
    INVENTORY = "INVENTORY"
