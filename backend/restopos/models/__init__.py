from .tenancy import Branch
from .auth import User, SessionToken
from .catalog import Product
from .inventory import InventoryLog
from .orders import Order, OrderItem, OrderItemAttribute, OrderSequence, PaymentTransaction
from .tables import DiningTable

__all__ = [
    'Branch',
    'User', 'SessionToken',
    'Product',
    'InventoryLog',
    'Order', 'OrderItem', 'OrderItemAttribute', 'OrderSequence', 'PaymentTransaction',
    'DiningTable',
]
