from .auth import User, UserPermission
from .security import SecurityEvent
from .catalog import Item
from .cart import CartItem
from .orders import (
    Order,
    OrderItem,
    ReconciliationRecord,
    RECONCILIATION_PENDING,
    RECONCILIATION_RESOLVED,
)

__all__ = [
    'User', 'UserPermission', 'SecurityEvent',
    'Item', 'CartItem',
    'Order', 'OrderItem', 'ReconciliationRecord',
    'RECONCILIATION_PENDING', 'RECONCILIATION_RESOLVED',
]
