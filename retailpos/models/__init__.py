"""Models package - exports all SQLAlchemy models."""
from retailpos.models.user import User, UserRole
from retailpos.models.product import Product
from retailpos.models.customer import Customer
from retailpos.models.order import Order, OrderStatus, PaymentMethod
from retailpos.models.order_item import OrderItem
from retailpos.models.stock_movement import StockMovement, StockMovementType
from retailpos.models.setting import Setting
from retailpos.models.audit_log import AuditLog, AuditAction

__all__ = [
    'User', 'UserRole',
    'Product', 'Customer',
    'Order', 'OrderStatus', 'PaymentMethod', 'OrderItem',
    'StockMovement', 'StockMovementType',
    'Setting',
    'AuditLog', 'AuditAction',
]
