"""Order model."""
from sqlalchemy import Column, String, Text, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from retailpos.database import Base, BigId
import enum


class OrderStatus(str, enum.Enum):
    """Order status. Checkout only ever creates COMPLETED orders."""
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    REFUNDED = 'REFUNDED'


class PaymentMethod(str, enum.Enum):
    """Tender type."""
    CASH = 'CASH'
    CARD = 'CARD'
    DIGITAL = 'DIGITAL'


def _money(value):
    return str(value) if value is not None else None


class Order(Base):
    """Completed sale with its items."""

    __tablename__ = 'pos_order'

    id = Column(BigId, primary_key=True, autoincrement=True)
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.COMPLETED)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)

    subtotal = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(6, 3), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False)
    change_amount = Column(Numeric(12, 2), nullable=False)
    profit = Column(Numeric(12, 2), nullable=False)
    note = Column(Text, nullable=True)

    customer_id = Column(BigId, ForeignKey('customer.id'), nullable=True, index=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    customer = relationship('Customer', back_populates='orders')
    user = relationship('User')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.id')

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', total={self.total_amount})>"

    def to_dict(self):
        return {
            'id': self.id,
            'orderNumber': self.order_number,
            'status': self.status.value if self.status else None,
            'paymentMethod': self.payment_method.value if self.payment_method else None,
            'subtotal': _money(self.subtotal),
            'discountAmount': _money(self.discount_amount),
            'taxRate': _money(self.tax_rate),
            'taxAmount': _money(self.tax_amount),
            'totalAmount': _money(self.total_amount),
            'amountPaid': _money(self.amount_paid),
            'changeAmount': _money(self.change_amount),
            'profit': _money(self.profit),
            'note': self.note,
            'customer': self.customer.to_summary() if self.customer else None,
            'user': self.user.to_summary() if self.user else None,
            'items': [item.to_dict() for item in self.items],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }
