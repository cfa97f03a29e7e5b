"""Order item model."""
from sqlalchemy import Column, BigInteger, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from retailpos.database import Base, BigId


class OrderItem(Base):
    """One sold line of an order, priced as charged."""

    __tablename__ = 'order_item'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_item_quantity_positive'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    order_id = Column(BigId, ForeignKey('pos_order.id'), nullable=False, index=True)
    product_id = Column(BigId, ForeignKey('product.id'), nullable=False)
    quantity = Column(BigInteger, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    unit_cost = Column(Numeric(12, 2), nullable=True)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'product': {
                'id': self.product.id,
                'name': self.product.name,
                'sku': self.product.sku,
            } if self.product else None,
            'quantity': self.quantity,
            'unitPrice': str(self.unit_price),
            'discount': str(self.discount),
            'totalPrice': str(self.total_price),
        }
