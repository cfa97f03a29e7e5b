"""Stock Movement model."""
from sqlalchemy import Column, BigInteger, String, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from retailpos.database import Base, BigId
import enum


class StockMovementType(str, enum.Enum):
    """Stock movement type enum."""
    IN = 'IN'
    OUT = 'OUT'
    ADJUSTMENT = 'ADJUSTMENT'


class StockMovement(Base):
    """
    Append-only record of one change to a product's stock quantity.

    previous_stock/new_stock are the ledger levels observed by the guarded
    update that applied ``quantity``; new_stock - previous_stock == quantity.
    """

    __tablename__ = 'stock_movement'

    id = Column(BigId, primary_key=True, autoincrement=True)
    product_id = Column(BigId, ForeignKey('product.id'), nullable=False, index=True)
    type = Column(Enum(StockMovementType, name='stock_movement_type'), nullable=False)
    quantity = Column(BigInteger, nullable=False)
    previous_stock = Column(BigInteger, nullable=False)
    new_stock = Column(BigInteger, nullable=False)
    reference = Column(String(64), nullable=True, index=True)
    note = Column(Text, nullable=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product', back_populates='stock_movements')

    def __repr__(self):
        return (f"<StockMovement(id={self.id}, product_id={self.product_id}, "
                f"type={self.type.value}, {self.previous_stock}->{self.new_stock})>")

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'type': self.type.value,
            'quantity': self.quantity,
            'previousStock': self.previous_stock,
            'newStock': self.new_stock,
            'reference': self.reference,
            'note': self.note,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
