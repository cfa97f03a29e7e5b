"""Product model."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from retailpos.database import Base, BigId


class Product(Base):
    """Catalog product; stock_quantity is owned by the stock ledger."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock_quantity >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=False, unique=True)
    barcode = Column(String(64), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(32), nullable=False, default='piece')
    price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=True)
    stock_quantity = Column(BigInteger, nullable=False, default=0, server_default='0')
    min_stock = Column(BigInteger, nullable=False, default=0, server_default='0')
    is_taxable = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    stock_movements = relationship('StockMovement', back_populates='product',
                                   order_by='StockMovement.id.desc()', lazy='dynamic')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    @property
    def is_low_stock(self):
        """Advisory flag only; checkout never blocks on min_stock."""
        return (self.stock_quantity or 0) <= (self.min_stock or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'barcode': self.barcode,
            'name': self.name,
            'description': self.description,
            'unit': self.unit,
            'price': str(self.price) if self.price is not None else None,
            'costPrice': str(self.cost_price) if self.cost_price is not None else None,
            'stockQuantity': self.stock_quantity,
            'minStock': self.min_stock,
            'isLowStock': self.is_low_stock,
            'isTaxable': self.is_taxable,
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
