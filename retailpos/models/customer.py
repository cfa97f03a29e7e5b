"""Customer model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from retailpos.database import Base, BigId


class Customer(Base):
    """Loyalty member. Counters only grow through completed orders."""

    __tablename__ = 'customer'

    id = Column(BigId, primary_key=True, autoincrement=True)
    member_code = Column(String(32), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default='')
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    loyalty_points = Column(BigInteger, nullable=False, default=0, server_default='0')
    total_spent = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')
    visit_count = Column(BigInteger, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    orders = relationship('Order', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, member_code='{self.member_code}')>"

    def to_summary(self):
        return {
            'id': self.id,
            'memberCode': self.member_code,
            'firstName': self.first_name,
            'lastName': self.last_name,
        }

    def to_dict(self):
        data = self.to_summary()
        data.update({
            'email': self.email,
            'phone': self.phone,
            'loyaltyPoints': self.loyalty_points,
            'totalSpent': str(self.total_spent) if self.total_spent is not None else '0.00',
            'visitCount': self.visit_count,
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        })
        return data
