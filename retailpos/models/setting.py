"""Setting model - key/value store for shop-wide parameters."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from retailpos.database import Base, BigId


class Setting(Base):
    """Single configuration value, e.g. tax_rate = '10'."""

    __tablename__ = 'setting'

    id = Column(BigId, primary_key=True, autoincrement=True)
    key = Column(String(100), nullable=False, unique=True)
    value = Column(Text, nullable=False)
    description = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Setting(key='{self.key}', value='{self.value}')>"

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'description': self.description,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
