"""
Audit Log model for tracking critical actions in the system.
"""
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey
from datetime import datetime, timezone
import enum

from retailpos.database import Base, BigId


class AuditAction(str, enum.Enum):
    """Enumeration of auditable actions."""
    # Authentication
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"

    # Catalog
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DEACTIVATED = "PRODUCT_DEACTIVATED"
    STOCK_ADJUSTED = "STOCK_ADJUSTED"

    # Customers
    CUSTOMER_CREATED = "CUSTOMER_CREATED"

    # Checkout
    CHECKOUT_COMPLETED = "CHECKOUT_COMPLETED"
    CHECKOUT_REJECTED = "CHECKOUT_REJECTED"

    # Settings
    SETTINGS_CHANGED = "SETTINGS_CHANGED"


def _utcnow():
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """
    Append-only audit entry. No foreign key to the audited entity so entries
    outlive (and never block) the rows they describe.
    """
    __tablename__ = 'audit_log'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity = Column(String(50), nullable=False, index=True)  # e.g., 'order', 'product'
    entity_id = Column(String(64), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} on {self.entity} {self.entity_id} by user {self.user_id}>"

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'action': self.action,
            'entity': self.entity,
            'entityId': self.entity_id,
            'oldValues': self.old_values,
            'newValues': self.new_values,
            'ipAddress': self.ip_address,
            'userAgent': self.user_agent,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
