"""User model - staff accounts that operate the register."""
from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from retailpos.database import Base, BigId
import enum


class UserRole(str, enum.Enum):
    """Staff roles, highest privilege first."""
    ADMIN = 'ADMIN'
    MANAGER = 'MANAGER'
    CASHIER = 'CASHIER'


class User(Base):
    """Staff user (operator of a checkout)."""

    __tablename__ = 'app_user'

    id = Column(BigId, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default='')
    last_name = Column(String(100), nullable=False, default='')
    role = Column(Enum(UserRole, name='user_role'), nullable=False, default=UserRole.CASHIER)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_summary(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'role': self.role.value if self.role else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
