"""
Authentication service for staff users.

Handles credential checks and user creation; cookie issuance is left to the
Flask session in the auth blueprint.
"""
from retailpos.exceptions import ConflictError, UnauthorizedError, ValidationError
from retailpos.models import User, UserRole
from sqlalchemy import func
import logging
import re

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def authenticate(session, email: str, password: str) -> User:
    """Return the active user for these credentials or raise UnauthorizedError."""
    if not email or not password:
        raise UnauthorizedError('Invalid email or password')

    user = session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
    if user is None or not user.active or not user.check_password(password):
        logger.warning(f"Failed login attempt for {email}")
        raise UnauthorizedError('Invalid email or password')
    return user


def create_user(session, email: str, password: str, first_name: str = '', last_name: str = '',
                role: str = 'CASHIER') -> User:
    """Create a staff user. Caller commits."""
    email = (email or '').strip().lower()
    if not is_valid_email(email):
        raise ValidationError('Invalid email address')
    if not password or len(password) < 8:
        raise ValidationError('Password must be at least 8 characters')
    try:
        role_value = UserRole(str(role).upper())
    except ValueError:
        raise ValidationError(f'Unknown role: {role}')

    if session.query(User.id).filter(func.lower(User.email) == email).first():
        raise ConflictError('A user with this email already exists')

    user = User(email=email, first_name=first_name or '', last_name=last_name or '',
                role=role_value, active=True)
    user.set_password(password)
    session.add(user)
    session.flush()
    logger.info(f"User created: {email} ({role_value.value})")
    return user
