"""
Permission decorators for role-based access control.
Extends require_login with role checks.
"""

from functools import wraps
from flask import g
from retailpos.exceptions import ForbiddenError, UnauthorizedError
from retailpos.models import UserRole


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('ADMIN')
        @require_role('ADMIN', 'MANAGER')

    Args:
        *allowed_roles: Role names (ADMIN, MANAGER, CASHIER)
    """
    allowed = {UserRole(role) for role in allowed_roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.get('user'):
                raise UnauthorizedError('Authentication required')

            if g.get('user_role') not in allowed:
                raise ForbiddenError('You do not have permission for this action')

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def admin_only(f):
    """Shortcut decorator for ADMIN-only routes."""
    return require_role('ADMIN')(f)


def manager_or_admin(f):
    """Shortcut decorator for MANAGER or ADMIN access."""
    return require_role('ADMIN', 'MANAGER')(f)
