"""Middleware for authentication context."""
from functools import wraps
from flask import session, g, current_app
from retailpos.database import get_session
from retailpos.exceptions import UnauthorizedError
from retailpos.models import User


def load_user():
    """
    Load the current user into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_id and g.user_role when the
    session cookie points at an active user.
    """
    g.user = None
    g.user_id = None
    g.user_role = None

    try:
        user_id = session.get('user_id')
        if not user_id:
            return
        db_session = get_session()
        if not db_session:
            return

        user = db_session.query(User).filter_by(id=user_id, active=True).first()
        if user:
            g.user = user
            g.user_id = user.id
            g.user_role = user.role
        else:
            # Deactivated or deleted user: drop the stale cookie
            session.pop('user_id', None)
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_user: {e}")


def require_login(f):
    """
    Decorator: Require an authenticated user.

    Raises UnauthorizedError (JSON 401) so core services are only ever invoked
    with a resolved operator identity.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError('Authentication required')
        return f(*args, **kwargs)
    return decorated_function
