"""
Authentication blueprint.
Handles staff login, logout and the current-user lookup. The operator identity
lives in the signed Flask session cookie.
"""

from flask import Blueprint, request, session, g, jsonify
from flask_wtf.csrf import generate_csrf
from typing import Tuple
from retailpos.database import get_session
from retailpos.middleware import require_login
from retailpos.models import AuditAction
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.auth_service import authenticate
import logging

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login() -> Tuple[object, int]:
    """Check credentials and open a session."""
    data = request.get_json(silent=True) or {}
    email = str(data.get('email') or '').strip()
    password = str(data.get('password') or '')

    db_session = get_session()
    user = authenticate(db_session, email, password)

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    AuditRecorder(get_session).record(AuditAction.USER_LOGIN, 'user', entity_id=user.id, user_id=user.id)
    logger.info(f"User {user.email} logged in")

    return jsonify({'status': 'success', 'user': user.to_summary()}), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    user_id = g.get('user_id')
    session.clear()
    if user_id:
        AuditRecorder(get_session).record(AuditAction.USER_LOGOUT, 'user', entity_id=user_id, user_id=user_id)
    return jsonify({'status': 'success'})


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    return jsonify({'status': 'success', 'user': g.user.to_summary()})


@auth_bp.route('/csrf', methods=['GET'])
def csrf_token():
    """Token for the X-CSRFToken header on state-changing requests."""
    return jsonify({'csrfToken': generate_csrf()})
