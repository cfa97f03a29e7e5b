"""
Settings blueprint.
Key/value store settings; the tax rate read at checkout lives here.
"""

from flask import Blueprint, request, g, jsonify
from decimal import Decimal, InvalidOperation
from retailpos.database import UnitOfWork, get_session
from retailpos.decorators.permissions import admin_only
from retailpos.exceptions import ValidationError
from retailpos.middleware import require_login
from retailpos.models import AuditAction
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.settings_service import TAX_RATE_KEY, get_setting, list_settings, set_setting


settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


def _validate_setting_value(key: str, value) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'value', 'message': 'must be a string or number'}]})
    value = str(value).strip()

    if key == TAX_RATE_KEY:
        try:
            rate = Decimal(value)
        except InvalidOperation:
            rate = None
        if rate is None or not rate.is_finite() or rate < 0 or rate > 100:
            raise ValidationError('Tax rate must be a number between 0 and 100')
        # orders store the applied rate as Numeric(6, 3)
        if rate != rate.quantize(Decimal('0.001')):
            raise ValidationError('Tax rate cannot have more than 3 decimal places')
    return value


@settings_bp.route('', methods=['GET'])
@require_login
def list_settings_view():
    return jsonify({
        'status': 'success',
        'settings': {s.key: s.value for s in list_settings(get_session())},
    })


@settings_bp.route('/<key>', methods=['PUT'])
@admin_only
def update_setting(key: str):
    data = request.get_json(silent=True) or {}
    value = _validate_setting_value(key, data.get('value'))
    description = data.get('description') if isinstance(data.get('description'), str) else None

    db_session = get_session()
    old_value = get_setting(db_session, key)
    with UnitOfWork(db_session):
        setting = set_setting(db_session, key, value, description)

    AuditRecorder(get_session).record(
        AuditAction.SETTINGS_CHANGED, 'setting', entity_id=key, user_id=g.user_id,
        old_values={'value': old_value}, new_values={'value': value},
    )
    return jsonify({'status': 'success', 'setting': setting.to_dict()})
