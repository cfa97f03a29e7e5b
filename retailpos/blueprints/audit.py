"""Audit log blueprint (read-only)."""

from flask import Blueprint, request, jsonify
from retailpos.database import get_session
from retailpos.decorators.permissions import manager_or_admin
from retailpos.exceptions import ValidationError
from retailpos.services.audit_service import get_audit_logs
from retailpos.utils.request_args import pagination_meta, parse_date_arg, parse_pagination


audit_bp = Blueprint('audit', __name__, url_prefix='/api/audit-logs')


@audit_bp.route('', methods=['GET'])
@manager_or_admin
def list_audit_logs():
    page, limit = parse_pagination(request.args)

    user_id = request.args.get('userId')
    if user_id:
        try:
            user_id = int(user_id)
        except ValueError:
            raise ValidationError('userId must be an integer')

    logs, total = get_audit_logs(
        get_session(),
        entity=request.args.get('entity'),
        entity_id=request.args.get('entityId'),
        user_id=user_id or None,
        action=request.args.get('action'),
        start_date=parse_date_arg(request.args, 'startDate'),
        end_date=parse_date_arg(request.args, 'endDate'),
        limit=limit,
        offset=(page - 1) * limit,
    )
    return jsonify({
        'status': 'success',
        'logs': [log.to_dict() for log in logs],
        'pagination': pagination_meta(page, limit, total),
    })
