"""
Customers blueprint.
Loyalty member lookup and registration.
"""

from flask import Blueprint, request, g, jsonify
from retailpos.database import UnitOfWork, get_session
from retailpos.middleware import require_login
from retailpos.models import AuditAction
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.customer_service import (
    create_customer, get_customer, parse_customer_payload, search_customers,
)
from retailpos.utils.request_args import pagination_meta, parse_pagination


customers_bp = Blueprint('customers', __name__, url_prefix='/api/customers')


@customers_bp.route('', methods=['GET'])
@require_login
def list_customers():
    page, limit = parse_pagination(request.args)
    customers, total = search_customers(get_session(), search=(request.args.get('search') or '').strip(),
                                        page=page, limit=limit)
    return jsonify({
        'status': 'success',
        'customers': [c.to_dict() for c in customers],
        'pagination': pagination_meta(page, limit, total),
    })


@customers_bp.route('', methods=['POST'])
@require_login
def create_customer_view():
    values = parse_customer_payload(request.get_json(silent=True))
    db_session = get_session()

    with UnitOfWork(db_session):
        customer = create_customer(db_session, **values)

    AuditRecorder(get_session).record(
        AuditAction.CUSTOMER_CREATED, 'customer', entity_id=customer.id, user_id=g.user_id,
        new_values={'memberCode': customer.member_code, 'firstName': customer.first_name},
    )
    return jsonify({'status': 'success', 'customer': customer.to_dict()}), 201


@customers_bp.route('/<int:customer_id>', methods=['GET'])
@require_login
def customer_detail(customer_id: int):
    customer = get_customer(get_session(), customer_id)
    return jsonify({'status': 'success', 'customer': customer.to_dict()})
