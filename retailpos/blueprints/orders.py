"""
Orders blueprint.
Checkout (POST /api/orders), cart preview, order listing and detail.
"""

from flask import Blueprint, request, g, jsonify, current_app
from retailpos.blueprints.metrics import record_checkout
from retailpos.database import get_session
from retailpos.exceptions import PosError, ValidationError
from retailpos.middleware import require_login
from retailpos.models import OrderStatus
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.cache_service import invalidate_products_cache
from retailpos.services.checkout_service import (
    CheckoutService, parse_checkout_payload, parse_preview_payload,
)
from retailpos.services.order_service import get_order, list_orders
from retailpos.services.settings_service import SettingsAccessor
from retailpos.utils.request_args import pagination_meta, parse_date_arg, parse_pagination
import logging

logger = logging.getLogger(__name__)


orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def build_checkout_service(db_session=None) -> CheckoutService:
    """Wire the coordinator to the request session and app config."""
    return CheckoutService(
        db_session or get_session(),
        settings=SettingsAccessor(get_session, current_app.config.get('DEFAULT_TAX_RATE', '10')),
        audit=AuditRecorder(get_session),
        max_order_number_attempts=current_app.config.get('ORDER_NUMBER_MAX_ATTEMPTS', 5),
    )


@orders_bp.route('', methods=['POST'])
@require_login
def create_order():
    """Run a checkout for the current operator."""
    try:
        checkout_request = parse_checkout_payload(request.get_json(silent=True))
        order = build_checkout_service().checkout(g.user_id, checkout_request)
    except PosError as e:
        record_checkout(e.kind)
        raise

    record_checkout('completed', order.total_amount)
    invalidate_products_cache()

    return jsonify({'status': 'success', 'order': order.to_dict()}), 201


@orders_bp.route('/preview', methods=['POST'])
@require_login
def preview_order():
    """Price a cart with the current tax rate; nothing is written."""
    lines, order_discount = parse_preview_payload(request.get_json(silent=True))
    totals = build_checkout_service().preview(lines, order_discount)
    return jsonify({'status': 'success', 'totals': totals.to_dict()})


@orders_bp.route('', methods=['GET'])
@require_login
def list_orders_view():
    page, limit = parse_pagination(request.args)

    status = None
    raw_status = request.args.get('status')
    if raw_status:
        try:
            status = OrderStatus(raw_status.upper())
        except ValueError:
            raise ValidationError(f'Unknown order status: {raw_status}')

    orders, total = list_orders(
        get_session(),
        g.user,
        status=status,
        start_date=parse_date_arg(request.args, 'startDate'),
        end_date=parse_date_arg(request.args, 'endDate'),
        page=page,
        limit=limit,
    )
    return jsonify({
        'status': 'success',
        'orders': [o.to_dict() for o in orders],
        'pagination': pagination_meta(page, limit, total),
    })


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
def order_detail(order_id: int):
    order = get_order(get_session(), order_id, g.user)
    return jsonify({'status': 'success', 'order': order.to_dict()})
