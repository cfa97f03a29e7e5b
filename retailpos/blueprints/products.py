"""
Products blueprint.
Catalog listing (cached), detail with recent stock movements, and
maintenance. Stock levels only move through the stock ledger.
"""

from flask import Blueprint, request, g, jsonify, current_app
from retailpos.database import UnitOfWork, get_session
from retailpos.decorators.permissions import admin_only, manager_or_admin
from retailpos.middleware import require_login
from retailpos.models import AuditAction
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.cache_service import get_cache, invalidate_products_cache
from retailpos.services.product_service import (
    create_product, deactivate_product, get_product, list_products, parse_product_payload, update_product,
)
from retailpos.services.stock_ledger_service import get_recent_movements
from retailpos.utils.request_args import pagination_meta, parse_pagination
import logging

logger = logging.getLogger(__name__)


products_bp = Blueprint('products', __name__, url_prefix='/api/products')


def _truthy(value) -> bool:
    return str(value or '').lower() in ('1', 'true', 'yes')


@products_bp.route('', methods=['GET'])
@require_login
def list_products_view():
    """Active products, optionally filtered by search term or low stock."""
    page, limit = parse_pagination(request.args)
    search = (request.args.get('search') or '').strip()
    low_stock = _truthy(request.args.get('lowStock'))
    threshold = current_app.config.get('LOW_STOCK_THRESHOLD', 10)

    def load():
        products, total = list_products(get_session(), search=search, low_stock=low_stock,
                                        low_stock_threshold=threshold, page=page, limit=limit)
        return {
            'products': [p.to_dict() for p in products],
            'pagination': pagination_meta(page, limit, total),
        }

    cache_key = f"list:{search.lower()}:{int(low_stock)}:{page}:{limit}"
    payload = get_cache().memoize('products', cache_key, load,
                                  ttl=current_app.config.get('CACHE_PRODUCTS_TTL'))
    return jsonify({'status': 'success', **payload})


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_login
def product_detail(product_id: int):
    db_session = get_session()
    product = get_product(db_session, product_id)
    movements = get_recent_movements(db_session, product_id, limit=10)
    return jsonify({
        'status': 'success',
        'product': product.to_dict(),
        'stockMovements': [m.to_dict() for m in movements],
    })


@products_bp.route('', methods=['POST'])
@manager_or_admin
def create_product_view():
    values, stock_level = parse_product_payload(request.get_json(silent=True))
    db_session = get_session()

    with UnitOfWork(db_session):
        product = create_product(db_session, values, stock_level, g.user_id)
    invalidate_products_cache()

    AuditRecorder(get_session).record(
        AuditAction.PRODUCT_CREATED, 'product', entity_id=product.id, user_id=g.user_id,
        new_values={'sku': product.sku, 'name': product.name, 'price': product.price,
                    'stockQuantity': product.stock_quantity},
    )
    return jsonify({'status': 'success', 'product': product.to_dict()}), 201


@products_bp.route('/<int:product_id>', methods=['PUT'])
@manager_or_admin
def update_product_view(product_id: int):
    values, stock_level = parse_product_payload(request.get_json(silent=True), partial=True)
    db_session = get_session()

    with UnitOfWork(db_session):
        product, old_values, movement = update_product(db_session, product_id, values, stock_level, g.user_id)
    invalidate_products_cache()

    recorder = AuditRecorder(get_session)
    recorder.record(
        AuditAction.PRODUCT_UPDATED, 'product', entity_id=product_id, user_id=g.user_id,
        old_values=old_values,
        new_values={'name': product.name, 'price': product.price, 'stockQuantity': product.stock_quantity},
    )
    if movement is not None:
        recorder.record(
            AuditAction.STOCK_ADJUSTED, 'product', entity_id=product_id, user_id=g.user_id,
            old_values={'stockQuantity': movement.previous_stock},
            new_values={'stockQuantity': movement.new_stock, 'movementId': movement.id},
        )
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@admin_only
def delete_product_view(product_id: int):
    """Soft delete."""
    db_session = get_session()
    with UnitOfWork(db_session):
        product = deactivate_product(db_session, product_id)
    invalidate_products_cache()

    AuditRecorder(get_session).record(
        AuditAction.PRODUCT_DEACTIVATED, 'product', entity_id=product_id, user_id=g.user_id,
        old_values={'isActive': True}, new_values={'isActive': False},
    )
    return jsonify({'status': 'success', 'product': product.to_dict()})
