"""Product catalog service. Stock levels are only changed through the stock ledger."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_

from retailpos.exceptions import ConflictError, NotFoundError, ValidationError
from retailpos.models import Product
from retailpos.services.stock_ledger_service import adjust_stock, receive_stock

logger = logging.getLogger(__name__)

# payload key -> (column, kind)
_FIELDS = {
    'sku': ('sku', 'str'),
    'name': ('name', 'str'),
    'description': ('description', 'text'),
    'barcode': ('barcode', 'text'),
    'unit': ('unit', 'str'),
    'price': ('price', 'money'),
    'costPrice': ('cost_price', 'money_optional'),
    'minStock': ('min_stock', 'int'),
    'isTaxable': ('is_taxable', 'bool'),
    'isActive': ('is_active', 'bool'),
}


def _coerce(kind: str, key: str, value, errors: List[Dict[str, str]]):
    if kind in ('str', 'text'):
        if value is None:
            if kind == 'str':
                errors.append({'field': key, 'message': 'is required'})
            return None
        if not isinstance(value, str):
            errors.append({'field': key, 'message': 'must be a string'})
            return None
        value = value.strip()
        if kind == 'str' and not value:
            errors.append({'field': key, 'message': 'cannot be empty'})
        return value or None
    if kind == 'bool':
        if not isinstance(value, bool):
            errors.append({'field': key, 'message': 'must be a boolean'})
        return value
    if kind == 'int':
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append({'field': key, 'message': 'must be an integer'})
            return None
        if value < 0:
            errors.append({'field': key, 'message': 'cannot be negative'})
        return value
    # money
    if value is None and kind == 'money_optional':
        return None
    try:
        if isinstance(value, bool):
            raise InvalidOperation
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append({'field': key, 'message': 'must be a number'})
        return None
    if not amount.is_finite() or amount < 0:
        errors.append({'field': key, 'message': 'must be a non-negative number'})
        return None
    return amount.quantize(Decimal('0.01'))


def parse_product_payload(data: Any, partial: bool = False) -> Tuple[Dict[str, Any], Optional[int]]:
    """
    Validate a product body.

    Returns (column values, requested stock level or None). With partial=False
    sku, name and price are required.
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'body', 'message': 'must be a JSON object'}]})

    errors: List[Dict[str, str]] = []
    values: Dict[str, Any] = {}

    if not partial:
        for required in ('sku', 'name', 'price'):
            if data.get(required) in (None, ''):
                errors.append({'field': required, 'message': 'is required'})

    for key, (column, kind) in _FIELDS.items():
        if key not in data:
            continue
        if partial and key == 'sku':
            errors.append({'field': 'sku', 'message': 'cannot be changed'})
            continue
        values[column] = _coerce(kind, key, data[key], errors)

    stock_level = None
    if 'stockQuantity' in data:
        stock_level = _coerce('int', 'stockQuantity', data['stockQuantity'], errors)

    if errors:
        raise ValidationError('Invalid request data', {'details': errors})
    return values, stock_level


def get_product(session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')
    return product


def create_product(session, values: Dict[str, Any], stock_level: Optional[int], user_id: int) -> Product:
    """Insert a product; opening stock is booked as an IN movement. Caller commits."""
    if session.query(Product.id).filter(Product.sku == values['sku']).first():
        raise ConflictError('Product with this SKU already exists')

    product = Product(stock_quantity=0, **values)
    session.add(product)
    session.flush()

    if stock_level:
        receive_stock(session, product.id, stock_level, reference='OPENING', user_id=user_id,
                      note='Opening stock')
    logger.info(f"Product created: {product.sku} (id={product.id})")
    return product


def update_product(session, product_id: int, values: Dict[str, Any], stock_level: Optional[int],
                   user_id: int):
    """
    Apply field changes and, when a stock level is given, an ADJUSTMENT
    movement to reach it. Returns (product, old_values, movement). Caller commits.
    """
    product = get_product(session, product_id)
    old_values = {
        'name': product.name,
        'price': str(product.price),
        'stockQuantity': product.stock_quantity,
    }

    for column, value in values.items():
        setattr(product, column, value)

    movement = None
    if stock_level is not None:
        movement = adjust_stock(session, product.id, stock_level, user_id=user_id,
                                note='Manual adjustment', reference='ADJUSTMENT')
    session.flush()
    return product, old_values, movement


def deactivate_product(session, product_id: int) -> Product:
    """Soft delete; products are never removed because orders reference them."""
    product = get_product(session, product_id)
    product.is_active = False
    session.flush()
    return product


def list_products(
    session,
    search: str = '',
    low_stock: bool = False,
    low_stock_threshold: int = 10,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Product], int]:
    """Active products by name; low_stock keeps those at/below min_stock or the threshold."""
    query = session.query(Product).filter(Product.is_active.is_(True))

    if search:
        term = f'%{search[:100].lower()}%'
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            func.lower(Product.sku).like(term),
            func.lower(func.coalesce(Product.barcode, '')).like(term),
        ))

    if low_stock:
        query = query.filter(or_(
            Product.stock_quantity <= Product.min_stock,
            Product.stock_quantity < low_stock_threshold,
        ))

    total = query.count()
    products = (query.order_by(Product.name, Product.id)
                .offset((page - 1) * limit)
                .limit(limit)
                .all())
    return products, total
