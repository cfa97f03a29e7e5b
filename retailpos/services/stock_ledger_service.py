"""
Stock ledger - every change to Product.stock_quantity goes through here.

Each change is a single guarded statement:

    UPDATE product SET stock_quantity = stock_quantity + :delta
    WHERE id = :id AND stock_quantity + :delta >= 0
    RETURNING stock_quantity

so the non-negative check and the write cannot be separated by another
transaction, and the returned value is the true post-change level recorded on
the StockMovement. Callers own the transaction; nothing here commits.
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key

from retailpos.exceptions import InsufficientStock, NotFoundError, ValidationError
from retailpos.models import Product, StockMovement, StockMovementType

logger = logging.getLogger(__name__)

_product_table = Product.__table__


def lock_products(session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """
    Lock product rows FOR UPDATE in ascending id order and return them by id.

    Ascending order keeps two multi-line checkouts from deadlocking each other.
    SQLite ignores FOR UPDATE; there the whole transaction holds the write lock.
    """
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}
    products = (session.query(Product)
                .filter(Product.id.in_(ids))
                .order_by(Product.id)
                .with_for_update()
                .all())
    return {p.id: p for p in products}


def current_stock(session, product_id: int) -> Optional[int]:
    return session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()


def reserve_and_commit(
    session,
    product_id: int,
    quantity_delta: int,
    reference: Optional[str] = None,
    movement_type: StockMovementType = StockMovementType.OUT,
    user_id: Optional[int] = None,
    note: Optional[str] = None,
) -> StockMovement:
    """
    Apply ``quantity_delta`` (negative for a sale) and record the movement.

    Raises InsufficientStock when the result would be negative; the stock row
    is left untouched in that case.
    """
    delta = int(quantity_delta)
    if delta == 0:
        raise ValidationError('Stock movement quantity cannot be zero')

    stmt = (
        update(_product_table)
        .where(_product_table.c.id == product_id)
        .where(_product_table.c.stock_quantity + delta >= 0)
        .values(stock_quantity=_product_table.c.stock_quantity + delta)
        .returning(_product_table.c.stock_quantity)
    )
    new_stock = session.execute(stmt).scalar_one_or_none()

    if new_stock is None:
        available = current_stock(session, product_id)
        if available is None:
            raise NotFoundError(f'Product {product_id} not found')
        product = session.get(Product, product_id)
        logger.info(f"Stock guard rejected product {product_id}: delta {delta}, available {available}")
        raise InsufficientStock([{
            'productId': product_id,
            'sku': product.sku if product else None,
            'name': product.name if product else None,
            'requested': -delta,
            'available': available,
        }])

    # Keep any loaded instance in step with the row without a reload
    product = session.identity_map.get(identity_key(Product, int(product_id)))
    if product is not None:
        set_committed_value(product, 'stock_quantity', new_stock)

    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        quantity=delta,
        previous_stock=new_stock - delta,
        new_stock=new_stock,
        reference=reference,
        note=note,
        user_id=user_id,
    )
    session.add(movement)
    return movement


def receive_stock(session, product_id: int, quantity: int, reference: Optional[str] = None,
                  user_id: Optional[int] = None, note: Optional[str] = None) -> StockMovement:
    """Incoming goods (IN movement)."""
    if int(quantity) <= 0:
        raise ValidationError('Received quantity must be greater than 0')
    return reserve_and_commit(session, product_id, int(quantity), reference=reference,
                              movement_type=StockMovementType.IN, user_id=user_id, note=note)


def adjust_stock(session, product_id: int, new_quantity: int, user_id: Optional[int] = None,
                 note: Optional[str] = None, reference: Optional[str] = None) -> Optional[StockMovement]:
    """
    Manual correction to an absolute level. Returns None when nothing changes.
    """
    new_quantity = int(new_quantity)
    if new_quantity < 0:
        raise ValidationError('Stock quantity cannot be negative')

    locked = lock_products(session, [product_id])
    product = locked.get(int(product_id))
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')

    delta = new_quantity - (product.stock_quantity or 0)
    if delta == 0:
        return None
    return reserve_and_commit(session, product.id, delta, reference=reference,
                              movement_type=StockMovementType.ADJUSTMENT,
                              user_id=user_id, note=note)


def get_recent_movements(session, product_id: int, limit: int = 10) -> List[StockMovement]:
    return (session.query(StockMovement)
            .filter(StockMovement.product_id == product_id)
            .order_by(StockMovement.id.desc())
            .limit(limit)
            .all())
