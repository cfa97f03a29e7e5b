"""Order queries (listing and detail)."""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import joinedload, selectinload

from retailpos.exceptions import NotFoundError
from retailpos.models import Order, OrderItem, OrderStatus, User, UserRole

# Roles that may see every operator's orders
ORDER_VIEW_ALL_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def _base_query(session):
    return session.query(Order).options(
        joinedload(Order.customer),
        joinedload(Order.user),
        selectinload(Order.items).joinedload(OrderItem.product),
    )


def list_orders(
    session,
    user: User,
    status: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Order], int]:
    """Newest first. Cashiers only see orders they rang up."""
    filters = []
    if status:
        filters.append(Order.status == status)
    if start_date:
        filters.append(Order.created_at >= start_date)
    if end_date:
        filters.append(Order.created_at <= end_date)
    if user.role not in ORDER_VIEW_ALL_ROLES:
        filters.append(Order.user_id == user.id)

    total = session.query(Order.id).filter(*filters).count()
    orders = (_base_query(session)
              .filter(*filters)
              .order_by(Order.created_at.desc(), Order.id.desc())
              .offset((page - 1) * limit)
              .limit(limit)
              .all())
    return orders, total


def get_order(session, order_id: int, user: User) -> Order:
    order = _base_query(session).filter(Order.id == order_id).first()
    if order is None or (user.role not in ORDER_VIEW_ALL_ROLES and order.user_id != user.id):
        raise NotFoundError('Order not found')
    return order
