"""Customer (loyalty member) service."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from sqlalchemy import func, or_

from retailpos.exceptions import NotFoundError, PersistenceFailure, ValidationError
from retailpos.models import Customer
from retailpos.services.loyalty_service import generate_member_code

logger = logging.getLogger(__name__)


def parse_customer_payload(data: Any) -> Dict[str, Any]:
    """Validate a new-customer body."""
    if not isinstance(data, dict):
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'body', 'message': 'must be a JSON object'}]})

    errors = []
    values = {}
    for key, column in (('firstName', 'first_name'), ('lastName', 'last_name'),
                        ('email', 'email'), ('phone', 'phone')):
        raw = data.get(key)
        if raw is not None and not isinstance(raw, str):
            errors.append({'field': key, 'message': 'must be a string'})
            continue
        values[column] = raw.strip() if raw else None

    if not values.get('first_name'):
        errors.append({'field': 'firstName', 'message': 'is required'})
    if errors:
        raise ValidationError('Invalid request data', {'details': errors})
    return values


def create_customer(session, first_name: str, last_name: str = None, email: str = None,
                    phone: str = None, max_attempts: int = 5) -> Customer:
    """
    Create a member with a fresh member code and zeroed loyalty counters.
    Caller commits.
    """
    for _ in range(max_attempts):
        code = generate_member_code()
        if not session.query(Customer.id).filter(Customer.member_code == code).first():
            break
    else:
        raise PersistenceFailure('Could not allocate a unique member code')

    customer = Customer(
        member_code=code,
        first_name=first_name,
        last_name=last_name or '',
        email=email,
        phone=phone,
        loyalty_points=0,
        total_spent=Decimal('0.00'),
        visit_count=0,
        is_active=True,
    )
    session.add(customer)
    session.flush()
    logger.info(f"Customer created: {code} (id={customer.id})")
    return customer


def get_customer(session, customer_id: int) -> Customer:
    customer = session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError('Customer not found')
    return customer


def search_customers(session, search: str = '', page: int = 1, limit: int = 20) -> Tuple[List[Customer], int]:
    query = session.query(Customer).filter(Customer.is_active.is_(True))
    if search:
        term = f'%{search[:100].lower()}%'
        query = query.filter(or_(
            func.lower(Customer.member_code).like(term),
            func.lower(Customer.first_name).like(term),
            func.lower(Customer.last_name).like(term),
            func.lower(func.coalesce(Customer.email, '')).like(term),
            func.lower(func.coalesce(Customer.phone, '')).like(term),
        ))
    total = query.count()
    customers = (query.order_by(Customer.first_name, Customer.last_name, Customer.id)
                 .offset((page - 1) * limit)
                 .limit(limit)
                 .all())
    return customers, total
