"""Loyalty accrual for customers attached to completed orders."""
import secrets
import string

from sqlalchemy import update

from retailpos.exceptions import NotFoundError
from retailpos.models import Customer
from retailpos.services.pricing_service import floor_units, round_money, to_decimal

_customer_table = Customer.__table__
_BASE36 = string.digits + string.ascii_uppercase


def points_for_total(total) -> int:
    """One point per whole currency unit spent."""
    return max(floor_units(total), 0)


def apply_loyalty_accrual(session, customer_id: int, total) -> Customer:
    """
    Increment spend, visits and points for one completed order.

    Runs as a relative SQL update inside the caller's unit of work, so two
    concurrent orders for the same customer cannot lose an increment. The
    checkout coordinator calls this exactly once per order, before commit.
    """
    total = round_money(to_decimal(total))
    stmt = (
        update(_customer_table)
        .where(_customer_table.c.id == customer_id)
        .values(
            total_spent=_customer_table.c.total_spent + total,
            visit_count=_customer_table.c.visit_count + 1,
            loyalty_points=_customer_table.c.loyalty_points + points_for_total(total),
        )
    )
    result = session.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError(f'Customer {customer_id} not found')

    customer = session.get(Customer, customer_id)
    if customer is not None:
        session.refresh(customer, ['total_spent', 'visit_count', 'loyalty_points'])
    return customer


def generate_member_code(length: int = 6) -> str:
    """MEM-XXXXXX with an uppercase base36 suffix."""
    return 'MEM-' + ''.join(secrets.choice(_BASE36) for _ in range(length))
