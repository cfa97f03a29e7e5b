"""
Unit tests for loyalty accrual.
"""

import pytest
import re
from decimal import Decimal
from retailpos.database import UnitOfWork
from retailpos.exceptions import NotFoundError
from retailpos.models import Customer
from retailpos.services.loyalty_service import apply_loyalty_accrual, generate_member_code, points_for_total


class TestLoyaltyAccrual:

    def test_accrual_for_47_80(self, session, customer):
        """Test +47 points, +47.80 spent, +1 visit."""
        with UnitOfWork(session):
            apply_loyalty_accrual(session, customer.id, Decimal('47.80'))

        refreshed = session.get(Customer, customer.id)
        assert refreshed.loyalty_points == 47
        assert refreshed.total_spent == Decimal('47.80')
        assert refreshed.visit_count == 1

    def test_accrual_is_cumulative(self, session, customer):
        with UnitOfWork(session):
            apply_loyalty_accrual(session, customer.id, Decimal('10.50'))
        with UnitOfWork(session):
            apply_loyalty_accrual(session, customer.id, Decimal('5.75'))

        refreshed = session.get(Customer, customer.id)
        assert refreshed.loyalty_points == 15
        assert refreshed.total_spent == Decimal('16.25')
        assert refreshed.visit_count == 2

    def test_unknown_customer(self, session):
        with pytest.raises(NotFoundError):
            apply_loyalty_accrual(session, 424242, Decimal('1.00'))

    def test_points_never_negative(self):
        assert points_for_total(Decimal('0.00')) == 0
        assert points_for_total(Decimal('0.99')) == 0
        assert points_for_total(Decimal('100.01')) == 100

    def test_member_code_format(self):
        assert re.fullmatch(r'MEM-[0-9A-Z]{6}', generate_member_code())
