"""
Unit tests for the pricing & tax calculator.
"""

import pytest
from decimal import Decimal
from retailpos.services.pricing_service import (
    CartLine, calculate_change, calculate_tax, calculate_totals, floor_units, round_money,
)


def _reference_cart():
    return [
        CartLine(product_id=1, quantity=3, unit_price=Decimal('2.00')),
        CartLine(product_id=2, quantity=2, unit_price=Decimal('1.50'), discount=Decimal('0.50')),
    ]


class TestCalculateTotals:
    """Tests for cart totals."""

    def test_reference_scenario(self):
        """Test the 9.00 / 0.50 / 0.85 / 9.35 cart."""
        totals = calculate_totals(_reference_cart(), Decimal('10'))

        assert totals.subtotal == Decimal('9.00')
        assert totals.discount == Decimal('0.50')
        assert totals.taxable_base == Decimal('8.50')
        assert totals.tax == Decimal('0.85')
        assert totals.total == Decimal('9.35')
        assert totals.clamped is False

    def test_total_identity(self):
        """Test total = subtotal - discount + tax."""
        lines = [
            CartLine(product_id=1, quantity=7, unit_price=Decimal('3.33'), discount=Decimal('1.11')),
            CartLine(product_id=2, quantity=1, unit_price=Decimal('0.99')),
        ]
        totals = calculate_totals(lines, Decimal('7.5'), order_discount=Decimal('0.25'))

        assert totals.total == totals.subtotal - totals.discount + totals.tax
        assert totals.tax == round_money((totals.subtotal - totals.discount) * Decimal('7.5') / 100)

    def test_order_discount_added_to_line_discounts(self):
        totals = calculate_totals(_reference_cart(), Decimal('10'), order_discount=Decimal('1.00'))

        assert totals.discount == Decimal('1.50')
        assert totals.taxable_base == Decimal('7.50')
        assert totals.tax == Decimal('0.75')
        assert totals.total == Decimal('8.25')

    def test_zero_tax_rate(self):
        totals = calculate_totals(_reference_cart(), Decimal('0'))

        assert totals.tax == Decimal('0.00')
        assert totals.total == Decimal('8.50')

    def test_discount_exceeding_subtotal_is_clamped(self):
        """Test that a negative taxable base is clamped and flagged."""
        lines = [CartLine(product_id=1, quantity=1, unit_price=Decimal('5.00'))]
        totals = calculate_totals(lines, Decimal('10'), order_discount=Decimal('8.00'))

        assert totals.clamped is True
        assert totals.taxable_base == Decimal('0.00')
        assert totals.tax == Decimal('0.00')
        assert totals.total == Decimal('0.00')

    def test_to_dict_uses_strings(self):
        data = calculate_totals(_reference_cart(), Decimal('10')).to_dict()

        assert data['totalAmount'] == '9.35'
        assert data['taxAmount'] == '0.85'
        assert data['subtotal'] == '9.00'


class TestRounding:
    """Tests for cent rounding (half-up)."""

    def test_tax_rounds_half_up(self):
        # 0.05 * 10% = 0.005 -> 0.01
        assert calculate_tax(Decimal('0.05'), Decimal('10')) == Decimal('0.01')
        # 0.25 * 10% = 0.025 -> 0.03 (half-even would give 0.02)
        assert calculate_tax(Decimal('0.25'), Decimal('10')) == Decimal('0.03')

    def test_round_money_accepts_floats_without_artifacts(self):
        assert round_money(2.675) == Decimal('2.68')
        assert round_money('1') == Decimal('1.00')

    def test_floor_units(self):
        assert floor_units(Decimal('47.80')) == 47
        assert floor_units(Decimal('0.99')) == 0
        assert floor_units(Decimal('12.00')) == 12


class TestCalculateChange:
    """Tests for change computation."""

    @pytest.mark.parametrize('paid, expected', [
        ('10.00', '0.65'),
        ('9.35', '0.00'),
        ('9.00', '-0.35'),
    ])
    def test_change(self, paid, expected):
        assert calculate_change(Decimal(paid), Decimal('9.35')) == Decimal(expected)
