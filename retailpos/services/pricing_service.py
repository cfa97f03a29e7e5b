"""
Pricing & tax calculator.

Pure functions over Decimal; no database access. Shared by the checkout
transaction and the cart preview endpoint so both agree to the cent.

Rounding: tax is rounded to cents with ROUND_HALF_UP (0.005 -> 0.01).
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Iterable, List

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value) -> Decimal:
    """Convert int/float/str to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_units(value) -> int:
    """Whole currency units contained in value (floor)."""
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class CartLine:
    """One product + quantity + discount entry of an uncommitted sale."""
    product_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal = ZERO

    @property
    def line_subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def line_total(self) -> Decimal:
        return round_money(self.line_subtotal - self.discount)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    clamped: bool = False
    lines: List[CartLine] = field(default_factory=list)

    def to_dict(self):
        return {
            'subtotal': str(self.subtotal),
            'discountAmount': str(self.discount),
            'taxableBase': str(self.taxable_base),
            'taxRate': str(self.tax_rate),
            'taxAmount': str(self.tax),
            'totalAmount': str(self.total),
        }


def calculate_tax(taxable_base, tax_rate) -> Decimal:
    """tax = round2(base * rate / 100)."""
    return round_money(to_decimal(taxable_base) * to_decimal(tax_rate) / Decimal('100'))


def calculate_totals(lines: Iterable[CartLine], tax_rate, order_discount=ZERO) -> CartTotals:
    """
    Compute cart totals.

    subtotal excludes discounts; discount is the sum of line discounts plus the
    order-level discount. When discounts exceed the subtotal the taxable base
    is clamped to zero and ``clamped`` is set so callers can reject the cart.
    """
    lines = list(lines)
    tax_rate = to_decimal(tax_rate)

    subtotal = ZERO
    line_discounts = ZERO
    for line in lines:
        subtotal += line.line_subtotal
        line_discounts += to_decimal(line.discount)

    subtotal = round_money(subtotal)
    discount = round_money(line_discounts + to_decimal(order_discount))

    taxable_base = subtotal - discount
    clamped = taxable_base < 0
    if clamped:
        taxable_base = ZERO

    tax = calculate_tax(taxable_base, tax_rate)
    total = round_money(taxable_base + tax)

    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        taxable_base=round_money(taxable_base),
        tax_rate=tax_rate,
        tax=tax,
        total=total,
        clamped=clamped,
        lines=lines,
    )


def calculate_change(amount_paid, total) -> Decimal:
    """Change owed to the customer; negative means underpayment."""
    return round_money(to_decimal(amount_paid) - to_decimal(total))
