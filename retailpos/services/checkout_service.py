"""
Checkout transaction coordinator.

Turns a cart into a COMPLETED order. Validation, pricing and payment checks
run before anything is written; the order, its items, every stock decrement
and the loyalty accrual are then applied in one UnitOfWork that commits once
or leaves no trace. Audit entries are written afterwards, best-effort.
"""
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from retailpos.database import UnitOfWork
from retailpos.exceptions import (
    PosError, ValidationError, InsufficientPayment, InsufficientStock,
    NotFoundError, UnauthorizedError, PersistenceFailure,
)
from retailpos.models import (
    AuditAction, Customer, Order, OrderItem, OrderStatus, PaymentMethod, Product,
)
from retailpos.services.loyalty_service import apply_loyalty_accrual
from retailpos.services.pricing_service import (
    ZERO, CartLine, CartTotals, calculate_change, calculate_totals, round_money,
)
from retailpos.services.stock_ledger_service import lock_products, reserve_and_commit

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
DEFAULT_ORDER_NUMBER_ATTEMPTS = 5

# Largest values the order columns hold: Numeric(12, 2) money, BigInteger ids
MAX_AMOUNT = Decimal('9999999999.99')
MAX_QUANTITY = 1_000_000
MAX_ID = 2 ** 63 - 1


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-<YYYYMMDD>-<6-char uppercase base36 suffix>."""
    now = now or datetime.now(timezone.utc)
    suffix = ''.join(secrets.choice(_BASE36) for _ in range(6))
    return f"ORD-{now.strftime('%Y%m%d')}-{suffix}"


@dataclass
class CheckoutRequest:
    lines: List[CartLine]
    payment_method: PaymentMethod
    amount_paid: Decimal
    order_discount: Decimal = ZERO
    customer_id: Optional[int] = None
    note: Optional[str] = None
    product_ids: List[int] = field(init=False)

    def __post_init__(self):
        self.product_ids = sorted({line.product_id for line in self.lines})


# =====================================================
# PAYLOAD PARSING
# =====================================================

def _parse_decimal(value, field_name: str, errors: List[Dict[str, str]], default=None) -> Optional[Decimal]:
    if value is None or value == '':
        if default is None:
            errors.append({'field': field_name, 'message': 'is required'})
        return default
    if isinstance(value, bool):
        errors.append({'field': field_name, 'message': 'must be a number'})
        return default
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append({'field': field_name, 'message': 'must be a number'})
        return default
    if not parsed.is_finite():
        errors.append({'field': field_name, 'message': 'must be a finite number'})
        return default
    return parsed


def _parse_int(value, field_name: str, errors: List[Dict[str, str]]) -> Optional[int]:
    if value is None or isinstance(value, bool):
        errors.append({'field': field_name, 'message': 'must be an integer'})
        return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append({'field': field_name, 'message': 'must be an integer'})
        return None
    if not parsed.is_finite() or parsed != parsed.to_integral_value():
        errors.append({'field': field_name, 'message': 'must be an integer'})
        return None
    return int(parsed)


def parse_cart_lines(items, errors: List[Dict[str, str]]) -> List[CartLine]:
    if items is None:
        errors.append({'field': 'items', 'message': 'is required'})
        return []
    if not isinstance(items, list):
        errors.append({'field': 'items', 'message': 'must be a list'})
        return []

    lines = []
    for idx, item in enumerate(items):
        prefix = f'items[{idx}]'
        if not isinstance(item, dict):
            errors.append({'field': prefix, 'message': 'must be an object'})
            continue
        product_id = _parse_int(item.get('productId'), f'{prefix}.productId', errors)
        quantity = _parse_int(item.get('quantity'), f'{prefix}.quantity', errors)
        unit_price = _parse_decimal(item.get('unitPrice'), f'{prefix}.unitPrice', errors)
        discount = _parse_decimal(item.get('discount'), f'{prefix}.discount', errors, default=ZERO)
        if None in (product_id, quantity, unit_price, discount):
            continue
        lines.append(CartLine(product_id=product_id, quantity=quantity,
                              unit_price=unit_price, discount=discount))
    return lines


def parse_checkout_payload(data: Any) -> CheckoutRequest:
    """
    Convert the JSON body of POST /api/orders into a CheckoutRequest.

    Only types are checked here; business rules live in validate_checkout.
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'body', 'message': 'must be a JSON object'}]})

    errors: List[Dict[str, str]] = []
    lines = parse_cart_lines(data.get('items'), errors)

    method_raw = data.get('paymentMethod')
    payment_method = None
    try:
        payment_method = PaymentMethod(str(method_raw).upper()) if method_raw else None
    except ValueError:
        pass
    if payment_method is None:
        errors.append({'field': 'paymentMethod', 'message': 'must be one of CASH, CARD, DIGITAL'})

    amount_paid = _parse_decimal(data.get('amountPaid'), 'amountPaid', errors)
    order_discount = _parse_decimal(data.get('discountAmount'), 'discountAmount', errors, default=ZERO)

    customer_id = None
    if data.get('customerId') not in (None, ''):
        customer_id = _parse_int(data.get('customerId'), 'customerId', errors)

    note = data.get('note')
    if note is not None and not isinstance(note, str):
        errors.append({'field': 'note', 'message': 'must be a string'})
        note = None

    if errors:
        raise ValidationError('Invalid request data', {'details': errors})

    return CheckoutRequest(
        lines=lines,
        payment_method=payment_method,
        amount_paid=amount_paid,
        order_discount=order_discount,
        customer_id=customer_id,
        note=note.strip() if note else None,
    )


def parse_preview_payload(data: Any) -> Tuple[List[CartLine], Decimal]:
    """Cart lines and order discount from the body of POST /api/orders/preview."""
    if not isinstance(data, dict):
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'body', 'message': 'must be a JSON object'}]})

    errors: List[Dict[str, str]] = []
    lines = parse_cart_lines(data.get('items'), errors)
    order_discount = _parse_decimal(data.get('discountAmount'), 'discountAmount', errors, default=ZERO)
    if errors:
        raise ValidationError('Invalid request data', {'details': errors})
    return lines, order_discount


def validate_cart(lines: List[CartLine], order_discount=ZERO) -> None:
    """Reject empty carts and impossible line values before any lookup."""
    if not lines:
        raise ValidationError('Cart is empty', {'details': [
            {'field': 'items', 'message': 'At least one item is required'}]})

    errors = []
    for idx, line in enumerate(lines):
        prefix = f'items[{idx}]'
        if not 0 < line.product_id <= MAX_ID:
            errors.append({'field': f'{prefix}.productId', 'message': 'is out of range'})
        if line.quantity <= 0:
            errors.append({'field': f'{prefix}.quantity', 'message': 'must be greater than 0'})
        elif line.quantity > MAX_QUANTITY:
            errors.append({'field': f'{prefix}.quantity', 'message': f'cannot exceed {MAX_QUANTITY}'})
        if line.unit_price < 0:
            errors.append({'field': f'{prefix}.unitPrice', 'message': 'cannot be negative'})
        elif line.unit_price > MAX_AMOUNT:
            errors.append({'field': f'{prefix}.unitPrice', 'message': f'cannot exceed {MAX_AMOUNT}'})
        if line.discount < 0:
            errors.append({'field': f'{prefix}.discount', 'message': 'cannot be negative'})
        elif line.quantity > 0 and line.unit_price >= 0 and line.discount > line.line_subtotal:
            errors.append({'field': f'{prefix}.discount', 'message': 'cannot exceed the line subtotal'})
    if order_discount < 0:
        errors.append({'field': 'discountAmount', 'message': 'cannot be negative'})
    elif order_discount > MAX_AMOUNT:
        errors.append({'field': 'discountAmount', 'message': f'cannot exceed {MAX_AMOUNT}'})

    if errors:
        raise ValidationError('Invalid cart', {'details': errors})


def validate_checkout(request: CheckoutRequest) -> None:
    validate_cart(request.lines, request.order_discount)
    if request.amount_paid < 0:
        raise ValidationError('Invalid payment', {'details': [
            {'field': 'amountPaid', 'message': 'cannot be negative'}]})
    if request.amount_paid > MAX_AMOUNT:
        raise ValidationError('Invalid payment', {'details': [
            {'field': 'amountPaid', 'message': f'cannot exceed {MAX_AMOUNT}'}]})
    if request.customer_id is not None and not 0 < request.customer_id <= MAX_ID:
        raise ValidationError('Invalid request data', {'details': [
            {'field': 'customerId', 'message': 'is out of range'}]})


def check_totals(totals: CartTotals) -> None:
    """Reject totals the order columns cannot store or that discounts had to clamp."""
    if totals.clamped:
        raise ValidationError('Discounts exceed the order subtotal')
    if totals.subtotal > MAX_AMOUNT or totals.total > MAX_AMOUNT:
        raise ValidationError(f'Order total cannot exceed {MAX_AMOUNT}')


# =====================================================
# COORDINATOR
# =====================================================

class CheckoutService:
    """
    Coordinates one checkout against a session.

    Collaborators are injected: ``settings`` must expose ``tax_rate()`` (read
    at call time), ``audit`` must expose ``record(...)`` and is optional.
    """

    def __init__(
        self,
        session,
        settings,
        audit=None,
        max_order_number_attempts: int = DEFAULT_ORDER_NUMBER_ATTEMPTS,
        clock: Callable[[], datetime] = None,
    ):
        self.session = session
        self.settings = settings
        self.audit = audit
        self.max_order_number_attempts = max(1, int(max_order_number_attempts))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ----- public API -----

    def preview(self, lines: List[CartLine], order_discount=ZERO) -> CartTotals:
        """Price a cart with the current tax rate without touching stock."""
        validate_cart(lines, order_discount)
        totals = calculate_totals(lines, self.settings.tax_rate(), order_discount)
        check_totals(totals)
        return totals

    def checkout(self, operator_id: Optional[int], request: CheckoutRequest) -> Order:
        """
        Run a checkout. Returns the committed order or raises exactly one of
        ValidationError, InsufficientPayment, InsufficientStock, NotFoundError,
        UnauthorizedError, PersistenceFailure.
        """
        try:
            order = self._checkout(operator_id, request)
        except PosError as e:
            self.session.rollback()
            self._record_rejection(operator_id, request, e)
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception(f"Checkout persistence failure: {e}")
            failure = PersistenceFailure()
            self._record_rejection(operator_id, request, failure)
            raise failure from e

        self._record_completion(operator_id, order, request)
        return order

    # ----- steps -----

    def _checkout(self, operator_id: Optional[int], request: CheckoutRequest) -> Order:
        if operator_id is None:
            raise UnauthorizedError('Checkout requires an authenticated operator')

        # 1-2. Cart shape
        validate_checkout(request)

        # 3. Current tax rate
        tax_rate = self.settings.tax_rate()

        # 4. Totals and cost of goods from current catalog values
        totals = calculate_totals(request.lines, tax_rate, request.order_discount)
        check_totals(totals)

        products = self._load_products(request.product_ids)
        if request.customer_id is not None:
            self._load_customer(request.customer_id)

        total_cost = ZERO
        for line in request.lines:
            cost = products[line.product_id].cost_price
            if cost is not None:
                total_cost += cost * line.quantity
        profit = round_money(totals.taxable_base - total_cost)
        if abs(profit) > MAX_AMOUNT:
            raise ValidationError('Order cost of goods is out of range')

        # 5. Payment, compared before any rounding
        if request.amount_paid < totals.total:
            raise InsufficientPayment(request.amount_paid, totals.total)
        change = calculate_change(request.amount_paid, totals.total)

        # 6. Atomic unit of work
        with UnitOfWork(self.session) as uow:
            lock_products(uow.session, request.product_ids)

            now = self._clock()
            order = Order(
                status=OrderStatus.COMPLETED,
                payment_method=request.payment_method,
                subtotal=totals.subtotal,
                discount_amount=totals.discount,
                tax_rate=totals.tax_rate,
                tax_amount=totals.tax,
                total_amount=totals.total,
                amount_paid=round_money(request.amount_paid),
                change_amount=change,
                profit=profit,
                note=request.note,
                customer_id=request.customer_id,
                user_id=operator_id,
                completed_at=now,
            )
            self._insert_order(uow.session, order, now)

            for line in request.lines:
                order.items.append(OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=round_money(line.unit_price),
                    unit_cost=products[line.product_id].cost_price,
                    discount=round_money(line.discount),
                    total_price=line.line_total,
                ))

            shortages = []
            for line in sorted(request.lines, key=lambda l: l.product_id):
                try:
                    reserve_and_commit(
                        uow.session, line.product_id, -line.quantity,
                        reference=order.order_number, user_id=operator_id,
                        note=f'Sale {order.order_number}',
                    )
                except InsufficientStock as e:
                    shortages.extend(e.shortages)
            if shortages:
                raise InsufficientStock(shortages)

            if request.customer_id is not None:
                apply_loyalty_accrual(uow.session, request.customer_id, totals.total)

            uow.session.flush()

        logger.info(f"Checkout completed: {order.order_number} total={totals.total} "
                    f"items={len(request.lines)} operator={operator_id}")
        return order

    def _load_products(self, product_ids: List[int]) -> Dict[int, Product]:
        products = self.session.query(Product).filter(Product.id.in_(product_ids)).all()
        found = {p.id: p for p in products}

        missing = [pid for pid in product_ids if pid not in found]
        if missing:
            raise NotFoundError('One or more products were not found', {'productIds': missing})

        inactive = [p for p in products if not p.is_active]
        if inactive:
            raise ValidationError('One or more products are not active', {'details': [
                {'field': 'items', 'message': f'Product {p.sku} is not active'} for p in inactive]})
        return found

    def _load_customer(self, customer_id: int) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f'Customer {customer_id} not found')
        if not customer.is_active:
            raise ValidationError(f'Customer {customer.member_code} is not active')
        return customer

    def _insert_order(self, session, order: Order, now: datetime) -> None:
        """Flush the order under a fresh number, regenerating on collision."""
        for attempt in range(1, self.max_order_number_attempts + 1):
            number = generate_order_number(now)
            if session.query(Order.id).filter(Order.order_number == number).first() is not None:
                logger.warning(f"Order number collision on {number} (attempt {attempt})")
                continue
            order.order_number = number
            try:
                with session.begin_nested():
                    session.add(order)
                    session.flush()
                return
            except IntegrityError as e:
                logger.warning(f"Order insert rejected for {number} (attempt {attempt}): {e}")
        raise PersistenceFailure('Could not allocate a unique order number')

    # ----- audit side channel -----

    def _record_completion(self, operator_id, order: Order, request: CheckoutRequest) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record(
                AuditAction.CHECKOUT_COMPLETED,
                'order',
                entity_id=order.id,
                user_id=operator_id,
                new_values={
                    'orderNumber': order.order_number,
                    'totalAmount': str(order.total_amount),
                    'itemCount': len(request.lines),
                    'customerId': request.customer_id,
                },
            )
        except Exception as e:
            logger.error(f"Audit of checkout {order.id} failed: {e}")

    def _record_rejection(self, operator_id, request: CheckoutRequest, error: PosError) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record(
                AuditAction.CHECKOUT_REJECTED,
                'order',
                user_id=operator_id,
                new_values={
                    'error': error.kind,
                    'message': error.message,
                    'itemCount': len(request.lines) if request else 0,
                    'customerId': request.customer_id if request else None,
                },
            )
        except Exception as e:
            logger.error(f"Audit of rejected checkout failed: {e}")
