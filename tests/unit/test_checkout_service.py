"""
Unit tests for the checkout coordinator.
"""

import pytest
import re
import threading
from datetime import datetime, timezone
from decimal import Decimal
from retailpos import database
from retailpos.database import get_session
from retailpos.exceptions import (
    InsufficientPayment, InsufficientStock, NotFoundError, UnauthorizedError, ValidationError,
)
from retailpos.models import (
    AuditAction, AuditLog, Customer, Order, OrderItem, OrderStatus, PaymentMethod, Product, Setting, StockMovement,
)
from retailpos.services.audit_service import AuditRecorder
from retailpos.services.checkout_service import (
    CheckoutRequest, CheckoutService, generate_order_number, parse_checkout_payload,
)
from retailpos.services.pricing_service import CartLine
from retailpos.services.settings_service import FixedSettings, SettingsAccessor


def _request(lines, paid='100.00', customer_id=None, order_discount='0.00'):
    return CheckoutRequest(
        lines=[CartLine(product_id=pid, quantity=qty, unit_price=Decimal(price), discount=Decimal(discount))
               for pid, qty, price, discount in lines],
        payment_method=PaymentMethod.CASH,
        amount_paid=Decimal(paid),
        order_discount=Decimal(order_discount),
        customer_id=customer_id,
    )


@pytest.fixture
def two_products(make_product):
    """Reference cart products: 2.00 x3 and 1.50 x2."""
    a = make_product(sku='SKU-X', price='2.00', cost='1.00', stock=10)
    b = make_product(sku='SKU-Y', price='1.50', cost='0.50', stock=10)
    return a, b


@pytest.fixture
def service(session):
    return CheckoutService(session, FixedSettings('10'), audit=AuditRecorder(get_session))


class TestCheckoutSuccess:
    """Tests for completed checkouts."""

    def test_reference_checkout(self, session, service, cashier, two_products):
        """Test the 9.35 order end to end."""
        a, b = two_products
        request = _request([(a.id, 3, '2.00', '0'), (b.id, 2, '1.50', '0.50')], paid='10.00')

        order = service.checkout(cashier.id, request)

        assert order.status == OrderStatus.COMPLETED
        assert order.subtotal == Decimal('9.00')
        assert order.discount_amount == Decimal('0.50')
        assert order.tax_amount == Decimal('0.85')
        assert order.total_amount == Decimal('9.35')
        assert order.change_amount == Decimal('0.65')
        assert order.user_id == cashier.id
        assert order.completed_at is not None
        assert len(order.items) == 2
        # profit = taxable base - cost of goods = 8.50 - (3*1.00 + 2*0.50)
        assert order.profit == Decimal('4.50')

        assert session.get(Product, a.id).stock_quantity == 7
        assert session.get(Product, b.id).stock_quantity == 8

        movements = session.query(StockMovement).filter_by(reference=order.order_number).all()
        assert len(movements) == 2
        for movement in movements:
            assert movement.new_stock == movement.previous_stock + movement.quantity

    def test_order_number_format(self, service, cashier, product):
        order = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))
        assert re.fullmatch(r'ORD-\d{8}-[0-9A-Z]{6}', order.order_number)

    def test_same_product_on_two_lines(self, session, service, cashier, product):
        order = service.checkout(cashier.id, _request([(product.id, 2, '1.50', '0'), (product.id, 3, '1.50', '0')]))

        assert len(order.items) == 2
        assert session.get(Product, product.id).stock_quantity == 5

    def test_loyalty_accrued_for_customer(self, session, cashier, make_product, customer):
        product = make_product(price='47.80', stock=3)
        service = CheckoutService(session, FixedSettings('0'))

        order = service.checkout(cashier.id, _request([(product.id, 1, '47.80', '0')], paid='50.00',
                                                      customer_id=customer.id))

        assert order.total_amount == Decimal('47.80')
        refreshed = session.get(Customer, customer.id)
        assert refreshed.loyalty_points == 47
        assert refreshed.total_spent == Decimal('47.80')
        assert refreshed.visit_count == 1

    def test_completion_is_audited(self, session, service, cashier, product):
        order = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

        entry = session.query(AuditLog).filter_by(action=AuditAction.CHECKOUT_COMPLETED.value).one()
        assert entry.entity == 'order'
        assert entry.entity_id == str(order.id)
        assert entry.user_id == cashier.id
        assert entry.new_values['orderNumber'] == order.order_number


class TestCheckoutRejections:
    """Tests for rejected checkouts; none may leave partial state."""

    def test_insufficient_payment(self, session, service, cashier, two_products):
        a, b = two_products
        request = _request([(a.id, 3, '2.00', '0'), (b.id, 2, '1.50', '0.50')], paid='9.00')

        with pytest.raises(InsufficientPayment) as exc_info:
            service.checkout(cashier.id, request)

        assert exc_info.value.payload['totalAmount'] == '9.35'
        assert session.query(Order).count() == 0
        assert session.get(Product, a.id).stock_quantity == 10

    def test_sub_cent_underpayment_rejected(self, session, service, cashier, two_products):
        """Test that 9.346 does not pay a 9.35 total even though it rounds to it."""
        a, b = two_products
        request = _request([(a.id, 3, '2.00', '0'), (b.id, 2, '1.50', '0.50')], paid='9.346')

        with pytest.raises(InsufficientPayment) as exc_info:
            service.checkout(cashier.id, request)

        assert exc_info.value.payload == {'amountPaid': '9.346', 'totalAmount': '9.35'}
        assert session.query(Order).count() == 0
        assert session.get(Product, a.id).stock_quantity == 10

    def test_exact_payment_gives_no_change(self, service, cashier, two_products):
        a, b = two_products
        order = service.checkout(cashier.id, _request(
            [(a.id, 3, '2.00', '0'), (b.id, 2, '1.50', '0.50')], paid='9.35'))

        assert order.change_amount == Decimal('0.00')

    @pytest.mark.parametrize('qty, price, field', [
        (1_000_001, '1.50', 'items[0].quantity'),
        (1, '10000000000.00', 'items[0].unitPrice'),
    ])
    def test_out_of_range_line_rejected(self, session, service, cashier, product, qty, price, field):
        with pytest.raises(ValidationError) as exc_info:
            service.checkout(cashier.id, _request([(product.id, qty, price, '0')], paid='1'))

        assert [d['field'] for d in exc_info.value.payload['details']] == [field]
        assert session.get(Product, product.id).stock_quantity == 10

    def test_total_beyond_money_column_rejected(self, service, cashier, product):
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([(product.id, 1_000_000, '9999999.00', '0')],
                                                  paid='9999999999.99'))

    def test_oversell_rejected_with_no_stock_change(self, session, service, cashier, make_product):
        product = make_product(stock=5)

        with pytest.raises(InsufficientStock):
            service.checkout(cashier.id, _request([(product.id, 6, '1.50', '0')]))

        assert session.get(Product, product.id).stock_quantity == 5
        assert session.query(Order).count() == 0

    def test_multi_line_failure_is_atomic(self, session, service, cashier, make_product, customer):
        """Test that one short line discards the order, items, other decrements and loyalty."""
        plenty = make_product(sku='SKU-PLENTY', stock=50)
        scarce = make_product(sku='SKU-SCARCE', stock=1)

        with pytest.raises(InsufficientStock) as exc_info:
            service.checkout(cashier.id, _request(
                [(plenty.id, 5, '1.50', '0'), (scarce.id, 2, '1.50', '0')], customer_id=customer.id))

        assert [s['sku'] for s in exc_info.value.shortages] == ['SKU-SCARCE']
        assert session.get(Product, plenty.id).stock_quantity == 50
        assert session.get(Product, scarce.id).stock_quantity == 1
        assert session.query(Order).count() == 0
        assert session.query(OrderItem).count() == 0
        assert session.query(StockMovement).count() == 0
        refreshed = session.get(Customer, customer.id)
        assert refreshed.visit_count == 0
        assert refreshed.loyalty_points == 0

    def test_every_short_line_is_reported(self, service, cashier, make_product):
        a = make_product(sku='SKU-S1', stock=0)
        b = make_product(sku='SKU-S2', stock=1)

        with pytest.raises(InsufficientStock) as exc_info:
            service.checkout(cashier.id, _request([(a.id, 1, '1.50', '0'), (b.id, 3, '1.50', '0')]))

        assert sorted(s['sku'] for s in exc_info.value.shortages) == ['SKU-S1', 'SKU-S2']

    def test_empty_cart(self, service, cashier):
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([]))

    def test_non_positive_quantity(self, service, cashier, product):
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([(product.id, 0, '1.50', '0')]))

    def test_line_discount_exceeding_line_value(self, service, cashier, product):
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([(product.id, 1, '1.50', '2.00')]))

    def test_order_discount_exceeding_subtotal(self, service, cashier, product):
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')], order_discount='5.00'))

    def test_unknown_product(self, service, cashier):
        with pytest.raises(NotFoundError):
            service.checkout(cashier.id, _request([(987654, 1, '1.50', '0')]))

    def test_inactive_product(self, service, cashier, make_product):
        product = make_product(active=False)
        with pytest.raises(ValidationError):
            service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

    def test_unknown_customer(self, session, service, cashier, product):
        with pytest.raises(NotFoundError):
            service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')], customer_id=123456))
        assert session.get(Product, product.id).stock_quantity == 10

    def test_missing_operator(self, service, product):
        with pytest.raises(UnauthorizedError):
            service.checkout(None, _request([(product.id, 1, '1.50', '0')]))

    def test_rejection_is_audited(self, session, service, cashier, make_product):
        product = make_product(stock=0)
        with pytest.raises(InsufficientStock):
            service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

        entry = session.query(AuditLog).filter_by(action=AuditAction.CHECKOUT_REJECTED.value).one()
        assert entry.new_values['error'] == InsufficientStock.kind


class TestCheckoutSettings:
    """Tests for the tax rate read at checkout time."""

    def test_stored_rate_is_used(self, session, cashier, product):
        session.add(Setting(key='tax_rate', value='20'))
        session.commit()
        service = CheckoutService(session, SettingsAccessor(get_session))

        order = service.checkout(cashier.id, _request([(product.id, 2, '1.50', '0')]))
        assert order.tax_amount == Decimal('0.60')
        assert order.total_amount == Decimal('3.60')

    def test_missing_rate_defaults_to_10(self, session, cashier, product):
        service = CheckoutService(session, SettingsAccessor(get_session))

        order = service.checkout(cashier.id, _request([(product.id, 2, '1.50', '0')]))
        assert order.tax_amount == Decimal('0.30')

    def test_unparseable_rate_defaults_to_10(self, session, cashier, product):
        session.add(Setting(key='tax_rate', value='ten percent'))
        session.commit()
        service = CheckoutService(session, SettingsAccessor(get_session))

        order = service.checkout(cashier.id, _request([(product.id, 2, '1.50', '0')]))
        assert order.tax_amount == Decimal('0.30')

    def test_rate_change_applies_to_next_checkout(self, session, cashier, product):
        service = CheckoutService(session, SettingsAccessor(get_session))
        first = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

        session.add(Setting(key='tax_rate', value='0'))
        session.commit()
        second = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

        assert first.tax_amount == Decimal('0.15')
        assert second.tax_amount == Decimal('0.00')


class BrokenAudit:
    def record(self, *args, **kwargs):
        raise RuntimeError('audit store down')


class TestAuditIsolation:

    def test_audit_failure_does_not_fail_checkout(self, session, cashier, product):
        service = CheckoutService(session, FixedSettings('10'), audit=BrokenAudit())

        order = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))

        assert order.id is not None
        assert session.query(Order).count() == 1
        assert session.get(Product, product.id).stock_quantity == 9


class TestOrderNumbers:

    def test_generate_order_number_uses_date(self):
        number = generate_order_number(datetime(2024, 3, 9, 23, 59, tzinfo=timezone.utc))
        assert number.startswith('ORD-20240309-')
        assert len(number) == len('ORD-20240309-') + 6

    def test_collision_is_retried(self, session, cashier, product, monkeypatch):
        service = CheckoutService(session, FixedSettings('10'))
        first = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))
        taken = first.order_number

        numbers = iter([taken, 'ORD-20240101-FRESH1'])
        monkeypatch.setattr('retailpos.services.checkout_service.generate_order_number',
                            lambda now=None: next(numbers))

        second = service.checkout(cashier.id, _request([(product.id, 1, '1.50', '0')]))
        assert second.order_number == 'ORD-20240101-FRESH1'


class TestParseCheckoutPayload:

    def test_valid_payload(self):
        request = parse_checkout_payload({
            'items': [{'productId': 1, 'quantity': 2, 'unitPrice': '1.50', 'discount': 0.5}],
            'paymentMethod': 'cash',
            'amountPaid': 10,
        })
        assert request.payment_method == PaymentMethod.CASH
        assert request.lines[0].discount == Decimal('0.5')
        assert request.amount_paid == Decimal('10')
        assert request.product_ids == [1]

    def test_type_errors_are_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_checkout_payload({'items': [{'productId': 'x', 'quantity': 1.5}], 'paymentMethod': 'BARTER'})

        fields = {d['field'] for d in exc_info.value.payload['details']}
        assert {'items[0].productId', 'items[0].quantity', 'items[0].unitPrice',
                'paymentMethod', 'amountPaid'} <= fields

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_checkout_payload(['not', 'an', 'object'])


class TestConcurrentCheckouts:

    def test_last_unit_sold_once(self, session, make_product, cashier):
        """Test N checkouts racing for stock 1: one success, N-1 InsufficientStock."""
        product = make_product(stock=1)
        product_id, cashier_id = product.id, cashier.id
        # SQLite: release this thread's write lock before the workers start
        session.rollback()
        attempts = 6
        outcomes = []
        lock = threading.Lock()
        start = threading.Barrier(attempts)

        def worker():
            try:
                start.wait()
                service = CheckoutService(get_session(), FixedSettings('10'))
                service.checkout(cashier_id, _request([(product_id, 1, '1.50', '0')]))
                outcome = 'ok'
            except InsufficientStock:
                outcome = 'short'
            except Exception as e:
                outcome = f'error: {e!r}'
            finally:
                database.db_session.remove()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(outcomes) == ['ok'] + ['short'] * (attempts - 1)
        session.expire_all()
        assert session.get(Product, product_id).stock_quantity == 0
        assert session.query(Order).count() == 1
