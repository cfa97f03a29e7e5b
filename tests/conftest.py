import pytest
from decimal import Decimal
import os
import tempfile
import uuid

# Tests run against a throwaway SQLite file; Redis and CSRF are switched off
_DB_DIR = tempfile.mkdtemp(prefix='retailpos-tests-')
os.environ['DATABASE_URL'] = 'sqlite:///' + os.path.join(_DB_DIR, 'pos.db')
os.environ['CACHE_ENABLED'] = 'false'
os.environ['WTF_CSRF_ENABLED'] = 'false'
os.environ['FLASK_DEBUG'] = '0'
os.environ.pop('SENTRY_DSN', None)

from retailpos import create_app
from retailpos import database
from retailpos.database import Base, create_all, get_session
from retailpos.models import Customer, Product, Setting, User, UserRole


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False
    create_all()
    return app


@pytest.fixture(autouse=True)
def _clean_tables(app):
    """Every test starts from empty tables."""
    yield
    database.db_session.rollback()
    database.db_session.remove()
    with database.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Thread-local database session (the same one request handlers use)."""
    session = get_session()
    yield session
    session.rollback()


def _store(session, obj):
    """Commit obj and hand it back detached with its columns loaded.

    Requests share the thread-local session and expire or close it, so fixture
    instances must not stay attached; tests re-query by id for fresh state.
    """
    session.add(obj)
    session.commit()
    session.refresh(obj)
    session.expunge(obj)
    return obj


def _make_user(session, role, password='password123'):
    suffix = str(uuid.uuid4())[:8]
    user = User(
        email=f'{role.value.lower()}-{suffix}@test.com',
        first_name=role.value.title(),
        last_name='Tester',
        role=role,
        active=True,
    )
    user.set_password(password)
    return _store(session, user)


@pytest.fixture(scope='function')
def admin_user(session):
    return _make_user(session, UserRole.ADMIN)


@pytest.fixture(scope='function')
def manager_user(session):
    return _make_user(session, UserRole.MANAGER)


@pytest.fixture(scope='function')
def cashier(session):
    return _make_user(session, UserRole.CASHIER)


@pytest.fixture(scope='function')
def make_product(session):
    """Factory for products with a given stock level."""
    def _make(sku=None, price='1.50', stock=10, cost='0.90', active=True, name=None):
        sku = sku or f'SKU-{uuid.uuid4().hex[:8].upper()}'
        product = Product(
            sku=sku,
            name=name or f'Product {sku}',
            price=Decimal(price),
            cost_price=Decimal(cost) if cost is not None else None,
            stock_quantity=stock,
            min_stock=0,
            is_active=active,
        )
        return _store(session, product)
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product A from the reference scenario: price 1.50, stock 10."""
    return make_product(sku='SKU-A', price='1.50', stock=10, cost='0.90', name='Product A')


@pytest.fixture(scope='function')
def customer(session):
    customer = Customer(
        member_code=f'MEM-{uuid.uuid4().hex[:6].upper()}',
        first_name='Ada',
        last_name='Lovelace',
        loyalty_points=0,
        total_spent=Decimal('0.00'),
        visit_count=0,
        is_active=True,
    )
    return _store(session, customer)


@pytest.fixture(scope='function')
def tax_rate(session):
    """Store tax_rate=10 in settings."""
    session.add(Setting(key='tax_rate', value='10', description='Tax rate percentage'))
    session.commit()
    return Decimal('10')


def _login_as(client, user):
    """Put the user id in the Flask session cookie."""
    with client.session_transaction() as sess:
        sess['user_id'] = user.id


@pytest.fixture(scope='function')
def login_as():
    return _login_as


@pytest.fixture(scope='function')
def cashier_client(client, cashier):
    _login_as(client, cashier)
    return client


@pytest.fixture(scope='function')
def admin_client(client, admin_user):
    _login_as(client, admin_user)
    return client
