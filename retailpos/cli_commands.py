"""
Flask CLI commands for store setup.

Commands:
- flask init-db: Create tables and default settings
- flask create-user: Create a staff user
- flask seed-demo: Load demo settings, products and customers
"""

import click
from decimal import Decimal
from retailpos.database import UnitOfWork, create_all, get_session
from retailpos.exceptions import PosError
from retailpos.models import Customer, Product
from retailpos.services.auth_service import create_user
from retailpos.services.customer_service import create_customer
from retailpos.services.product_service import create_product
from retailpos.services.settings_service import seed_default_settings

DEMO_PRODUCTS = [
    ('SKU-001', 'Cola 500ml', '1.50', '0.90', 120),
    ('SKU-002', 'Chips Classic', '2.25', '1.10', 80),
    ('SKU-003', 'Chocolate Bar', '1.75', '0.80', 60),
    ('SKU-004', 'Mineral Water 1L', '1.00', '0.40', 200),
    ('SKU-005', 'Coffee Beans 250g', '8.90', '5.20', 15),
]

DEMO_CUSTOMERS = [
    ('Ada', 'Lovelace', 'ada@example.com'),
    ('Alan', 'Turing', 'alan@example.com'),
]


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create tables and insert missing default settings."""
        create_all()
        db_session = get_session()
        with UnitOfWork(db_session):
            created = seed_default_settings(db_session, {'tax_rate': str(app.config.get('DEFAULT_TAX_RATE', '10'))})
        click.echo(click.style(f'Database ready ({created} settings created)', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='User password')
    @click.option('--first-name', default='', help='First name')
    @click.option('--last-name', default='', help='Last name')
    @click.option('--role', type=click.Choice(['ADMIN', 'MANAGER', 'CASHIER'], case_sensitive=False),
                  default='CASHIER', show_default=True)
    def create_user_command(email, password, first_name, last_name, role):
        """Create a staff user."""
        db_session = get_session()
        try:
            with UnitOfWork(db_session):
                user = create_user(db_session, email, password, first_name, last_name, role)
        except PosError as e:
            raise click.ClickException(e.message)

        click.echo(click.style('User created', fg='green', bold=True))
        click.echo(f'   Email: {user.email}')
        click.echo(f'   Role: {user.role.value}')
        click.echo(f'   ID: {user.id}')

    @app.cli.command('seed-demo')
    def seed_demo_command():
        """Insert default settings, the demo catalog and demo customers; existing rows are skipped."""
        db_session = get_session()
        created = 0
        with UnitOfWork(db_session):
            seed_default_settings(db_session)
            for sku, name, price, cost, stock in DEMO_PRODUCTS:
                if db_session.query(Product.id).filter(Product.sku == sku).first():
                    continue
                create_product(db_session, {
                    'sku': sku,
                    'name': name,
                    'price': Decimal(price),
                    'cost_price': Decimal(cost),
                }, stock, user_id=None)
                created += 1
            for first_name, last_name, email in DEMO_CUSTOMERS:
                if db_session.query(Customer.id).filter(Customer.email == email).first():
                    continue
                create_customer(db_session, first_name, last_name, email=email)
        click.echo(click.style(f'{created} demo products created', fg='green'))
