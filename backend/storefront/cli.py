# Overview: Flask CLI command groups for bootstrap and back-office maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app storefront <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app storefront system init
#   Idempotent bootstrap: default staff, a driver, a demo customer, a delivery zone and demo products with stock.
# - python -m flask --app storefront system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask --app storefront users create-staff --username sara --email sara@shop.local --role delivery
# - python -m flask --app storefront users create-customer --email buyer@example.com
#
# Catalog and stock:
# - python -m flask --app storefront catalog add-product --sku LAMB-LEG --name "Lamb Leg" --price-cents 4500 --unit kg
# - python -m flask --app storefront stock restock LAMB-LEG 25 --reason "Morning delivery"

import click
from flask.cli import with_appcontext

from .errors import FulfillmentError
from .extensions import db
from .models import Customer, DeliveryZone, DocumentSequence, Product, StaffUser
from .services import stock_service
from .services.auth_service import PasswordValidationError, create_customer, create_staff_user


DEFAULT_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for seeded accounts')
@with_appcontext
def init_system(password):
    """
    Seed a working storefront.

    Creates (when missing):
    - Users: admin, staff, driver (role delivery)
    - Customer: customer@example.com
    - Delivery zone for Dubai
    - Demo products with opening stock
    - The ORDER number sequence

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing storefront...")

    if db.session.get(DocumentSequence, "ORDER") is None:
        db.session.add(DocumentSequence(document_type="ORDER", next_number=1))
        db.session.commit()
        click.echo("PASS Created ORDER number sequence")

    click.echo("\nUSERS Creating default staff...")
    default_staff = [
        ("admin", "admin@storefront.local", "Store", "Admin", "admin", None),
        ("staff", "staff@storefront.local", "Counter", "Staff", "staff", None),
        ("driver", "driver@storefront.local", "Omar", "Driver", "delivery", "+971500000001"),
    ]
    for username, email, first_name, family_name, role, mobile in default_staff:
        if db.session.query(StaffUser).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_staff_user(
                username, email, password,
                first_name=first_name, family_name=family_name, role=role, mobile=mobile,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except FulfillmentError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    if not db.session.query(Customer).filter_by(email="customer@example.com").first():
        try:
            create_customer(
                "customer@example.com", password,
                first_name="Demo", family_name="Customer", mobile="+971500000002",
            )
            click.echo("PASS Created customer: customer@example.com")
        except FulfillmentError as e:
            click.echo(f"FAIL Failed to create demo customer: {e}")

    if not db.session.query(DeliveryZone).filter_by(emirate="Dubai").first():
        db.session.add(DeliveryZone(
            name="Dubai",
            name_ar="دبي",
            emirate="Dubai",
            delivery_fee_cents=1500,
            minimum_order_cents=5000,
            estimated_minutes=90,
            express_enabled=True,
            express_fee_cents=3000,
        ))
        db.session.commit()
        click.echo("PASS Created delivery zone: Dubai")

    click.echo("\nCATALOG Creating demo products...")
    demo_products = [
        ("LAMB-LEG", "Lamb Leg", "فخذ خروف", 4500, "kg", 40),
        ("BEEF-MINCE", "Beef Mince", "لحم بقري مفروم", 3200, "kg", 60),
        ("CHICKEN-WHOLE", "Whole Chicken", "دجاج كامل", 2200, "piece", 80),
    ]
    for sku, name, name_ar, price_cents, unit, opening in demo_products:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        product = Product(sku=sku, name=name, name_ar=name_ar, price_cents=price_cents, unit=unit)
        db.session.add(product)
        db.session.commit()
        stock_service.restock(product.id, opening, performed_by="system:init", reason="Opening stock")
        click.echo(f"PASS Created product: {sku} with {opening} {unit} in stock")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Storefront initialized")
    click.echo("=" * 60)
    click.echo(f"\nDefault credentials (password: {password}):")
    click.echo("   admin    -> admin@storefront.local")
    click.echo("   staff    -> staff@storefront.local")
    click.echo("   driver   -> driver@storefront.local")
    click.echo("   customer -> customer@example.com")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask --app storefront system init' to seed.")


@click.group('users')
def users_group():
    """Staff and customer account commands."""


@users_group.command('create-staff')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--family-name', prompt=True, help='Family name')
@click.option('--role', type=click.Choice(list(StaffUser.ROLES)), prompt=True, help='Role')
@click.option('--mobile', default=None, help='Mobile number (shown to customers for drivers)')
@with_appcontext
def create_staff_cli(username, email, password, first_name, family_name, role, mobile):
    """Create a back-office user. Use role 'delivery' for drivers."""
    try:
        user = create_staff_user(
            username, email, password,
            first_name=first_name, family_name=family_name, role=role, mobile=mobile,
        )
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
    except FulfillmentError as e:
        click.echo(f"FAIL Failed to create user: {e}")


@users_group.command('create-customer')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--family-name', prompt=True, help='Family name')
@click.option('--mobile', default=None, help='Mobile number')
@with_appcontext
def create_customer_cli(email, password, first_name, family_name, mobile):
    try:
        customer = create_customer(
            email, password, first_name=first_name, family_name=family_name, mobile=mobile
        )
        click.echo(f"PASS Created customer: {customer.email} (ID: {customer.id})")
    except FulfillmentError as e:
        click.echo(f"FAIL Failed to create customer: {e}")


@click.group('catalog')
def catalog_group():
    """Product commands."""


@catalog_group.command('add-product')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--name', required=True, help='English name')
@click.option('--name-ar', default=None, help='Arabic name')
@click.option('--price-cents', type=int, required=True, help='Unit price in fils')
@click.option('--discount-percent', type=click.IntRange(0, 100), default=0, show_default=True)
@click.option('--unit', type=click.Choice(['kg', 'g', 'piece']), default='piece', show_default=True)
@click.option('--opening-stock', type=int, default=0, show_default=True, help='Units to receive immediately')
@with_appcontext
def add_product_cli(sku, name, name_ar, price_cents, discount_percent, unit, opening_stock):
    if db.session.query(Product).filter_by(sku=sku).first():
        click.echo(f"FAIL Product '{sku}' already exists")
        return
    if price_cents < 0:
        click.echo("FAIL --price-cents must not be negative")
        return

    product = Product(
        sku=sku,
        name=name,
        name_ar=name_ar,
        price_cents=price_cents,
        discount_percent=discount_percent,
        unit=unit,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {sku} (ID: {product.id})")

    if opening_stock > 0:
        stock = stock_service.restock(product.id, opening_stock, performed_by="cli", reason="Opening stock")
        click.echo(f"PASS Opening stock: {stock.quantity} {unit}")


@click.group('stock')
def stock_group():
    """Stock commands."""


@stock_group.command('restock')
@click.argument('sku')
@click.argument('quantity', type=int)
@click.option('--reason', default=None, help='Movement reason')
@click.option('--batch', 'batch_number', default=None, help='Supplier batch number')
@with_appcontext
def restock_cli(sku, quantity, reason, batch_number):
    product = db.session.query(Product).filter_by(sku=sku).first()
    if not product:
        click.echo(f"FAIL Product '{sku}' not found")
        return
    try:
        stock = stock_service.restock(
            product.id, quantity, performed_by="cli", reason=reason, batch_number=batch_number
        )
    except FulfillmentError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(
        f"PASS {sku}: quantity={stock.quantity} reserved={stock.reserved_quantity} "
        f"available={stock.available_quantity}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stock_group)
