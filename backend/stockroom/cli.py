# Overview: Flask CLI command groups for bootstrap and ledger verification.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use 'flask db upgrade' for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Insert a demo supplier and products with opening stock (recorded as In transactions).
#
# Ledger:
# - python -m flask ledger verify
#   Compare every product's current_stock against its transaction history. Exit code 1 on drift.
# - python -m flask ledger balance 42
#   Show stock, ledger balance and recent transactions for one product.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Supplier
from .services import transaction_service
from .services.catalog_service import get_product
from .services.errors import NotFoundError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


DEMO_PRODUCTS = [
    # name, sku, cost, price, opening stock, minimum, maximum, has_batches, has_expiry
    ("Paracetamol 500mg (box)", "MED-0001", 150, 299, 120, 20, 400, True, True),
    ("Nitrile Gloves M (100)", "SUP-0002", 450, 799, 35, 40, 200, False, False),
    ("Hand Sanitizer 250ml", "SUP-0003", 210, 450, 0, 10, None, False, True),
]


@system_group.command('seed-demo')
@click.option('--actor-id', default=1, type=int, help='created_by recorded on the opening stock')
@with_appcontext
def seed_demo(actor_id):
    """
    Insert demo catalog data. Idempotent: existing SKUs are skipped.

    Opening stock goes through record_in so the ledger balances from day one.
    """
    supplier = db.session.query(Supplier).filter_by(name="Demo Medical Supply").first()
    if supplier is None:
        supplier = Supplier(name="Demo Medical Supply", contact_person="Front Desk", email="orders@demo.local")
        db.session.add(supplier)
        db.session.commit()
        click.echo(f"PASS Created supplier: {supplier.name} (ID: {supplier.id})")
    else:
        click.echo(f"PASS Using existing supplier: {supplier.name} (ID: {supplier.id})")

    for name, sku, cost, price, opening, minimum, maximum, batches, expiry in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(sku=sku).first() is not None:
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue

        product = Product(
            name=name,
            sku=sku,
            cost_price_cents=cost,
            selling_price_cents=price,
            current_stock=0,
            minimum_stock=minimum,
            maximum_stock=maximum,
            has_batches=batches,
            has_expiry=expiry,
        )
        db.session.add(product)
        db.session.commit()

        if opening > 0:
            transaction_service.record_in(product.id, opening, actor_id, "OPENING", note="Opening stock")
        click.echo(f"PASS Created product: {sku} {name} (stock {opening})")

    click.echo("DONE Demo data ready.")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Report products whose current_stock disagrees with their transaction history."""
    drift = transaction_service.verify_ledger()
    checked = db.session.query(Product).count()

    if not drift:
        click.echo(f"PASS Ledger consistent for {checked} product(s).")
        return

    for row in drift:
        click.echo(
            f"FAIL Product {row['product_id']}: current_stock={row['current_stock']} "
            f"ledger={row['ledger_balance']} (difference {row['difference']:+d})"
        )
    click.echo(f"FAIL {len(drift)} of {checked} product(s) drifted from the ledger.")
    raise SystemExit(1)


@ledger_group.command('balance')
@click.argument('product_id', type=int)
@click.option('--limit', default=10, type=int, help='Number of recent transactions to show')
@with_appcontext
def ledger_balance(product_id, limit):
    """Show one product's stock, ledger balance and recent transactions."""
    try:
        product = get_product(product_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    balance = transaction_service.get_ledger_balance(product_id)
    status = "PASS" if balance == product.current_stock else "FAIL"
    click.echo(f"{status} {product.name}: current_stock={product.current_stock} ledger={balance}")

    for tx in transaction_service.list_transactions(product_id=product_id, limit=limit):
        click.echo(
            f"  {tx.id:>6}  {tx.transaction_type:<10} {tx.signed_quantity:>+6d}  "
            f"{tx.reference_type:<8} {tx.reference_id or '-'}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
