# Overview: Flask CLI command group for ledger bootstrap and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask ledger seed-demo
#   Idempotent demo data: staff users, a supplier, categories and products.
# - python -m flask ledger recompute-inventory [--product-id 5]
#   Rebuild cached stock rows from the purchase/sale ledger.
# - python -m flask ledger dispatch-outbox [--limit 100]
#   Retry pending/failed post-commit side effects (notifications, email).
# - python -m flask ledger check-ledger
#   Report batches breaking 0 <= remaining <= quantity and cached stock drift.
#   Exits 1 when anything is wrong.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Product, Supplier, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_TECHNICIAN
from .services import inventory_service, notification_service


@click.group('ledger')
def ledger_group():
    """Stock ledger bootstrap and maintenance commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@ledger_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo staff, a supplier, categories and products (skips existing rows)."""
    users = [
        ("admin", "admin@shopledger.local", ROLE_ADMIN),
        ("cashier", "cashier@shopledger.local", ROLE_CASHIER),
        ("technician", "technician@shopledger.local", ROLE_TECHNICIAN),
    ]
    for username, email, role in users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(username=username, email=email, role=role))
        click.echo(f"PASS Created user: {username} ({role})")

    supplier = db.session.query(Supplier).filter_by(name="Demo Distributor").first()
    if supplier is None:
        supplier = Supplier(name="Demo Distributor", shop_name="Demo Tech Wholesale", phone="0112345678")
        db.session.add(supplier)
        db.session.flush()

    catalog = [
        ("Laptops", "Demo Laptop 14", True),
        ("Accessories", "USB-C Charger 65W", False),
        ("Accessories", "Wireless Mouse", False),
    ]
    for category_name, product_name, requires_serial in catalog:
        category = db.session.query(Category).filter_by(name=category_name).first()
        if category is None:
            category = Category(name=category_name)
            db.session.add(category)
            db.session.flush()
        if db.session.query(Product).filter_by(name=product_name).first():
            continue
        db.session.add(Product(
            name=product_name,
            category_id=category.id,
            supplier_id=supplier.id,
            requires_serial=requires_serial,
        ))
        click.echo(f"PASS Created product: {product_name}")

    db.session.commit()
    click.echo("DONE Demo data ready. Send X-User-Id with a user id to call the API.")


@ledger_group.command('recompute-inventory')
@click.option('--product-id', type=int, default=None, help='Only this product')
@with_appcontext
def recompute_inventory(product_id):
    """Rebuild cached stock rows from purchases and sales."""
    if product_id is not None:
        if db.session.get(Product, product_id) is None:
            raise click.ClickException(f"Product {product_id} not found")
        summary = inventory_service.recompute(product_id, commit=True)
        click.echo(f"PASS Product {product_id}: stock {summary.stock_quantity}")
        return
    count = inventory_service.rebuild_all()
    click.echo(f"PASS Recomputed {count} product(s)")


@ledger_group.command('dispatch-outbox')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def dispatch_outbox(limit):
    """Deliver pending and failed outbox events."""
    result = notification_service.dispatch_pending(limit=limit)
    click.echo(
        f"PASS Attempted {result['attempted']}, delivered {result['delivered']}, failed {result['failed']}"
    )


@ledger_group.command('check-ledger')
@with_appcontext
def check_ledger():
    """Verify batch conservation and cached stock."""
    report = inventory_service.audit_ledger()
    for row in report["bad_batches"]:
        click.echo(
            f"FAIL Purchase {row['purchase_id']}: quantity={row['quantity']} "
            f"remaining={row['remaining_quantity']} sold={row['sold']}"
        )
    for row in report["drift"]:
        click.echo(
            f"FAIL Product {row['product_id']}: cached={row['cached']} expected={row['expected']}"
        )
    if not report["ok"]:
        raise SystemExit(1)
    click.echo("PASS Ledger consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
