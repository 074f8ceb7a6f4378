# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/stockpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system seed-demo
#   Idempotent demo data: admin + cashier users and a few products with stock.
#
# User inspection/bootstrap:
# - python -m flask users list [--role cashier]
#   List all users with role and active status.
# - python -m flask users create --username admin --email admin@stockpos.local --role admin
#   Create a user (prompts if options are omitted).
#
# Ledger maintenance:
# - python -m flask stock verify [--product-id 1]
#   Replay adjustments and compare with the stored buckets. Exits 1 on drift.
# - python -m flask stock rebuild [--product-id 1] --yes
#   Overwrite drifted buckets with the replayed values.

import click
from flask.cli import with_appcontext

from .errors import StockError
from .extensions import db
from .models import Product, User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLES
from .services import ledger_service, products_service, user_service
from .services import stock_rules


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Seed demo users and products.

    Creates (when missing):
    - Users: admin (admin), cashier (cashier)
    - Products with initial storage stock, recorded as production adjustments
    - One distribution of each product to the demo cashier
    """
    from .services import distribution_service

    click.echo("START Seeding demo data...")

    def _ensure_user(username, role):
        user = db.session.query(User).filter_by(username=username).first()
        if user:
            click.echo(f"PASS Using existing user: {username}")
            return user
        user = user_service.create_user(
            username=username, email=f"{username}@stockpos.local", role=role
        )
        click.echo(f"PASS Created user: {username} ({role})")
        return user

    admin = _ensure_user("admin", ROLE_ADMIN)
    cashier = _ensure_user("cashier", ROLE_CASHIER)
    db.session.commit()

    demo_products = [
        ("BREAD-001", "White Bread", "Bakery", 350, 120),
        ("BREAD-002", "Whole Wheat Bread", "Bakery", 420, 80),
        ("MILK-001", "Fresh Milk 1L", "Dairy", 299, 60),
        ("EGGS-012", "Eggs (12 pack)", "Dairy", 550, 40),
    ]

    for sku, name, category, price_cents, qty in demo_products:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"SKIP Product {sku} already exists")
            continue
        try:
            product = products_service.create_product(
                patch={"sku": sku, "name": name, "category": category, "price_cents": price_cents},
                created_by_user_id=admin.id,
                initial_stock=qty,
            )
            distribution_service.create_distribution(
                product_id=product.id,
                quantity=qty // 4,
                cashier_id=cashier.id,
                distributed_by=admin.id,
                notes="Demo distribution",
            )
            db.session.commit()
            click.echo(f"PASS Created product {sku} with {qty} units ({qty // 4} distributed)")
        except StockError as e:
            db.session.rollback()
            click.echo(f"FAIL Could not seed {sku}: {e.message}")

    click.echo("\nDONE Demo data ready.")
    click.echo(f"     Send X-User-Id: {admin.id} for admin, {cashier.id} for cashier.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, role):
    """Create a new user interactively."""
    try:
        user = user_service.create_user(username=username, email=email, role=role)
        db.session.commit()
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")
    except StockError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    users = user_service.list_users(role=role)

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {active_str}")

    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock ledger verification and repair."""


def _product_ids(product_id):
    if product_id is not None:
        return [product_id]
    return [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]


@stock_group.command('verify')
@click.option('--product-id', type=int, help='Only verify this product')
@with_appcontext
def verify_stock(product_id):
    """
    Replay every product's adjustments and compare with its stored buckets.

    Exits with status 1 when any product has drifted.
    """
    drifted = 0
    checked = 0
    for pid in _product_ids(product_id):
        try:
            result = ledger_service.verify_product_stock(pid)
        except StockError as e:
            click.echo(f"FAIL Product {pid}: {e.message}")
            drifted += 1
            continue

        checked += 1
        if result["consistent"]:
            continue
        drifted += 1
        click.echo(f"DRIFT Product {pid}")
        for label, stored in result["stored"].items():
            replayed = result["replayed"][label]
            marker = "" if stored == replayed else "  <--"
            click.echo(f"      {label:<13} stored={stored:<8} replayed={replayed}{marker}")

    click.echo(f"\nChecked {checked} product(s), {drifted} inconsistent.")
    if drifted:
        raise SystemExit(1)


@stock_group.command('rebuild')
@click.option('--product-id', type=int, help='Only rebuild this product')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def rebuild_stock(product_id, yes):
    """
    Overwrite stored buckets with the values replayed from the ledger.

    Products whose buckets already match are left untouched.
    """
    if not yes:
        click.confirm("WARN This overwrites stored stock counters. Continue?", abort=True)

    rebuilt = 0
    for pid in _product_ids(product_id):
        try:
            before = ledger_service.verify_product_stock(pid)
            if before["consistent"]:
                continue
            levels = ledger_service.rebuild_product_stock(pid)
            db.session.commit()
            rebuilt += 1
            click.echo(f"PASS Product {pid}: {before['stored']} -> {levels.to_dict()}")
        except StockError as e:
            db.session.rollback()
            click.echo(f"FAIL Product {pid}: {e.message}")

    click.echo(f"\nRebuilt {rebuilt} product(s).")


@stock_group.command('rules')
def show_rules():
    """Print the adjustment transition table."""
    click.echo(f"{'Type':<14} {'Route':<22} {'Conditions':<28} Deltas")
    for adjustment_type in stock_rules.ADJUSTMENT_TYPES:
        source, target = stock_rules.route_for(adjustment_type)
        conditions = ", ".join(sorted(stock_rules.ALLOWED_CONDITIONS[adjustment_type]))
        deltas = stock_rules.compute_deltas(adjustment_type, 1).to_dict()
        moved = " ".join(f"{k}{v:+d}" for k, v in deltas.items() if v)
        click.echo(f"{adjustment_type:<14} {source + ' -> ' + target:<22} {conditions:<28} {moved}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
