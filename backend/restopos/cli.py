# Overview: Flask CLI command groups for bootstrap, seeding, and inventory inspection.

# backend/restopos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed [--password "Password123!"]
#   Demo branch with one user per role, a small menu with stock, and tables.
#
# Branch / staff / catalog:
# - python -m flask branches create --name "Main" --code "MAIN" --timezone "Asia/Jakarta"
# - python -m flask branches list
# - python -m flask users create --username cashier --email c@resto.local --password "Password123!" --role cashier --branch-id 1
# - python -m flask products create --branch-id 1 --name "Latte" --price 30000 --stock 20
# - python -m flask tables create --branch-id 1 --number T1 --capacity 4
#
# Inventory:
# - python -m flask inventory reconcile --branch-id 1 [--product-id 3]
#   Compare stock counters with the sum of inventory log entries.

import click
from flask.cli import with_appcontext

from .context import CallerContext
from .errors import OrderEngineError
from .extensions import db
from .models import Branch, Product
from .models.inventory import REASON_RESTOCK
from .permissions import VALID_ROLES
from .services import auth_service, stock_service, table_service
from .services.permission_service import get_role_permissions


def _operator_context() -> CallerContext:
    """Owner-level context for commands run by an operator at the console."""
    return CallerContext(
        user_id=0,
        role="owner",
        branch_id=None,
        permissions=get_role_permissions("owner"),
    )


def _create_product(branch_id: int, name: str, price: int, stock: int, **fields) -> Product:
    product = Product(branch_id=branch_id, name=name, price=price, stock=0, **fields)
    db.session.add(product)
    db.session.commit()
    if stock > 0:
        # Opening stock goes through the ledger so reconcile starts consistent
        stock_service.adjust_stock(
            branch_id, product.id, stock, REASON_RESTOCK, notes="Initial stock"
        )
    return product


# =============================================================================
# System
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


DEMO_MENU = (
    # name, category, price, stock, attributes
    ("Latte", "Coffee", 30000, 40, [
        {"name": "Size", "options": [
            {"label": "Regular", "price_modifier": 0},
            {"label": "Large", "price_modifier": 5000},
        ]},
        {"name": "Milk", "options": [
            {"label": "Dairy", "price_modifier": 0},
            {"label": "Oat", "price_modifier": 4000},
        ]},
    ]),
    ("Americano", "Coffee", 25000, 40, []),
    ("Nasi Goreng", "Food", 45000, 25, [
        {"name": "Spice", "options": [
            {"label": "Mild", "price_modifier": 0},
            {"label": "Hot", "price_modifier": 0},
        ]},
    ]),
    ("Croissant", "Pastry", 22000, 15, []),
)


@system_group.command('seed')
@click.option('--code', default='MAIN', help='Demo branch code')
@click.option('--timezone', default='UTC', help='Demo branch timezone')
@click.option('--password', default='Password123!', help='Password for every demo user')
@with_appcontext
def seed(code, timezone, password):
    """
    Seed a demo branch: one user per role, a small menu and four tables.

    Idempotent on the branch code; an existing branch is left untouched.

    SECURITY: Demo passwords are shared. Never run against production.
    """
    click.echo("START Seeding demo data...")

    branch = db.session.query(Branch).filter_by(code=code).first()
    if branch:
        click.echo(f"SKIP Branch {code} already exists (ID: {branch.id})")
        return

    branch = Branch(name="Main Branch", code=code, timezone=timezone, is_active=True)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")

    try:
        for role in VALID_ROLES:
            username = role if role == "owner" else f"{role}-{code.lower()}"
            if auth_service.find_user(username):
                click.echo(f"SKIP User {username} already exists")
                continue
            auth_service.create_user(
                username,
                f"{username}@resto.local",
                password,
                role=role,
                branch_id=branch.id,
                can_void=role in ("admin", "manager"),
            )
            click.echo(f"PASS Created user: {username} ({role})")

        for name, category, price, stock, attributes in DEMO_MENU:
            _create_product(
                branch.id, name, price, stock,
                category=category, attributes=attributes,
            )
            click.echo(f"PASS Created product: {name} (stock {stock})")

        ctx = _operator_context()
        for number in ("T1", "T2", "T3", "T4"):
            table_service.create_table(ctx, number=number, capacity=4, requested_branch_id=branch.id)
        click.echo("PASS Created tables T1-T4")
    except OrderEngineError as e:
        raise click.ClickException(e.message)

    click.echo("DONE Demo data ready.")


# =============================================================================
# Branches
# =============================================================================

@click.group('branches')
def branches_group():
    """Branch (tenant) management commands."""


@branches_group.command('create')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', required=True, help='Unique branch code')
@click.option('--timezone', default='UTC', help='IANA timezone used for the business day')
@click.option('--address', default=None, help='Street address')
@with_appcontext
def create_branch_cli(name, code, timezone, address):
    """Create a new branch."""
    if db.session.query(Branch.id).filter_by(code=code).first():
        raise click.ClickException(f"Branch code '{code}' already exists")

    branch = Branch(name=name, code=code, timezone=timezone, address=address, is_active=True)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")


@branches_group.command('list')
@with_appcontext
def list_branches_cli():
    """List all branches."""
    branches = db.session.query(Branch).order_by(Branch.id).all()
    if not branches:
        click.echo("No branches found.")
        return

    for branch in branches:
        status = "active" if branch.is_active else "inactive"
        click.echo(f"{branch.id:>4}  {branch.code:<10} {branch.name:<30} {branch.timezone:<20} {status}")


# =============================================================================
# Users
# =============================================================================

@click.group('users')
def users_group():
    """Staff account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Login name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), default='cashier', show_default=True)
@click.option('--branch-id', type=int, default=None, help='Branch (required except for owner)')
@click.option('--can-void', is_flag=True, help='Grant the void-order capability')
@with_appcontext
def create_user_cli(username, email, password, role, branch_id, can_void):
    """Create a staff user."""
    try:
        user = auth_service.create_user(
            username, email, password,
            role=role, branch_id=branch_id, can_void=can_void,
        )
    except OrderEngineError as e:
        raise click.ClickException(e.message)

    scope = "all branches" if user.branch_id is None else f"branch {user.branch_id}"
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role}, {scope})")


# =============================================================================
# Products
# =============================================================================

@click.group('products')
def products_group():
    """Menu catalog commands."""


@products_group.command('create')
@click.option('--branch-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--price', type=click.IntRange(min=0), required=True, help='Whole currency units')
@click.option('--stock', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--sku', default=None)
@click.option('--category', default='General', show_default=True)
@with_appcontext
def create_product_cli(branch_id, name, price, stock, sku, category):
    """Create a product; opening stock is logged as RESTOCK."""
    if db.session.get(Branch, branch_id) is None:
        raise click.ClickException(f"Branch {branch_id} does not exist")

    try:
        product = _create_product(branch_id, name, price, stock, sku=sku, category=category)
    except OrderEngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock {stock})")


# =============================================================================
# Tables
# =============================================================================

@click.group('tables')
def tables_group():
    """Dining table commands."""


@tables_group.command('create')
@click.option('--branch-id', type=int, required=True)
@click.option('--number', required=True, help='Table number, unique per branch')
@click.option('--capacity', type=int, default=4, show_default=True)
@click.option('--name', default=None)
@with_appcontext
def create_table_cli(branch_id, number, capacity, name):
    """Create a dining table."""
    try:
        table = table_service.create_table(
            _operator_context(),
            number=number,
            capacity=capacity,
            name=name,
            requested_branch_id=branch_id,
        )
    except OrderEngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created table {table.number} (ID: {table.id}, capacity {table.capacity})")


# =============================================================================
# Inventory
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger inspection commands."""


@inventory_group.command('reconcile')
@click.option('--branch-id', type=int, required=True)
@click.option('--product-id', type=int, default=None, help='Limit to one product')
@with_appcontext
def reconcile_cli(branch_id, product_id):
    """Report products whose stock differs from their logged total."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [
            row.id for row in
            db.session.query(Product.id).filter_by(branch_id=branch_id).order_by(Product.id)
        ]

    drifted = 0
    for pid in product_ids:
        try:
            report = stock_service.reconcile(branch_id, pid)
        except OrderEngineError as e:
            raise click.ClickException(e.message)

        marker = "PASS" if report["consistent"] else "FAIL"
        if not report["consistent"]:
            drifted += 1
        click.echo(
            f"{marker} {report['name']} (ID: {pid}): stock={report['stock']} "
            f"logged={report['logged_total']} diff={report['difference']}"
        )

    click.echo(f"Checked {len(product_ids)} product(s), {drifted} inconsistent.")


def register_commands(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(tables_group)
    app.cli.add_command(inventory_group)
