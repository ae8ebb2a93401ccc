"""
Pytest fixtures for restopos backend tests.

Provides an app on in-memory SQLite per test, two branches with staff of
every role, a small menu with stock, tables, and bearer-token helpers.
"""

import pytest

from restopos import create_app
from restopos.context import CallerContext
from restopos.extensions import db
from restopos.models import Branch, DiningTable, Product
from restopos.models.inventory import REASON_RESTOCK
from restopos.services import auth_service, stock_service
from restopos.services.event_service import DomainEvent, get_notifier
from restopos.services.permission_service import build_context
from restopos.validation import CreateOrderInput, GuestInfo, OrderLineInput

PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'DB_RETRY_BACKOFF': 0.01,
    'TAX_RATE_BPS': 1000,
    'SERVICE_CHARGE_RATE_BPS': 500,
    'ORDER_CREATION_MODE': 'transaction',
}


@pytest.fixture(scope='function')
def app():
    """Create application with a fresh database for each test."""
    app = create_app(dict(TEST_CONFIG))

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


@pytest.fixture(scope='function')
def events(app):
    """Every domain event published during the test, in order."""
    captured = []
    get_notifier().subscribe(DomainEvent, captured.append)
    return captured


# =============================================================================
# Tenancy
# =============================================================================

@pytest.fixture(scope='function')
def branch_a(db_session):
    branch = Branch(name="Branch A", code="A", timezone="UTC", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session):
    branch = Branch(name="Branch B", code="B", timezone="UTC", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


def make_user(username, role, branch=None, can_void=False):
    return auth_service.create_user(
        username,
        f"{username}@resto.local",
        PASSWORD,
        role=role,
        branch_id=branch.id if branch is not None else None,
        can_void=can_void,
    )


@pytest.fixture(scope='function')
def owner(db_session):
    return make_user("owner", "owner")


@pytest.fixture(scope='function')
def manager_a(branch_a):
    return make_user("manager_a", "manager", branch_a, can_void=True)


@pytest.fixture(scope='function')
def cashier_a(branch_a):
    return make_user("cashier_a", "cashier", branch_a)


@pytest.fixture(scope='function')
def kitchen_a(branch_a):
    return make_user("kitchen_a", "kitchen", branch_a)


@pytest.fixture(scope='function')
def manager_b(branch_b):
    return make_user("manager_b", "manager", branch_b, can_void=True)


@pytest.fixture(scope='function')
def manager_ctx(manager_a, branch_a):
    return build_context(manager_a, branch_a.id)


@pytest.fixture(scope='function')
def cashier_ctx(cashier_a, branch_a):
    return build_context(cashier_a, branch_a.id)


@pytest.fixture(scope='function')
def kitchen_ctx(kitchen_a, branch_a):
    return build_context(kitchen_a, branch_a.id)


@pytest.fixture(scope='function')
def owner_ctx(owner):
    return build_context(owner, None)


@pytest.fixture(scope='function')
def manager_b_ctx(manager_b, branch_b):
    return build_context(manager_b, branch_b.id)


@pytest.fixture(scope='function')
def guest_ctx():
    return CallerContext.guest()


# =============================================================================
# Catalog / tables
# =============================================================================

def make_product(branch, name, price, stock, attributes=None, **fields):
    """Product with opening stock booked through the ledger as RESTOCK."""
    product = Product(branch_id=branch.id, name=name, price=price, stock=0,
                      attributes=attributes or [], **fields)
    db.session.add(product)
    db.session.commit()
    if stock:
        stock_service.adjust_stock(branch.id, product.id, stock, REASON_RESTOCK, notes="Initial stock")
    return product


def stock_of(product_id):
    return db.session.query(Product.stock).filter_by(id=product_id).scalar()


@pytest.fixture(scope='function')
def latte(branch_a):
    return make_product(
        branch_a, "Latte", 30000, 3,
        attributes=[
            {"name": "Size", "options": [
                {"label": "Regular", "price_modifier": 0},
                {"label": "Large", "price_modifier": 5000},
            ]},
        ],
    )


@pytest.fixture(scope='function')
def croissant(branch_a):
    return make_product(branch_a, "Croissant", 22000, 10)


@pytest.fixture(scope='function')
def product_b(branch_b):
    return make_product(branch_b, "Espresso B", 20000, 10)


@pytest.fixture(scope='function')
def table_a(db_session, branch_a):
    table = DiningTable(branch_id=branch_a.id, number="T1", name="Window", capacity=4)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def table_b(db_session, branch_b):
    table = DiningTable(branch_id=branch_b.id, number="T1", capacity=2)
    db_session.add(table)
    db_session.commit()
    return table


def pos_order(*lines, table_id=None, apply_service_charge=False, notes=None):
    """CreateOrderInput for a POS order; lines are (product_id, qty) pairs."""
    return CreateOrderInput(
        order_source="POS",
        items=tuple(OrderLineInput(product_id=pid, qty=qty) for pid, qty in lines),
        table_id=table_id,
        notes=notes,
        apply_service_charge=apply_service_charge,
    )


def web_order(*lines, name="Dewi", whatsapp="+62811000111", pax=2, table_id=None):
    return CreateOrderInput(
        order_source="WEB",
        items=tuple(OrderLineInput(product_id=pid, qty=qty) for pid, qty in lines),
        table_id=table_id,
        guest_info=GuestInfo(name=name, whatsapp=whatsapp, pax=pax),
    )


# =============================================================================
# HTTP helpers
# =============================================================================

def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_a):
    return auth_headers(get_auth_token(client, cashier_a.username))


@pytest.fixture(scope='function')
def kitchen_headers(client, kitchen_a):
    return auth_headers(get_auth_token(client, kitchen_a.username))


@pytest.fixture(scope='function')
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, owner.username))


@pytest.fixture(scope='function')
def manager_b_headers(client, manager_b):
    return auth_headers(get_auth_token(client, manager_b.username))
