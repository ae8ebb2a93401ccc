# Overview: Multi-threaded tests for stock, numbering, tables and void under contention.

"""
Concurrency Tests

Runs real threads against a file-backed SQLite database, each thread in
its own app context and therefore its own session and connection.

Verifies:
1. N concurrent orders for a product with stock S and qty Q: exactly
   S // Q succeed, stock never goes negative
2. Order numbers stay unique under concurrent creation
3. Two orders never occupy one table
4. Concurrent voids of one order restore stock exactly once
"""

import threading

import pytest

from restopos import create_app
from restopos.context import CallerContext
from restopos.errors import AlreadyCancelledError, InsufficientStockError, TableUnavailableError
from restopos.extensions import db
from restopos.models import Branch, DiningTable, InventoryLog, Order
from restopos.models.inventory import REASON_RETURN
from restopos.services import lifecycle_service, order_service
from restopos.services.order_service import MODE_SAGA, MODE_TRANSACTION
from restopos.services.permission_service import get_role_permissions

from conftest import TEST_CONFIG, make_product, make_user, pos_order, stock_of

THREADS = 8


@pytest.fixture(params=[MODE_TRANSACTION, MODE_SAGA])
def file_app(request, tmp_path):
    config = dict(
        TEST_CONFIG,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'pos.sqlite3'}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False, "timeout": 30}},
        DB_RETRY_ATTEMPTS=5,
        ORDER_CREATION_MODE=request.param,
    )
    app = create_app(config)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def setup(file_app):
    branch = Branch(name="Branch A", code="A", timezone="UTC", is_active=True)
    db.session.add(branch)
    db.session.commit()
    manager = make_user("manager_a", "manager", branch, can_void=True)
    ctx = CallerContext(
        user_id=manager.id,
        role="manager",
        branch_id=branch.id,
        permissions=get_role_permissions("manager"),
    )
    return branch, ctx


def run_concurrently(app, func, count=THREADS):
    """Start count threads at once; collect each result or raised exception."""
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = func(index)
            except Exception as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def successes(results):
    return [r for r in results if isinstance(r, dict)]


def unexpected(results, *allowed):
    return [r for r in results if isinstance(r, Exception) and not isinstance(r, allowed)]


def _create(ctx, data):
    order = order_service.create_order(ctx, data)
    return {"id": order.id, "order_number": order.order_number}


class TestConcurrentStock:

    def test_exactly_stock_div_qty_orders_succeed(self, file_app, setup):
        branch, ctx = setup
        product = make_product(branch, "Latte", 30000, 5)
        product_id = product.id

        results = run_concurrently(file_app, lambda _: _create(ctx, pos_order((product_id, 2))))

        assert unexpected(results, InsufficientStockError) == []
        assert len(successes(results)) == 5 // 2
        assert stock_of(product_id) == 1
        assert db.session.query(Order).count() == 2

    def test_order_numbers_unique(self, file_app, setup):
        branch, ctx = setup
        product = make_product(branch, "Croissant", 22000, 50)
        product_id = product.id

        results = run_concurrently(file_app, lambda _: _create(ctx, pos_order((product_id, 1))))

        assert unexpected(results) == []
        numbers = sorted(r["order_number"] for r in successes(results))
        assert len(set(numbers)) == THREADS
        assert [n[-4:] for n in numbers] == [f"{i:04d}" for i in range(1, THREADS + 1)]
        assert stock_of(product_id) == 50 - THREADS

    def test_one_table_one_order(self, file_app, setup):
        branch, ctx = setup
        product = make_product(branch, "Croissant", 22000, 50)
        product_id = product.id
        table = DiningTable(branch_id=branch.id, number="T1", capacity=4)
        db.session.add(table)
        db.session.commit()
        table_id = table.id

        results = run_concurrently(
            file_app, lambda _: _create(ctx, pos_order((product_id, 1), table_id=table_id))
        )

        assert unexpected(results, TableUnavailableError) == []
        (winner,) = successes(results)
        assert db.session.query(Order).count() == 1
        assert stock_of(product_id) == 49

        table_row = db.session.query(DiningTable).populate_existing().filter_by(id=table_id).one()
        assert table_row.current_order_id == winner["id"]


class TestConcurrentVoid:

    def test_void_restores_stock_once(self, file_app, setup):
        branch, ctx = setup
        product = make_product(branch, "Latte", 30000, 5)
        product_id = product.id
        order_id = order_service.create_order(ctx, pos_order((product_id, 3))).id
        assert stock_of(product_id) == 2

        def void(_):
            return {"status": lifecycle_service.void_order(ctx, order_id).status}

        results = run_concurrently(file_app, void)

        assert unexpected(results, AlreadyCancelledError) == []
        assert len(successes(results)) == 1
        assert stock_of(product_id) == 5
        assert db.session.query(InventoryLog).filter_by(
            reference_order_id=order_id, reason=REASON_RETURN
        ).count() == 1
