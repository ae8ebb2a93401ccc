# Overview: Pytest coverage for branch scoping of reads and writes.

"""
Tenant Isolation Tests

Staff only ever see and touch their own branch; another branch's rows
answer exactly like rows that do not exist. Owners read across branches
and must name a branch to write.
"""

import pytest

from restopos.errors import NotFoundError
from restopos.services import lifecycle_service, order_service, payment_service, stock_service, table_service
from restopos.validation import OrderFilters

from conftest import pos_order, stock_of


@pytest.fixture
def order_a(manager_ctx, croissant):
    return order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))


@pytest.fixture
def order_b(manager_b_ctx, product_b):
    return order_service.create_order(manager_b_ctx, pos_order((product_b.id, 1)))


class TestStaffScope:

    def test_list_only_own_branch(self, manager_ctx, manager_b_ctx, order_a, order_b):
        orders, pagination = order_service.list_orders(manager_b_ctx, OrderFilters())

        assert [o.id for o in orders] == [order_b.id]
        assert pagination['total'] == 1

    def test_requested_branch_ignored_for_staff(self, manager_b_ctx, branch_a, order_a, order_b):
        orders, _ = order_service.list_orders(manager_b_ctx, OrderFilters(), branch_a.id)
        assert [o.id for o in orders] == [order_b.id]

    def test_foreign_order_not_found(self, manager_b_ctx, order_a):
        with pytest.raises(NotFoundError) as exc:
            order_service.get_order(manager_b_ctx, order_a.id)
        assert exc.value.message == 'Order not found or access denied'

    def test_foreign_order_cannot_be_mutated(self, manager_ctx, manager_b_ctx, order_a, croissant):
        with pytest.raises(NotFoundError):
            lifecycle_service.update_status(manager_b_ctx, order_a.id, 'CONFIRMED')
        with pytest.raises(NotFoundError):
            lifecycle_service.void_order(manager_b_ctx, order_a.id)
        with pytest.raises(NotFoundError):
            payment_service.pay(manager_b_ctx, order_a.id, 'CASH', 100000)

        assert stock_of(croissant.id) == 9
        assert order_service.get_order(manager_ctx, order_a.id).status == "PENDING"

    def test_foreign_tables_hidden(self, manager_b_ctx, table_a):
        with pytest.raises(NotFoundError):
            table_service.reset(manager_b_ctx, table_a.id, force=True)
        assert table_service.summary(manager_b_ctx)['total'] == 0

    def test_foreign_product_stock_untouchable(self, branch_b, croissant):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(branch_b.id, croissant.id, -5, 'WASTAGE')
        assert stock_of(croissant.id) == 10

    def test_kitchen_queue_scoped(self, manager_ctx, manager_b_ctx, order_a, order_b):
        lifecycle_service.update_status(manager_ctx, order_a.id, 'CONFIRMED')
        lifecycle_service.update_status(manager_b_ctx, order_b.id, 'CONFIRMED')

        queue = order_service.kitchen_orders(manager_b_ctx)
        assert [o.id for o in queue['orders']] == [order_b.id]


class TestOwnerScope:

    def test_owner_reads_all_branches(self, owner_ctx, order_a, order_b):
        orders, _ = order_service.list_orders(owner_ctx, OrderFilters())
        assert {o.id for o in orders} == {order_a.id, order_b.id}

    def test_owner_can_narrow_to_one_branch(self, owner_ctx, branch_b, order_a, order_b):
        orders, _ = order_service.list_orders(owner_ctx, OrderFilters(), branch_b.id)
        assert [o.id for o in orders] == [order_b.id]

    def test_owner_reads_any_order(self, owner_ctx, order_b):
        assert order_service.get_order(owner_ctx, order_b.id).id == order_b.id


class TestSessionBranch:

    def test_session_branch_fixed_at_login(self, client, manager_b_headers, branch_a, order_a):
        response = client.get(f'/api/orders?branch_id={branch_a.id}', headers=manager_b_headers)

        assert response.status_code == 200
        assert response.json['orders'] == []

    def test_tracking_can_be_narrowed_by_branch(self, client, branch_b, order_a):
        response = client.get(f'/api/orders/track/{order_a.order_number}?branch_id={branch_b.id}')
        assert response.status_code == 404
