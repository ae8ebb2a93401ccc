# Overview: Pytest coverage for the stock ledger primitives and inventory log.

"""
Stock Ledger Tests

Verifies:
1. Conditional decrement never drives stock below zero
2. A failed multi-line batch leaves no partial deduction behind
3. Release is unconditional (max_stock is advisory)
4. Manual adjustments write log entries that reconcile with the counter
"""

import pytest

from restopos.errors import InsufficientStockError, NotFoundError, ValidationError
from restopos.extensions import db
from restopos.models import InventoryLog
from restopos.models.inventory import REASON_ADJUSTMENT, REASON_RESTOCK, REASON_WASTAGE
from restopos.services import stock_service
from restopos.services.stock_service import StockLine

from conftest import make_product, stock_of


class TestReserve:

    def test_reserve_decrements_and_reports_movement(self, branch_a, latte):
        (movement,) = stock_service.reserve(branch_a.id, [StockLine(latte.id, 2)])
        db.session.commit()

        assert movement.qty_before == 3
        assert movement.qty_after == 1
        assert movement.product_name == "Latte"
        assert stock_of(latte.id) == 1

    def test_reserve_exact_remaining_stock(self, branch_a, latte):
        stock_service.reserve(branch_a.id, [StockLine(latte.id, 3)])
        db.session.commit()
        assert stock_of(latte.id) == 0

    def test_insufficient_stock_reports_available(self, branch_a, latte):
        with pytest.raises(InsufficientStockError) as exc:
            stock_service.reserve(branch_a.id, [StockLine(latte.id, 4)])

        assert exc.value.details["requested"] == 4
        assert exc.value.details["available"] == 3
        assert exc.value.status_code == 400
        db.session.rollback()
        assert stock_of(latte.id) == 3

    def test_failed_second_line_restores_first(self, branch_a, latte, croissant):
        with pytest.raises(InsufficientStockError):
            stock_service.reserve(
                branch_a.id,
                [StockLine(croissant.id, 2), StockLine(latte.id, 5)],
                commit=True,
            )

        assert stock_of(croissant.id) == 10
        assert stock_of(latte.id) == 3

    def test_zero_qty_rejected_before_any_decrement(self, branch_a, latte, croissant):
        with pytest.raises(ValidationError):
            stock_service.reserve(branch_a.id, [StockLine(croissant.id, 1), StockLine(latte.id, 0)])
        assert stock_of(croissant.id) == 10

    def test_inactive_product_rejected(self, branch_a, latte):
        latte.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError):
            stock_service.reserve(branch_a.id, [StockLine(latte.id, 1)])

    def test_product_of_other_branch_not_found(self, branch_a, product_b):
        with pytest.raises(NotFoundError):
            stock_service.reserve(branch_a.id, [StockLine(product_b.id, 1)])
        db.session.rollback()
        assert stock_of(product_b.id) == 10


class TestRelease:

    def test_release_adds_back(self, branch_a, latte):
        (movement,) = stock_service.release(branch_a.id, [StockLine(latte.id, 2)], commit=True)
        assert movement.qty_before == 3
        assert movement.qty_after == 5
        assert stock_of(latte.id) == 5

    def test_release_may_exceed_max_stock(self, branch_a):
        product = make_product(branch_a, "Tea", 15000, 5, max_stock=5)
        stock_service.release(branch_a.id, [StockLine(product.id, 3)], commit=True)
        assert stock_of(product.id) == 8

    def test_release_of_missing_product_is_skipped(self, branch_a):
        assert stock_service.release(branch_a.id, [StockLine(9999, 1)]) == []


class TestAdjustStock:

    def test_restock_logs_entry(self, branch_a, latte, manager_a):
        entry = stock_service.adjust_stock(
            branch_a.id, latte.id, 7, REASON_RESTOCK, actor_user_id=manager_a.id, notes="Delivery"
        )

        assert entry.qty_change == 7
        assert entry.qty_before == 3
        assert entry.qty_after == 10
        assert entry.actor_user_id == manager_a.id
        assert stock_of(latte.id) == 10

    def test_wastage_cannot_go_negative(self, branch_a, latte):
        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(branch_a.id, latte.id, -4, REASON_WASTAGE)
        assert stock_of(latte.id) == 3

    def test_wastage_logs_negative_change(self, branch_a, latte):
        entry = stock_service.adjust_stock(branch_a.id, latte.id, -1, REASON_WASTAGE)
        assert entry.qty_change == -1
        assert entry.qty_after == 2

    @pytest.mark.parametrize("reason", ["ORDER", "RETURN", "BOGUS"])
    def test_order_reasons_not_allowed_manually(self, branch_a, latte, reason):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(branch_a.id, latte.id, 1, reason)

    def test_zero_change_rejected(self, branch_a, latte):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(branch_a.id, latte.id, 0, REASON_ADJUSTMENT)

    def test_unknown_product_not_found(self, branch_a):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(branch_a.id, 9999, 5, REASON_RESTOCK)


class TestLogsAndReconcile:

    def test_reconcile_consistent_after_adjustments(self, branch_a, latte):
        stock_service.adjust_stock(branch_a.id, latte.id, 5, REASON_RESTOCK)
        stock_service.adjust_stock(branch_a.id, latte.id, -2, REASON_WASTAGE)

        report = stock_service.reconcile(branch_a.id, latte.id)
        assert report["stock"] == 6
        assert report["logged_total"] == 6
        assert report["consistent"] is True

    def test_reconcile_detects_unlogged_change(self, branch_a, latte):
        stock_service.release(branch_a.id, [StockLine(latte.id, 2)], commit=True)

        report = stock_service.reconcile(branch_a.id, latte.id)
        assert report["difference"] == 2
        assert report["consistent"] is False

    def test_list_logs_filters_by_reason(self, branch_a, latte, croissant):
        stock_service.adjust_stock(branch_a.id, latte.id, -1, REASON_WASTAGE)

        logs, pagination = stock_service.list_logs(branch_a.id, reason=REASON_WASTAGE)
        assert pagination["total"] == 1
        assert logs[0].product_id == latte.id

        logs, pagination = stock_service.list_logs(branch_a.id, product_id=croissant.id)
        assert [entry.reason for entry in logs] == [REASON_RESTOCK]

    def test_log_arithmetic_holds_for_every_entry(self, branch_a, latte):
        stock_service.adjust_stock(branch_a.id, latte.id, 4, REASON_ADJUSTMENT)
        stock_service.adjust_stock(branch_a.id, latte.id, -3, REASON_WASTAGE)

        for entry in db.session.query(InventoryLog).all():
            assert entry.qty_after == entry.qty_before + entry.qty_change
