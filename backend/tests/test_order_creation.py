# Overview: Pytest coverage for the order creation pipeline in both transaction and saga modes.

"""
Order Creation Tests

Every test runs against both creation variants; stock safety, numbering
and financials must not depend on the variant.
"""

import re

import pytest

from restopos.errors import (
    AuthenticationError,
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    TableUnavailableError,
    ValidationError,
)
from restopos.extensions import db
from restopos.models import DiningTable, InventoryLog, Order, OrderSequence
from restopos.models.inventory import REASON_ORDER
from restopos.models.tables import TABLE_OCCUPIED
from restopos.services import order_service
from restopos.services.event_service import NewOrderEvent
from restopos.services.order_service import MODE_SAGA, MODE_TRANSACTION
from restopos.services.sequence_service import format_order_number, next_order_number
from restopos.time_utils import business_date, utcnow
from restopos.validation import AttributeSelection, CreateOrderInput, OrderLineInput

from conftest import make_product, pos_order, stock_of, web_order

ORDER_NUMBER_RE = re.compile(r"^(POS|WEB)-\d{8}-\d{4}$")


@pytest.fixture(params=[MODE_TRANSACTION, MODE_SAGA])
def mode(request, app):
    app.config["ORDER_CREATION_MODE"] = request.param
    return request.param


def today_prefix(source="POS"):
    return f"{source}-{business_date(utcnow(), 'UTC'):%Y%m%d}-"


class TestCreateOrder:

    def test_latte_scenario(self, mode, manager_ctx, latte):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 2)))

        assert order.order_number == today_prefix() + "0001"
        assert order.status == "PENDING"
        assert order.payment_status == "UNPAID"
        assert order.subtotal == 60000
        assert order.tax == 6000
        assert order.service_charge == 0
        assert order.total == 66000
        assert stock_of(latte.id) == 1

        with pytest.raises(InsufficientStockError) as exc:
            order_service.create_order(manager_ctx, pos_order((latte.id, 2)))
        assert exc.value.requested == 2
        assert exc.value.available == 1
        assert stock_of(latte.id) == 1

    def test_sequential_numbers_same_day(self, mode, manager_ctx, croissant):
        first = order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        second = order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))

        assert first.order_number.endswith("-0001")
        assert second.order_number.endswith("-0002")
        assert ORDER_NUMBER_RE.match(first.order_number)
        assert ORDER_NUMBER_RE.match(second.order_number)

    def test_web_and_pos_share_the_daily_counter(self, mode, manager_ctx, guest_ctx, branch_a, croissant):
        pos = order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        web = order_service.create_order(
            guest_ctx, web_order((croissant.id, 1)), requested_branch_id=branch_a.id
        )

        assert pos.order_number == today_prefix("POS") + "0001"
        assert web.order_number == today_prefix("WEB") + "0002"
        assert web.user_id is None
        assert web.guest_name == "Dewi"

    def test_numbers_unique_across_branches(self, mode, manager_ctx, manager_b_ctx, croissant, product_b):
        first = order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        second = order_service.create_order(manager_b_ctx, pos_order((product_b.id, 1)))

        assert first.order_number == today_prefix() + "0001"
        assert second.order_number == today_prefix() + "0002"

        tracked = order_service.track_order(first.order_number)
        assert tracked["items"] == [{"name": "Croissant", "qty": 1}]

    def test_financial_identity(self, mode, manager_ctx, latte, croissant):
        order = order_service.create_order(
            manager_ctx,
            pos_order((latte.id, 1), (croissant.id, 3), apply_service_charge=True),
        )

        assert order.subtotal == sum(item.price_at_moment * item.qty for item in order.items)
        assert order.subtotal == 30000 + 3 * 22000
        assert order.tax == 9600
        assert order.service_charge == 4800
        assert order.total == order.subtotal - order.discount + order.tax + order.service_charge

    def test_attribute_modifier_comes_from_catalog(self, mode, manager_ctx, latte):
        data = CreateOrderInput(
            order_source="POS",
            items=(
                OrderLineInput(
                    product_id=latte.id,
                    qty=1,
                    attributes=(AttributeSelection(name="Size", selected="Large"),),
                ),
            ),
        )
        order = order_service.create_order(manager_ctx, data)

        (item,) = order.items
        assert item.price_at_moment == 35000
        assert [(a.name, a.selected, a.price_modifier) for a in item.attributes] == [("Size", "Large", 5000)]
        assert order.subtotal == 35000

    def test_unknown_attribute_option_rejected(self, mode, manager_ctx, latte):
        data = CreateOrderInput(
            order_source="POS",
            items=(OrderLineInput(latte.id, 1, attributes=(AttributeSelection("Size", "Huge"),)),),
        )
        with pytest.raises(ValidationError):
            order_service.create_order(manager_ctx, data)
        assert stock_of(latte.id) == 3

    def test_snapshot_survives_price_change(self, mode, manager_ctx, latte):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 1)))
        order_id = order.id

        latte.price = 99000
        latte.name = "Latte (new recipe)"
        db.session.commit()

        reloaded = db.session.get(Order, order_id)
        assert reloaded.items[0].price_at_moment == 30000
        assert reloaded.items[0].name == "Latte"
        assert reloaded.total == 33000

    def test_failed_batch_restores_earlier_lines(self, mode, manager_ctx, latte, croissant):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(manager_ctx, pos_order((croissant.id, 4), (latte.id, 9)))

        assert stock_of(croissant.id) == 10
        assert stock_of(latte.id) == 3
        assert db.session.query(Order).count() == 0

    def test_order_logs_written(self, mode, manager_ctx, latte, croissant):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 2), (croissant.id, 1)))

        logs = (
            db.session.query(InventoryLog)
            .filter_by(reference_order_id=order.id, reason=REASON_ORDER)
            .order_by(InventoryLog.id)
            .all()
        )
        assert [(entry.product_id, entry.qty_change) for entry in logs] == [(latte.id, -2), (croissant.id, -1)]
        assert logs[0].qty_before == 3
        assert logs[0].qty_after == 1

    def test_unknown_product_not_found(self, mode, manager_ctx, latte):
        with pytest.raises(NotFoundError):
            order_service.create_order(manager_ctx, pos_order((latte.id, 1), (9999, 1)))
        assert stock_of(latte.id) == 3

    def test_inactive_product_rejected(self, mode, manager_ctx, branch_a):
        product = make_product(branch_a, "Seasonal", 40000, 5, is_active=False)
        with pytest.raises(ValidationError):
            order_service.create_order(manager_ctx, pos_order((product.id, 1)))
        assert stock_of(product.id) == 5


class TestDineIn:

    def test_table_occupied_by_new_order(self, mode, manager_ctx, latte, table_a):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 1), table_id=table_a.id))

        table = db.session.query(DiningTable).populate_existing().filter_by(id=table_a.id).one()
        assert table.status == TABLE_OCCUPIED
        assert table.current_order_id == order.id
        assert order.table_number == "T1"

    def test_occupied_table_rejects_second_order(self, mode, manager_ctx, latte, croissant, table_a):
        order_service.create_order(manager_ctx, pos_order((latte.id, 1), table_id=table_a.id))

        with pytest.raises(TableUnavailableError):
            order_service.create_order(manager_ctx, pos_order((croissant.id, 2), table_id=table_a.id))

        assert stock_of(croissant.id) == 10
        assert db.session.query(Order).count() == 1

    def test_table_of_other_branch_not_found(self, mode, manager_ctx, latte, table_b):
        with pytest.raises(NotFoundError):
            order_service.create_order(manager_ctx, pos_order((latte.id, 1), table_id=table_b.id))
        assert stock_of(latte.id) == 3


class TestCallers:

    def test_guest_cannot_create_pos_order(self, guest_ctx, branch_a, latte):
        with pytest.raises(AuthenticationError):
            order_service.create_order(guest_ctx, pos_order((latte.id, 1)), requested_branch_id=branch_a.id)

    def test_guest_web_order_needs_branch(self, guest_ctx, latte):
        with pytest.raises(ValidationError):
            order_service.create_order(guest_ctx, web_order((latte.id, 1)))

    def test_kitchen_cannot_create_orders(self, kitchen_ctx, latte):
        with pytest.raises(PermissionDeniedError):
            order_service.create_order(kitchen_ctx, pos_order((latte.id, 1)))
        assert stock_of(latte.id) == 3

    def test_owner_must_name_branch(self, owner_ctx, branch_a, latte):
        with pytest.raises(ValidationError):
            order_service.create_order(owner_ctx, pos_order((latte.id, 1)))

        order = order_service.create_order(owner_ctx, pos_order((latte.id, 1)), requested_branch_id=branch_a.id)
        assert order.branch_id == branch_a.id

    def test_staff_cannot_write_into_other_branch(self, manager_ctx, branch_a, branch_b, latte, product_b):
        order = order_service.create_order(
            manager_ctx, pos_order((latte.id, 1)), requested_branch_id=branch_b.id
        )
        assert order.branch_id == branch_a.id

        with pytest.raises(NotFoundError):
            order_service.create_order(manager_ctx, pos_order((product_b.id, 1)), requested_branch_id=branch_b.id)
        assert stock_of(product_b.id) == 10


class TestEvents:

    def test_new_order_event_published_after_commit(self, mode, manager_ctx, latte, table_a, events):
        order = order_service.create_order(manager_ctx, pos_order((latte.id, 2), table_id=table_a.id))

        (event,) = [e for e in events if isinstance(e, NewOrderEvent)]
        assert event.order_id == order.id
        assert event.order_number == order.order_number
        assert event.items_count == 1
        assert event.total == 66000
        assert event.table_number == "T1"
        assert event.table_name == "Window"
        assert event.to_dict()["name"] == "new_order"

    def test_no_event_for_failed_creation(self, mode, manager_ctx, latte, events):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(manager_ctx, pos_order((latte.id, 5)))
        assert events == []


class TestSequence:

    def test_format(self):
        from datetime import date
        assert format_order_number("POS", date(2025, 1, 1), 1) == "POS-20250101-0001"
        assert format_order_number("WEB", date(2025, 12, 31), 123) == "WEB-20251231-0123"

    def test_business_day_follows_branch_timezone(self, branch_a):
        from datetime import datetime
        branch_a.timezone = "Asia/Jakarta"
        db.session.commit()

        # 18:30 UTC on Jan 1 is already Jan 2 in Jakarta (UTC+7)
        number = next_order_number(branch_a, "POS", at=datetime(2025, 1, 1, 18, 30))
        db.session.commit()
        assert number == "POS-20250102-0001"

    def test_counter_is_shared_by_branches(self, branch_a, branch_b):
        from datetime import datetime
        at = datetime(2025, 1, 1, 9, 0)
        assert next_order_number(branch_a, "POS", at=at) == "POS-20250101-0001"
        assert next_order_number(branch_b, "POS", at=at) == "POS-20250101-0002"
        assert next_order_number(branch_a, "WEB", at=at) == "WEB-20250101-0003"
        db.session.commit()
        assert db.session.query(OrderSequence).count() == 1

    def test_duplicate_number_rejected_by_database(self, manager_ctx, manager_b_ctx, croissant, product_b):
        from sqlalchemy.exc import IntegrityError
        order_service.create_order(manager_ctx, pos_order((croissant.id, 1)))
        other = order_service.create_order(manager_b_ctx, pos_order((product_b.id, 1)))

        other.order_number = today_prefix() + "0001"
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()
