# backend/modules/orders/tests/test_order_service.py

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from core.database import SessionLocal
from core.database_utils import commit_versioned
from core.exceptions import (
    APIError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    ItemNotFoundError,
    ValidationError,
)
from modules.core.models import RestaurantStatus
from modules.tables.models.table_models import TableStatus
from tests.factories import OrderFactory, RestaurantFactory, TableFactory
from ..enums.order_enums import DiscountType, OrderItemStatus
from ..enums.payment_enums import PaymentMethod
from ..models.order_models import Order
from ..schemas.order_schemas import (
    CancelOrderRequest,
    DiscountRequest,
    OrderCreate,
    OrderItemIn,
    OrderUpdate,
)
from ..services import order_service
from ..services.order_service import (
    apply_discount_service,
    cancel_order_service,
    cascade_order_status_service,
    create_order_service,
    get_orders_service,
    update_item_status_service,
    update_order_service,
)


def checkout(restaurant_id=None, table_id=None, **kwargs):
    return OrderCreate(
        restaurant_id=restaurant_id,
        table_id=table_id,
        items=kwargs.pop("items", [
            OrderItemIn(menu_item_id="m-1", name="Paneer Tikka", price=Decimal("200.00"), quantity=2),
            OrderItemIn(menu_item_id="m-2", name="Dal Makhani", price=Decimal("100.00"), quantity=1),
        ]),
        payment_method=kwargs.pop("payment_method", PaymentMethod.RAZORPAY),
        **kwargs,
    )


@pytest.fixture
def restaurant(db_session):
    return RestaurantFactory(tax_rate=Decimal("5"))


class TestCreateOrder:

    async def test_takeaway_order_starts_pending(self, db_session, restaurant):
        order = await create_order_service(db_session, checkout(restaurant.id))

        assert order.order_status == "pending_payment"
        assert order.payment_status == "pending"
        assert order.order_type == "takeaway"
        assert order.session_id is None
        assert order.subtotal == Decimal("500.00")
        assert order.tax == Decimal("25.00")
        assert order.total == Decimal("525.00")
        assert all(item["item_status"] == "queued" for item in order.items)
        assert len(order.order_token) >= 32

    async def test_order_numbers_increase_per_restaurant(self, db_session, restaurant):
        other = RestaurantFactory()
        first = await create_order_service(db_session, checkout(restaurant.id))
        second = await create_order_service(db_session, checkout(restaurant.id))
        elsewhere = await create_order_service(db_session, checkout(other.id))

        assert (first.order_number, second.order_number) == (1, 2)
        assert elsewhere.order_number == 1

    async def test_table_orders_share_the_active_session(self, db_session, restaurant):
        table = TableFactory(restaurant_id=restaurant.id)

        first = await create_order_service(db_session, checkout(table_id=table.id))
        second = await create_order_service(db_session, checkout(table_id=table.id))

        db_session.refresh(table)
        assert first.order_type == "dine_in"
        assert first.restaurant_id == restaurant.id
        assert first.table_number == table.table_number
        assert first.session_id is not None
        assert second.session_id == first.session_id
        assert table.status == TableStatus.OCCUPIED.value
        assert table.active_session_id == first.session_id

    async def test_table_from_another_restaurant_rejected(self, db_session, restaurant):
        table = TableFactory()
        with pytest.raises(ValidationError):
            await create_order_service(db_session, checkout(restaurant.id, table.id))

    async def test_inactive_restaurant_rejected(self, db_session):
        closed = RestaurantFactory(status=RestaurantStatus.SUSPENDED.value)
        with pytest.raises(ValidationError):
            await create_order_service(db_session, checkout(closed.id))

    async def test_order_number_collision_is_retried(self, db_session, restaurant):
        await create_order_service(db_session, checkout(restaurant.id))

        with patch.object(order_service, "_next_order_number", side_effect=[1, 2]):
            order = await create_order_service(db_session, checkout(restaurant.id))

        assert order.order_number == 2
        assert db_session.query(Order).count() == 2

    async def test_order_number_exhaustion(self, db_session, restaurant):
        await create_order_service(db_session, checkout(restaurant.id))

        with patch.object(order_service, "_next_order_number", return_value=1):
            with pytest.raises(APIError) as exc_info:
                await create_order_service(db_session, checkout(restaurant.id))

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "ORDER_NUMBER_UNAVAILABLE"

    def test_duplicate_menu_items_rejected(self):
        item = OrderItemIn(menu_item_id="m-1", name="Tea", price=Decimal("20"), quantity=1)
        with pytest.raises(ValueError):
            checkout(1, items=[item, item])


class TestUpdateOrder:

    async def test_editing_items_recomputes_and_drops_discount(self, db_session, restaurant):
        order = OrderFactory(
            restaurant_id=restaurant.id, discount_amount=Decimal("25"),
            discount_type="fixed", total=Decimal("500.00"),
        )
        update = OrderUpdate(items=[
            OrderItemIn(menu_item_id="m-9", name="Biryani", price=Decimal("300"), quantity=1)
        ])

        updated = await update_order_service(db_session, order.id, update)

        assert updated.subtotal == Decimal("300.00")
        assert updated.tax == Decimal("15.00")
        assert updated.total == Decimal("315.00")
        assert updated.discount_amount == Decimal("0")
        assert updated.discount_type is None
        assert updated.version == 2

    async def test_paid_orders_are_not_editable(self, db_session, restaurant):
        order = OrderFactory(restaurant_id=restaurant.id, paid=True)
        with pytest.raises(InvalidTransitionError):
            await update_order_service(db_session, order.id, OrderUpdate(customer_name="A"))


class TestItemStatus:

    async def test_three_item_walkthrough(self, db_session):
        order = OrderFactory(paid=True)

        for menu_item_id in ("m-1", "m-2"):
            order = await update_item_status_service(
                db_session, order.id, menu_item_id, OrderItemStatus.READY
            )
        order = await update_item_status_service(
            db_session, order.id, "m-3", OrderItemStatus.PREPARING
        )
        assert order.order_status == "preparing"

        order = await update_item_status_service(db_session, order.id, "m-3", OrderItemStatus.READY)
        assert order.order_status == "ready"

        order = await cascade_order_status_service(db_session, order.id, OrderItemStatus.SERVED)
        assert order.order_status == "served"
        assert all(item["served_at"] for item in order.items)

    async def test_resending_status_changes_nothing(self, db_session):
        order = OrderFactory(paid=True)
        order = await update_item_status_service(db_session, order.id, "m-1", OrderItemStatus.PREPARING)
        version = order.version

        with patch.object(order_service, "publish_order_change", new_callable=AsyncMock) as publish:
            order = await update_item_status_service(
                db_session, order.id, "m-1", OrderItemStatus.PREPARING
            )

        assert order.version == version
        publish.assert_not_awaited()

    async def test_kitchen_cannot_touch_unpaid_order(self, db_session):
        order = OrderFactory()
        with pytest.raises(InvalidTransitionError):
            await update_item_status_service(db_session, order.id, "m-1", OrderItemStatus.PREPARING)

    async def test_unknown_item(self, db_session):
        order = OrderFactory(paid=True)
        with pytest.raises(ItemNotFoundError):
            await update_item_status_service(db_session, order.id, "m-404", OrderItemStatus.READY)

    async def test_stale_expected_version_is_not_retried(self, db_session):
        order = OrderFactory(paid=True)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await update_item_status_service(
                db_session, order.id, "m-1", OrderItemStatus.READY, expected_version=7
            )
        assert exc_info.value.context["current_version"] == 1

    async def test_conflicting_write_is_retried_from_fresh_read(self, db_session):
        order = OrderFactory(paid=True)
        attempts = []

        def flaky_commit(db, description):
            attempts.append(description)
            if len(attempts) == 1:
                db.rollback()
                raise ConcurrencyConflictError()
            commit_versioned(db, description)

        with patch.object(order_service, "commit_versioned", side_effect=flaky_commit):
            order = await update_item_status_service(db_session, order.id, "m-1", OrderItemStatus.READY)

        assert len(attempts) == 2
        assert order.find_item("m-1")["item_status"] == "ready"
        assert order.version == 2

    async def test_concurrent_writer_causes_conflict(self, db_session):
        order = OrderFactory(paid=True)
        stale = db_session.query(Order).filter(Order.id == order.id).one()

        other = SessionLocal()
        try:
            fresh = other.query(Order).filter(Order.id == order.id).one()
            fresh.customer_name = "Waiter edit"
            other.commit()
        finally:
            other.close()

        stale.customer_name = "Kitchen edit"
        with pytest.raises(ConcurrencyConflictError):
            commit_versioned(db_session, f"Order {order.id}")


class TestCancelOrder:

    async def test_cancel_pending_order(self, db_session):
        order = OrderFactory()
        cancelled, refund_amount, refund_error = await cancel_order_service(
            db_session, order.id, CancelOrderRequest(reason="  customer left ")
        )
        assert cancelled.order_status == "cancelled"
        assert cancelled.cancellation_reason == "customer left"
        assert cancelled.cancelled_at is not None
        assert (refund_amount, refund_error) == (None, None)

    async def test_cancel_paid_order_with_full_refund(self, db_session):
        order = OrderFactory(paid=True)
        cancelled, refund_amount, refund_error = await cancel_order_service(
            db_session, order.id, CancelOrderRequest(reason="kitchen closed", refund=True)
        )
        assert refund_error is None
        assert refund_amount == Decimal("525.00")
        assert cancelled.order_status == "cancelled"
        assert cancelled.payment_status == "refunded"
        assert cancelled.refund_amount == Decimal("525.00")

    async def test_failed_refund_keeps_cancellation(self, db_session):
        order = OrderFactory()
        cancelled, refund_amount, refund_error = await cancel_order_service(
            db_session, order.id, CancelOrderRequest(reason="duplicate", refund=True)
        )
        assert cancelled.order_status == "cancelled"
        assert refund_amount is None
        assert "Cannot refund" in refund_error

    async def test_served_order_cannot_be_cancelled(self, db_session):
        order = OrderFactory(paid=True, served=True)
        with pytest.raises(InvalidTransitionError):
            await cancel_order_service(db_session, order.id, CancelOrderRequest(reason="late"))


class TestDiscountAndListing:

    async def test_apply_discount(self, db_session):
        order = OrderFactory()
        request = DiscountRequest(
            type=DiscountType.PERCENTAGE, value=Decimal("10"), amount=Decimal("52.50"),
            reason="birthday", new_total=Decimal("472.50"),
        )
        order = await apply_discount_service(db_session, order.id, request)

        assert order.total == Decimal("472.50")
        assert order.discount_amount == Decimal("52.50")
        assert order.discount_type == "percentage"

    async def test_full_discount_settles_the_order(self, db_session):
        order = OrderFactory()
        request = DiscountRequest(
            type=DiscountType.PERCENTAGE, value=Decimal("100"), amount=Decimal("525.00"),
            reason="staff meal", new_total=Decimal("0"),
        )
        order = await apply_discount_service(db_session, order.id, request)

        assert order.total == Decimal("0.00")
        assert order.payment_status == "paid"
        assert order.order_status == "received"

    async def test_pending_orders_hidden_unless_asked(self, db_session, restaurant):
        OrderFactory(restaurant_id=restaurant.id)
        paid = OrderFactory(restaurant_id=restaurant.id, paid=True)

        visible = await get_orders_service(db_session, restaurant.id)
        everything = await get_orders_service(db_session, restaurant.id, include_pending=True)

        assert [o.id for o in visible] == [paid.id]
        assert len(everything) == 2
