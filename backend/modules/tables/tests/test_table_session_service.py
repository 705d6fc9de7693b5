# backend/modules/tables/tests/test_table_session_service.py

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from core.exceptions import InvalidTransitionError, UnpaidOrdersExistError, ValidationError
from modules.orders.enums.order_enums import DiscountType, OrderType
from modules.orders.schemas.order_schemas import DiscountRequest
from modules.orders.services.order_service import apply_discount_service
from modules.realtime.events import SubscriberRole
from modules.realtime.websocket.realtime_manager import realtime_manager
from tests.factories import OrderFactory, TableFactory
from ..models.table_models import TableSession, TableSessionStatus, TableStatus
from ..services.table_session_service import table_session_service


class FakeSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


@pytest.fixture
def table(db_session):
    return TableFactory()


def table_order(table, session_id=None, **kwargs):
    return OrderFactory(
        restaurant_id=table.restaurant_id,
        table_id=table.id,
        table_number=table.table_number,
        session_id=session_id,
        order_type=OrderType.DINE_IN.value,
        **kwargs,
    )


def active_sessions(db_session, table):
    return (
        db_session.query(TableSession)
        .filter_by(table_id=table.id, status=TableSessionStatus.ACTIVE.value)
        .all()
    )


class TestSessionBinding:

    async def test_first_order_opens_session_and_occupies_table(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)

        db_session.refresh(table)
        assert table.status == TableStatus.OCCUPIED.value
        assert table.active_session_id == session_id
        assert table.booked_at is not None

    async def test_concurrent_first_orders_share_one_session(self, db_session, table):
        ids = await asyncio.gather(*[
            table_session_service.get_or_create_active_session_id(db_session, table.id)
            for _ in range(5)
        ])

        assert len(set(ids)) == 1
        assert len(active_sessions(db_session, table)) == 1

    async def test_losing_insert_race_reuses_the_winner(self, db_session, table):
        winner = await table_session_service.seat_customer(db_session, table.id)
        real_lookup = table_session_service._find_active_session
        lookups = []

        def stale_first_lookup(db, table_id):
            lookups.append(table_id)
            if len(lookups) == 1:
                # Read happened before the winner committed
                return None
            return real_lookup(db, table_id)

        with patch.object(table_session_service, "_find_active_session", side_effect=stale_first_lookup):
            session_id = await table_session_service.get_or_create_active_session_id(
                db_session, table.id
            )

        assert session_id == winner.id
        assert len(lookups) == 2
        assert len(active_sessions(db_session, table)) == 1

    async def test_new_session_after_release(self, db_session, table):
        first = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        await table_session_service.force_release_table_session(db_session, table_id=table.id)

        second = await table_session_service.get_or_create_active_session_id(db_session, table.id)

        assert second != first
        assert len(active_sessions(db_session, table)) == 1

    async def test_changes_are_published(self, db_session, table):
        manager = FakeSocket()
        realtime_manager.register(manager, table.restaurant_id, SubscriberRole.MANAGER)

        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)

        published = [(m["entity"], m["action"], m["id"]) for m in manager.sent]
        assert published == [
            ("table_session", "insert", session_id),
            ("table", "update", table.id),
        ]


class TestRelease:

    async def test_unpaid_served_order_blocks_release(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        order = table_order(table, session_id, served=True, order_number=42)

        with pytest.raises(UnpaidOrdersExistError) as exc_info:
            await table_session_service.force_release_table_session(db_session, table_id=table.id)

        error = exc_info.value
        assert error.error_code == "UNPAID_ORDERS_EXIST"
        assert "#42" in error.detail
        assert "₹525.00" in error.detail
        assert error.context["unpaid_orders"][0]["order_id"] == order.id
        assert error.context["total_due"] == "525.00"

        db_session.refresh(table)
        assert table.status == TableStatus.OCCUPIED.value
        assert len(active_sessions(db_session, table)) == 1

    async def test_failed_payment_also_blocks_release(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        table_order(table, session_id, served=True, payment_status="failed")

        with pytest.raises(UnpaidOrdersExistError):
            await table_session_service.force_release_table_session(db_session, session_id=session_id)

    async def test_release_after_payment(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        table_order(table, session_id, served=True, payment_status="paid")
        # Unserved unpaid orders do not hold the table
        table_order(table, session_id)

        released = await table_session_service.force_release_table_session(
            db_session, session_id=session_id
        )

        assert released.status == TableStatus.AVAILABLE.value
        assert released.active_session_id is None
        session = db_session.get(TableSession, session_id)
        assert session.status == TableSessionStatus.CLOSED.value
        assert session.closed_reason == "released"
        assert session.ended_at is not None

    async def test_fully_discounted_order_does_not_hold_the_table(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        order = table_order(table, session_id, served=True)
        await apply_discount_service(db_session, order.id, DiscountRequest(
            type=DiscountType.PERCENTAGE, value=Decimal("100"), amount=Decimal("525.00"),
            reason="complimentary", new_total=Decimal("0"),
        ))

        released = await table_session_service.force_release_table_session(
            db_session, session_id=session_id
        )

        assert released.status == TableStatus.AVAILABLE.value

    async def test_legacy_zero_total_order_does_not_hold_the_table(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        table_order(
            table, session_id, served=True, subtotal=Decimal("0"), total=Decimal("0"),
        )

        assert table_session_service.find_unpaid_served_orders(db_session, table.id) == []

    async def test_release_needs_a_target(self, db_session):
        with pytest.raises(ValidationError):
            await table_session_service.force_release_table_session(db_session)

    async def test_end_closed_session(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        await table_session_service.end_table_session(db_session, session_id)

        with pytest.raises(InvalidTransitionError):
            await table_session_service.end_table_session(db_session, session_id)


class TestInactiveSessions:

    async def test_idle_sessions_close_unless_money_is_owed(self, db_session):
        idle, owing, busy = TableFactory(), TableFactory(), TableFactory()
        sessions = {}
        for table in (idle, owing, busy):
            sessions[table.id] = await table_session_service.get_or_create_active_session_id(
                db_session, table.id
            )
        table_order(owing, sessions[owing.id], served=True)

        long_ago = datetime.utcnow() - timedelta(hours=5)
        for table in (idle, owing):
            db_session.get(TableSession, sessions[table.id]).last_activity_at = long_ago
        db_session.commit()

        closed = await table_session_service.close_inactive_sessions(db_session, idle_minutes=60)

        assert closed == [sessions[idle.id]]
        db_session.refresh(idle)
        db_session.refresh(owing)
        assert idle.status == TableStatus.AVAILABLE.value
        assert owing.status == TableStatus.OCCUPIED.value
        assert len(active_sessions(db_session, busy)) == 1


class TestSharedCart:

    async def test_cart_update_reaches_the_table_only(self, db_session, table):
        other_table = TableFactory(restaurant_id=table.restaurant_id)
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        other_session = await table_session_service.get_or_create_active_session_id(
            db_session, other_table.id
        )
        diner, neighbour, waiter = FakeSocket(), FakeSocket(), FakeSocket()
        realtime_manager.register(diner, table.restaurant_id, SubscriberRole.CUSTOMER, session_id=session_id)
        realtime_manager.register(
            neighbour, table.restaurant_id, SubscriberRole.CUSTOMER, session_id=other_session
        )
        realtime_manager.register(waiter, table.restaurant_id, SubscriberRole.WAITER)

        cart = [{"menu_item_id": "m-1", "quantity": 2, "price": "200.00"}]
        session = await table_session_service.update_shared_cart(db_session, session_id, cart)

        assert session.cart_items == cart
        assert table_session_service.get_shared_cart(db_session, session_id) == cart
        assert [m["event"] for m in diner.sent] == ["cart_update"]
        assert diner.sent[0]["payload"]["cart_items"] == cart
        assert neighbour.sent == []
        assert waiter.sent == []

    async def test_closed_session_cart_is_read_only(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        await table_session_service.end_table_session(db_session, session_id)

        with pytest.raises(InvalidTransitionError):
            await table_session_service.clear_shared_cart(db_session, session_id)

    async def test_session_orders_and_total(self, db_session, table):
        session_id = await table_session_service.get_or_create_active_session_id(db_session, table.id)
        table_order(table, session_id, total=Decimal("100.00"), subtotal=Decimal("100.00"))
        table_order(table, session_id)

        session, orders = table_session_service.get_session_with_orders(db_session, session_id)

        assert session.id == session_id
        assert len(orders) == 2
