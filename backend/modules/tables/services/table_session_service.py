# backend/modules/tables/services/table_session_service.py

"""
Binds physical tables to table sessions.

A table has at most one active session. Sessions are opened lazily by the
first order (or an explicit seat action) and closed only by staff, and
never while a served order on the table is still unpaid.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnpaidOrdersExistError,
    ValidationError,
)
from modules.orders.enums.order_enums import OrderStatus
from modules.orders.enums.payment_enums import PaymentStatus
from modules.orders.models.order_models import Order
from modules.realtime.events import BroadcastEvent, ChangeAction, ChangeEntity
from modules.realtime.websocket.realtime_manager import realtime_manager
from ..models.table_models import Table, TableSession, TableSessionStatus, TableStatus

logger = logging.getLogger(__name__)

UNPAID_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)


class TableSessionService:
    """Session/table binding and session-scoped features"""

    # ------------------------------------------------------------ lookups

    def _get_table(self, db: Session, table_id: int) -> Table:
        table = db.query(Table).filter(Table.id == table_id).first()
        if not table:
            raise NotFoundError(f"Table {table_id} not found")
        return table

    def _get_session(self, db: Session, session_id: str) -> TableSession:
        session = db.query(TableSession).filter(TableSession.id == session_id).first()
        if not session:
            raise NotFoundError(f"Table session {session_id} not found")
        return session

    def _find_active_session(self, db: Session, table_id: int) -> Optional[TableSession]:
        return (
            db.query(TableSession)
            .filter(
                TableSession.table_id == table_id,
                TableSession.status == TableSessionStatus.ACTIVE.value,
            )
            .first()
        )

    def get_active_session(self, db: Session, table_id: int) -> Optional[TableSession]:
        self._get_table(db, table_id)
        return self._find_active_session(db, table_id)

    def find_unpaid_served_orders(self, db: Session, table_id: int) -> List[Order]:
        return (
            db.query(Order)
            .filter(
                Order.table_id == table_id,
                Order.order_status == OrderStatus.SERVED.value,
                Order.payment_status.in_(UNPAID_PAYMENT_STATUSES),
                Order.total > 0,
            )
            .order_by(Order.order_number)
            .all()
        )

    # ------------------------------------------------------------ binding

    async def get_or_create_active_session_id(self, db: Session, table_id: int) -> str:
        """
        Active session id for the table, opening one if needed.

        Safe to call concurrently: the partial unique index on active
        sessions lets exactly one insert win and the others re-read it.
        """
        session, _ = await self._get_or_create_active_session(db, table_id)
        return session.id

    async def seat_customer(self, db: Session, table_id: int) -> TableSession:
        session, _ = await self._get_or_create_active_session(db, table_id)
        return session

    async def _get_or_create_active_session(
        self, db: Session, table_id: int
    ) -> Tuple[TableSession, bool]:
        table = self._get_table(db, table_id)

        existing = self._find_active_session(db, table_id)
        if existing:
            return existing, False

        now = datetime.utcnow()
        session = TableSession(
            restaurant_id=table.restaurant_id,
            table_id=table.id,
            status=TableSessionStatus.ACTIVE.value,
            started_at=now,
            last_activity_at=now,
            cart_items=[],
        )
        db.add(session)

        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            winner = self._find_active_session(db, table_id)
            if winner is None:
                raise ConcurrencyConflictError(
                    f"Could not open a session for table {table_id}. Try again."
                )
            logger.info(f"Table {table_id} session race lost; using session {winner.id}")
            return winner, False

        table.status = TableStatus.OCCUPIED.value
        table.booked_at = now
        table.active_session_id = session.id
        db.commit()
        db.refresh(session)

        logger.info(f"Opened table session {session.id} for table {table.table_number}")

        await realtime_manager.publish_change(
            table.restaurant_id, ChangeEntity.TABLE_SESSION, session.id, ChangeAction.INSERT,
            {"table_id": table.id, "status": session.status},
        )
        await realtime_manager.publish_change(
            table.restaurant_id, ChangeEntity.TABLE, table.id, ChangeAction.UPDATE,
            {"status": table.status, "active_session_id": session.id},
        )
        return session, True

    # ------------------------------------------------------------ release

    def _ensure_no_unpaid_orders(self, db: Session, table_id: int):
        unpaid = self.find_unpaid_served_orders(db, table_id)
        if not unpaid:
            return

        blocking = [
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "total": str(order.total),
            }
            for order in unpaid
        ]
        total_due = sum((Decimal(str(order.total)) for order in unpaid), Decimal("0"))
        raise UnpaidOrdersExistError(blocking, total_due)

    async def _close(
        self, db: Session, table: Table, session: Optional[TableSession], reason: str
    ):
        now = datetime.utcnow()
        if session is not None:
            session.status = TableSessionStatus.CLOSED.value
            session.ended_at = now
            session.closed_reason = reason

        table.status = TableStatus.AVAILABLE.value
        table.booked_at = None
        table.active_session_id = None
        db.commit()

        logger.info(
            f"Released table {table.table_number} "
            f"(session={session.id if session else None}, reason={reason})"
        )

        if session is not None:
            await realtime_manager.publish_change(
                table.restaurant_id, ChangeEntity.TABLE_SESSION, session.id,
                ChangeAction.UPDATE, {"status": session.status},
            )
        await realtime_manager.publish_change(
            table.restaurant_id, ChangeEntity.TABLE, table.id, ChangeAction.UPDATE,
            {"status": table.status, "active_session_id": None},
        )

    async def force_release_table_session(
        self,
        db: Session,
        table_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Table:
        """
        Close the table's active session and free the table.

        Raises UnpaidOrdersExistError while any served order on the table
        is unpaid.
        """
        if table_id is None and session_id is None:
            raise ValidationError("Either table_id or session_id is required")

        if session_id is not None:
            session = self._get_session(db, session_id)
            table = self._get_table(db, session.table_id)
            if session.status != TableSessionStatus.ACTIVE.value:
                session = self._find_active_session(db, table.id)
        else:
            table = self._get_table(db, table_id)
            session = self._find_active_session(db, table.id)

        self._ensure_no_unpaid_orders(db, table.id)
        await self._close(db, table, session, "released")
        return table

    async def end_table_session(self, db: Session, session_id: str) -> TableSession:
        session = self._get_session(db, session_id)
        if session.status != TableSessionStatus.ACTIVE.value:
            raise InvalidTransitionError(f"Table session {session_id} is already closed")

        table = self._get_table(db, session.table_id)
        self._ensure_no_unpaid_orders(db, table.id)
        await self._close(db, table, session, "ended")
        return session

    async def close_inactive_sessions(
        self, db: Session, idle_minutes: Optional[int] = None
    ) -> List[str]:
        """Close sessions idle for longer than ``idle_minutes``; skip tables still owing money."""
        idle_minutes = idle_minutes or settings.inactive_session_minutes
        cutoff = datetime.utcnow() - timedelta(minutes=idle_minutes)

        stale = (
            db.query(TableSession)
            .filter(
                TableSession.status == TableSessionStatus.ACTIVE.value,
                TableSession.last_activity_at < cutoff,
            )
            .all()
        )

        closed = []
        for session in stale:
            if self.find_unpaid_served_orders(db, session.table_id):
                logger.warning(
                    f"Keeping idle session {session.id} open: table {session.table_id} "
                    "has unpaid served orders"
                )
                continue
            table = self._get_table(db, session.table_id)
            await self._close(db, table, session, "inactive")
            closed.append(session.id)

        if closed:
            logger.info(f"Closed {len(closed)} inactive table sessions")
        return closed

    # ------------------------------------------------------------ session features

    def update_session_activity(self, db: Session, session_id: str) -> TableSession:
        session = self._get_session(db, session_id)
        session.last_activity_at = datetime.utcnow()
        db.commit()
        return session

    def get_session_with_orders(
        self, db: Session, session_id: str
    ) -> Tuple[TableSession, List[Order]]:
        session = self._get_session(db, session_id)
        orders = (
            db.query(Order)
            .filter(Order.session_id == session_id)
            .order_by(Order.created_at, Order.order_number)
            .all()
        )
        return session, orders

    def get_shared_cart(self, db: Session, session_id: str) -> List[Dict[str, Any]]:
        return list(self._get_session(db, session_id).cart_items or [])

    async def update_shared_cart(
        self, db: Session, session_id: str, cart_items: List[Dict[str, Any]]
    ) -> TableSession:
        session = self._get_session(db, session_id)
        if session.status != TableSessionStatus.ACTIVE.value:
            raise InvalidTransitionError("Cannot change the cart of a closed table session")

        session.cart_items = list(cart_items)
        session.last_activity_at = datetime.utcnow()
        db.commit()

        await realtime_manager.broadcast(
            session.restaurant_id,
            BroadcastEvent.CART_UPDATE,
            {"session_id": session.id, "table_id": session.table_id, "cart_items": session.cart_items},
        )
        return session

    async def clear_shared_cart(self, db: Session, session_id: str) -> TableSession:
        return await self.update_shared_cart(db, session_id, [])


# Global service instance
table_session_service = TableSessionService()
