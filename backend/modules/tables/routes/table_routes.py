"""
REST API routes for tables and table sessions.

This module provides endpoints for:
- Table records and manual status changes
- Seating customers and releasing tables
- Session details, activity and the shared cart
"""

from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import NotFoundError
from modules.orders.enums.order_enums import OrderStatus
from modules.orders.schemas.order_schemas import OrderOut
from ..models.table_models import TableStatus
from ..services.table_service import table_service
from ..services.table_session_service import UNPAID_PAYMENT_STATUSES, table_session_service
from ..schemas.table_schemas import (
    CloseInactiveRequest,
    CloseInactiveResponse,
    ReleaseTableRequest,
    SharedCartUpdate,
    TableCreate,
    TableResponse,
    TableSessionResponse,
    TableSessionWithOrders,
    TableStatusUpdate,
)

router = APIRouter(prefix="/tables", tags=["tables"])


@router.post("/", response_model=TableResponse, status_code=201)
async def create_table(table_data: TableCreate, db: Session = Depends(get_db)):
    return await table_service.create_table(db, table_data)


@router.get("/", response_model=List[TableResponse])
async def list_tables(
    restaurant_id: int = Query(...),
    status: Optional[TableStatus] = Query(None),
    db: Session = Depends(get_db),
):
    return table_service.list_tables(db, restaurant_id, status)


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(table_id: int, db: Session = Depends(get_db)):
    return table_service.get_table(db, table_id)


@router.put("/{table_id}/status", response_model=TableResponse)
async def update_table_status(
    table_id: int, update: TableStatusUpdate, db: Session = Depends(get_db)
):
    """Mark a free table reserved, cleaning or available."""
    return await table_service.set_status(db, table_id, update.status)


@router.post("/{table_id}/seat", response_model=TableSessionResponse)
async def seat_customer(table_id: int, db: Session = Depends(get_db)):
    """Open (or return) the table's active session."""
    return await table_session_service.seat_customer(db, table_id)


@router.get("/{table_id}/session", response_model=TableSessionResponse)
async def get_active_session(table_id: int, db: Session = Depends(get_db)):
    session = table_session_service.get_active_session(db, table_id)
    if session is None:
        raise NotFoundError(f"Table {table_id} has no active session")
    return session


@router.post("/release", response_model=TableResponse)
async def release_table(request: ReleaseTableRequest, db: Session = Depends(get_db)):
    """
    Close the active session and free the table.

    Fails with UNPAID_ORDERS_EXIST, listing the blocking orders, while a
    served order on the table is unpaid.
    """
    return await table_session_service.force_release_table_session(
        db, table_id=request.table_id, session_id=request.session_id
    )


@router.post("/sessions/close-inactive", response_model=CloseInactiveResponse)
async def close_inactive_sessions(
    request: CloseInactiveRequest, db: Session = Depends(get_db)
):
    closed = await table_session_service.close_inactive_sessions(db, request.idle_minutes)
    return CloseInactiveResponse(closed_session_ids=closed)


@router.get("/sessions/{session_id}", response_model=TableSessionWithOrders)
async def get_session(session_id: str, db: Session = Depends(get_db)):
    session, orders = table_session_service.get_session_with_orders(db, session_id)
    total_due = sum(
        (Decimal(str(order.total)) for order in orders
         if order.payment_status in UNPAID_PAYMENT_STATUSES
         and order.order_status != OrderStatus.CANCELLED.value),
        Decimal("0"),
    )
    return TableSessionWithOrders(
        session=TableSessionResponse.model_validate(session),
        orders=[OrderOut.model_validate(order) for order in orders],
        total_due=f"{total_due:.2f}",
    )


@router.post("/sessions/{session_id}/end", response_model=TableSessionResponse)
async def end_session(session_id: str, db: Session = Depends(get_db)):
    return await table_session_service.end_table_session(db, session_id)


@router.post("/sessions/{session_id}/activity", response_model=TableSessionResponse)
async def touch_session(session_id: str, db: Session = Depends(get_db)):
    return table_session_service.update_session_activity(db, session_id)


@router.get("/sessions/{session_id}/cart")
async def get_shared_cart(session_id: str, db: Session = Depends(get_db)):
    return {"session_id": session_id, "cart_items": table_session_service.get_shared_cart(db, session_id)}


@router.put("/sessions/{session_id}/cart", response_model=TableSessionResponse)
async def update_shared_cart(
    session_id: str, update: SharedCartUpdate, db: Session = Depends(get_db)
):
    return await table_session_service.update_shared_cart(db, session_id, update.cart_items)


@router.delete("/sessions/{session_id}/cart", response_model=TableSessionResponse)
async def clear_shared_cart(session_id: str, db: Session = Depends(get_db)):
    return await table_session_service.clear_shared_cart(db, session_id)
