from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from core.database import get_db
from ..controllers.order_controller import (
    apply_discount, cancel_order, cascade_order_status, create_order,
    get_order_by_id, get_order_by_token, list_orders, update_item_status,
    update_order,
)
from ..enums.order_enums import OrderStatus
from ..enums.payment_enums import PaymentStatus
from ..schemas.order_schemas import (
    CancellationResult, CancelOrderRequest, DiscountRequest, ItemStatusUpdate,
    OrderCreate, OrderOut, OrderStatusCascade, OrderUpdate,
)

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/", response_model=OrderOut, status_code=201)
async def place_order(order_data: OrderCreate, db: Session = Depends(get_db)):
    """
    Submit a checkout. The order starts in `pending_payment`; table orders
    are attached to the table's active session.
    """
    return await create_order(order_data, db)


@router.get("/", response_model=List[OrderOut])
async def get_orders(
    restaurant_id: int = Query(..., description="Restaurant to list orders for"),
    order_status: Optional[OrderStatus] = Query(None, description="Filter by order status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    table_id: Optional[int] = Query(None, description="Filter by table"),
    session_id: Optional[str] = Query(None, description="Filter by table session"),
    include_pending: bool = Query(False, description="Include orders awaiting payment"),
    limit: int = Query(100, ge=1, le=1000, description="Number of orders to return"),
    offset: int = Query(0, ge=0, description="Number of orders to skip"),
    db: Session = Depends(get_db),
):
    """
    Retrieve a restaurant's orders, newest first.

    - **order_status**: exact status; without it, `pending_payment` orders
      are hidden unless **include_pending** is set
    - **payment_status**, **table_id**, **session_id**: optional filters
    """
    return await list_orders(
        db, restaurant_id, order_status=order_status, payment_status=payment_status,
        table_id=table_id, session_id=session_id, include_pending=include_pending,
        limit=limit, offset=offset,
    )


@router.get("/track/{order_token}", response_model=OrderOut)
async def track_order(order_token: str, db: Session = Depends(get_db)):
    """Customer-facing lookup by the unguessable order token"""
    return await get_order_by_token(db, order_token)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, db: Session = Depends(get_db)):
    return await get_order_by_id(db, order_id)


@router.put("/{order_id}", response_model=OrderOut)
async def update_existing_order(
    order_id: str, order_data: OrderUpdate, db: Session = Depends(get_db)
):
    """Edit items or contact details; only before payment"""
    return await update_order(order_id, order_data, db)


@router.put("/{order_id}/items/{menu_item_id}/status", response_model=OrderOut)
async def set_item_status(
    order_id: str,
    menu_item_id: str,
    update: ItemStatusUpdate,
    db: Session = Depends(get_db),
):
    return await update_item_status(order_id, menu_item_id, update, db)


@router.put("/{order_id}/status", response_model=OrderOut)
async def set_order_status(
    order_id: str, update: OrderStatusCascade, db: Session = Depends(get_db)
):
    """Move every item of the order forward to the given status"""
    return await cascade_order_status(order_id, update, db)


@router.post("/{order_id}/cancel", response_model=CancellationResult)
async def cancel_existing_order(
    order_id: str, request: CancelOrderRequest, db: Session = Depends(get_db)
):
    return await cancel_order(order_id, request, db)


@router.post("/{order_id}/discount", response_model=OrderOut)
async def apply_order_discount(
    order_id: str, request: DiscountRequest, db: Session = Depends(get_db)
):
    return await apply_discount(order_id, request, db)
