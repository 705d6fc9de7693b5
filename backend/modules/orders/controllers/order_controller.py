from sqlalchemy.orm import Session
from typing import List, Optional
from ..services.order_service import (
    apply_discount_service,
    cancel_order_service,
    cascade_order_status_service,
    create_order_service,
    get_order_by_id as get_order_service,
    get_order_by_token as get_order_by_token_service,
    get_orders_service,
    update_item_status_service,
    update_order_service,
)
from ..schemas.order_schemas import (
    CancellationResult,
    CancelOrderRequest,
    DiscountRequest,
    ItemStatusUpdate,
    OrderCreate,
    OrderOut,
    OrderStatusCascade,
    OrderUpdate,
)
from ..enums.order_enums import OrderStatus
from ..enums.payment_enums import PaymentStatus


async def create_order(order_data: OrderCreate, db: Session) -> OrderOut:
    order = await create_order_service(db, order_data)
    return OrderOut.model_validate(order)


async def update_order(order_id: str, order_data: OrderUpdate, db: Session) -> OrderOut:
    order = await update_order_service(db, order_id, order_data)
    return OrderOut.model_validate(order)


async def get_order_by_id(db: Session, order_id: str) -> OrderOut:
    return OrderOut.model_validate(await get_order_service(db, order_id))


async def get_order_by_token(db: Session, order_token: str) -> OrderOut:
    return OrderOut.model_validate(await get_order_by_token_service(db, order_token))


async def list_orders(
    db: Session,
    restaurant_id: int,
    order_status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    table_id: Optional[int] = None,
    session_id: Optional[str] = None,
    include_pending: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> List[OrderOut]:
    orders = await get_orders_service(
        db, restaurant_id, order_status=order_status, payment_status=payment_status,
        table_id=table_id, session_id=session_id, include_pending=include_pending,
        limit=limit, offset=offset,
    )
    return [OrderOut.model_validate(order) for order in orders]


async def update_item_status(
    order_id: str, menu_item_id: str, update: ItemStatusUpdate, db: Session
) -> OrderOut:
    order = await update_item_status_service(
        db, order_id, menu_item_id, update.status, update.expected_version
    )
    return OrderOut.model_validate(order)


async def cascade_order_status(
    order_id: str, update: OrderStatusCascade, db: Session
) -> OrderOut:
    order = await cascade_order_status_service(
        db, order_id, update.status, update.expected_version
    )
    return OrderOut.model_validate(order)


async def cancel_order(order_id: str, request: CancelOrderRequest, db: Session) -> CancellationResult:
    order, refund_amount, refund_error = await cancel_order_service(db, order_id, request)
    return CancellationResult(
        order=OrderOut.model_validate(order),
        refund_amount=refund_amount,
        refund_error=refund_error,
    )


async def apply_discount(order_id: str, request: DiscountRequest, db: Session) -> OrderOut:
    order = await apply_discount_service(db, order_id, request)
    return OrderOut.model_validate(order)
