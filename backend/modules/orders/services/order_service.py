import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy import func

from core.config import settings
from core.database_utils import check_expected_version, commit_versioned
from core.exceptions import (
    APIError,
    InvalidTransitionError,
    ItemNotFoundError,
    NotFoundError,
    ValidationError,
)
from modules.core.models import Restaurant, RestaurantStatus
from modules.payments.services.refund_service import refund_service
from modules.realtime.events import ChangeAction
from modules.tables.models.table_models import Table
from modules.tables.services.table_session_service import table_session_service
from ..enums.order_enums import OrderItemStatus, OrderStatus, OrderType
from ..enums.payment_enums import PaymentStatus
from ..models.order_models import Order
from ..schemas.order_schemas import (
    CancelOrderRequest,
    DiscountRequest,
    OrderCreate,
    OrderItemIn,
    OrderUpdate,
)
from ..utils.database_retry import retry_on_conflict
from .order_events import publish_order_change
from .status_reducer import (
    PAYABLE_PAYMENT_STATUSES,
    cascade_items,
    compute_discount,
    compute_totals,
    ensure_discountable,
    ensure_kitchen_updates_allowed,
    money,
    resolve_order_status,
    status_after_payment,
    update_item_in_list,
    validate_cancellation,
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


def _build_items(items: List[OrderItemIn]) -> List[Dict[str, Any]]:
    return [
        {
            "menu_item_id": item.menu_item_id,
            "name": item.name,
            "price": str(money(item.price)),
            "quantity": item.quantity,
            "is_veg": item.is_veg,
            "item_status": OrderItemStatus.QUEUED.value,
            "started_at": None,
            "ready_at": None,
            "served_at": None,
        }
        for item in items
    ]


def _get_restaurant(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if not restaurant:
        raise NotFoundError(f"Restaurant {restaurant_id} not found")
    return restaurant


def _resolve_placement(db: Session, order_data: OrderCreate) -> Tuple[Restaurant, Optional[Table]]:
    """Restaurant and table for a new order; the table wins when only it is given"""
    table = None
    if order_data.table_id is not None:
        table = db.query(Table).filter(Table.id == order_data.table_id).first()
        if not table:
            raise NotFoundError(f"Table {order_data.table_id} not found")
        if order_data.restaurant_id is not None and table.restaurant_id != order_data.restaurant_id:
            raise ValidationError(
                f"Table {order_data.table_id} does not belong to restaurant {order_data.restaurant_id}"
            )

    restaurant_id = table.restaurant_id if table else order_data.restaurant_id
    restaurant = _get_restaurant(db, restaurant_id)
    if restaurant.status != RestaurantStatus.ACTIVE.value:
        raise ValidationError(f"Restaurant {restaurant.id} is not accepting orders")
    return restaurant, table


def _next_order_number(db: Session, restaurant_id: int) -> int:
    current = (
        db.query(func.max(Order.order_number))
        .filter(Order.restaurant_id == restaurant_id)
        .scalar()
    )
    return (current or 0) + 1


async def get_order_by_id(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


async def get_order_by_token(db: Session, order_token: str) -> Order:
    order = db.query(Order).filter(Order.order_token == order_token).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


async def get_orders_service(
    db: Session,
    restaurant_id: int,
    order_status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    table_id: Optional[int] = None,
    session_id: Optional[str] = None,
    include_pending: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> List[Order]:
    query = db.query(Order).filter(Order.restaurant_id == restaurant_id)

    if order_status:
        query = query.filter(Order.order_status == order_status.value)
    elif not include_pending:
        # Unpaid checkouts are not the kitchen's business yet
        query = query.filter(Order.order_status != OrderStatus.PENDING_PAYMENT.value)

    if payment_status:
        query = query.filter(Order.payment_status == payment_status.value)
    if table_id is not None:
        query = query.filter(Order.table_id == table_id)
    if session_id:
        query = query.filter(Order.session_id == session_id)

    return (
        query.order_by(Order.created_at.desc(), Order.order_number.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


async def create_order_service(db: Session, order_data: OrderCreate) -> Order:
    """
    Persist a new order awaiting payment.

    Table orders are bound to the table's active session, which is created
    (and the table marked occupied) if there is none yet.
    """
    restaurant, table = _resolve_placement(db, order_data)

    session_id = None
    if table is not None:
        session_id = await table_session_service.get_or_create_active_session_id(db, table.id)

    items = _build_items(order_data.items)
    subtotal, tax, total = compute_totals(items, restaurant.tax_rate)
    order_type = order_data.order_type or (
        OrderType.DINE_IN if table is not None else OrderType.TAKEAWAY
    )

    for attempt in range(ORDER_NUMBER_ATTEMPTS):
        order = Order(
            restaurant_id=restaurant.id,
            order_number=_next_order_number(db, restaurant.id),
            order_token=secrets.token_urlsafe(24),
            order_type=order_type.value,
            table_id=table.id if table else None,
            table_number=table.table_number if table else None,
            session_id=session_id,
            items=items,
            special_instructions=order_data.special_instructions,
            customer_name=order_data.customer_name,
            customer_phone=order_data.customer_phone,
            customer_email=order_data.customer_email,
            subtotal=subtotal,
            discount_amount=Decimal("0"),
            tax=tax,
            total=total,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=order_data.payment_method.value,
            order_status=OrderStatus.PENDING_PAYMENT.value,
        )
        db.add(order)
        try:
            db.commit()
            break
        except IntegrityError:
            # Another checkout took the same order number
            db.rollback()
            logger.info(
                f"Order number collision for restaurant {restaurant.id}, "
                f"attempt {attempt + 1}/{ORDER_NUMBER_ATTEMPTS}"
            )
    else:
        raise APIError(
            status_code=503,
            detail="Could not allocate an order number. Please try again.",
            error_code="ORDER_NUMBER_UNAVAILABLE",
        )

    db.refresh(order)
    logger.info(
        f"Created order #{order.order_number} ({order.id}) for restaurant {restaurant.id}, "
        f"total {order.total}"
    )
    await publish_order_change(order, ChangeAction.INSERT)
    return order


async def update_order_service(db: Session, order_id: str, order_data: OrderUpdate) -> Order:
    order = await get_order_by_id(db, order_id)
    check_expected_version(order, order_data.expected_version)

    if order.order_status != OrderStatus.PENDING_PAYMENT.value or (
        order.payment_status not in PAYABLE_PAYMENT_STATUSES
    ):
        raise InvalidTransitionError(
            "Order can only be edited before payment "
            f"(status '{order.order_status}', payment '{order.payment_status}')"
        )

    for field in ("special_instructions", "customer_name", "customer_phone", "customer_email"):
        value = getattr(order_data, field)
        if value is not None:
            setattr(order, field, value)

    if order_data.items is not None:
        restaurant = _get_restaurant(db, order.restaurant_id)
        items = _build_items(order_data.items)
        subtotal, tax, total = compute_totals(items, restaurant.tax_rate)
        order.items = items
        order.subtotal = subtotal
        order.tax = tax
        order.total = total
        # A discount was priced against the old items
        order.discount_amount = Decimal("0")
        order.discount_type = None
        order.discount_value = None
        order.discount_reason = None

    commit_versioned(db, f"Order {order.id}")
    await publish_order_change(order)
    return order


def _retry_attempts(expected_version: Optional[int]) -> int:
    # A caller pinned to a version wants to hear about conflicts, not retries
    return 0 if expected_version is not None else settings.conflict_retry_attempts


async def update_item_status_service(
    db: Session,
    order_id: str,
    menu_item_id: str,
    status: OrderItemStatus,
    expected_version: Optional[int] = None,
) -> Order:
    """
    Move one item and re-derive the order status, as one write.

    Conflicting writes are retried from a fresh read. Re-sending the status
    an item already has changes nothing.
    """

    async def apply():
        order = await get_order_by_id(db, order_id)
        check_expected_version(order, expected_version)
        ensure_kitchen_updates_allowed(order.order_status)

        items = update_item_in_list(order.items or [], menu_item_id, status, datetime.utcnow())
        if items is None:
            raise ItemNotFoundError(menu_item_id)
        if items == order.items:
            return order, False

        order.items = items
        order.order_status = resolve_order_status(order.order_status, items)
        commit_versioned(db, f"Order {order.id}")
        return order, True

    order, changed = await retry_on_conflict(
        apply, max_retries=_retry_attempts(expected_version)
    )
    if changed:
        logger.info(
            f"Order {order.id} item {menu_item_id} -> {status.value}; "
            f"order status {order.order_status}"
        )
        await publish_order_change(order)
    return order


async def cascade_order_status_service(
    db: Session,
    order_id: str,
    status: OrderItemStatus,
    expected_version: Optional[int] = None,
) -> Order:
    """Move every item up to ``status``; items already past it stay put"""

    async def apply():
        order = await get_order_by_id(db, order_id)
        check_expected_version(order, expected_version)
        ensure_kitchen_updates_allowed(order.order_status)

        items = cascade_items(order.items or [], status, datetime.utcnow())
        if items == order.items:
            return order, False

        order.items = items
        order.order_status = resolve_order_status(order.order_status, items)
        commit_versioned(db, f"Order {order.id}")
        return order, True

    order, changed = await retry_on_conflict(
        apply, max_retries=_retry_attempts(expected_version)
    )
    if changed:
        logger.info(f"Order {order.id} cascaded to {status.value}; order status {order.order_status}")
        await publish_order_change(order)
    return order


async def cancel_order_service(
    db: Session, order_id: str, request: CancelOrderRequest
) -> Tuple[Order, Optional[Decimal], Optional[str]]:
    """
    Cancel an order, then optionally refund it.

    The cancellation is committed on its own. A refund that fails afterwards
    does not undo it; the failure is logged and returned as the third value.
    """
    order = await get_order_by_id(db, order_id)
    check_expected_version(order, request.expected_version)
    validate_cancellation(order.order_status, request.reason)

    reason = request.reason.strip()
    order.order_status = OrderStatus.CANCELLED.value
    order.cancelled_at = datetime.utcnow()
    order.cancellation_reason = reason
    commit_versioned(db, f"Order {order.id}")

    logger.info(f"Order {order.id} cancelled: {reason}")
    await publish_order_change(order)

    if not request.refund:
        return order, None, None

    amount = request.refund_amount
    if amount is None:
        amount = money(order.total) - money(order.refund_amount or 0)

    try:
        result = await refund_service.process_refund(
            db,
            order.id,
            amount=amount,
            reason=f"Order cancelled: {reason}",
            method=request.refund_method,
        )
    except APIError as e:
        logger.error(
            f"Order {order.id} was cancelled but its refund of ₹{money(amount)} failed: {e.detail}"
        )
        return await get_order_by_id(db, order_id), None, e.detail

    return result.order, result.refunded_amount, None


async def apply_discount_service(db: Session, order_id: str, request: DiscountRequest) -> Order:
    """Apply or replace the order's single discount"""
    order = await get_order_by_id(db, order_id)
    check_expected_version(order, request.expected_version)
    ensure_discountable(order.order_status, order.payment_status)

    outcome = compute_discount(
        subtotal=order.subtotal,
        total=order.total,
        existing_discount=order.discount_amount,
        discount_type=request.type,
        value=request.value,
        amount=request.amount,
        reason=request.reason,
        client_new_total=request.new_total,
        tolerance=settings.split_payment_tolerance,
    )

    order.discount_amount = outcome.amount
    order.discount_type = request.type.value
    order.discount_value = money(request.value)
    order.discount_reason = request.reason.strip()
    order.total = outcome.new_total
    if order.total <= 0:
        # Nothing left to collect
        order.payment_status = PaymentStatus.PAID.value
        order.order_status = status_after_payment(order.order_status)
    commit_versioned(db, f"Order {order.id}")

    logger.info(
        f"Discount ₹{outcome.amount} applied to order {order.id}: "
        f"₹{outcome.original_total} -> ₹{outcome.new_total}"
    )
    await publish_order_change(order)
    return order
