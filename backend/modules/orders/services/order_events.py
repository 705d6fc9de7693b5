# backend/modules/orders/services/order_events.py

from modules.realtime.events import ChangeAction, ChangeEntity
from modules.realtime.websocket.realtime_manager import realtime_manager
from ..models.order_models import Order


def order_delta(order: Order) -> dict:
    return {
        "order_number": order.order_number,
        "order_status": order.order_status,
        "payment_status": order.payment_status,
        "session_id": order.session_id,
        "table_id": order.table_id,
        "version": order.version,
    }


async def publish_order_change(order: Order, action: ChangeAction = ChangeAction.UPDATE):
    """Notify subscribers that the order row changed; they re-fetch it"""
    await realtime_manager.publish_change(
        order.restaurant_id, ChangeEntity.ORDER, order.id, action, order_delta(order)
    )
