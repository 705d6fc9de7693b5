# backend/modules/realtime/events.py

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ChangeEntity(str, Enum):
    """Persisted records whose writes are pushed to subscribers"""
    ORDER = "order"
    TABLE = "table"
    TABLE_SESSION = "table_session"
    COMPLAINT = "complaint"


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


class BroadcastEvent(str, Enum):
    """Fire-and-forget events; never stored, never replayed"""
    CALL_WAITER = "call_waiter"
    CASH_PAYMENT_REQUESTED = "cash_payment_requested"
    CART_UPDATE = "cart_update"
    ANNOUNCEMENT = "announcement"


class SubscriberRole(str, Enum):
    CUSTOMER = "customer"
    KITCHEN = "kitchen"
    WAITER = "waiter"
    MANAGER = "manager"


STAFF_ROLES = {SubscriberRole.KITCHEN, SubscriberRole.WAITER, SubscriberRole.MANAGER}

BROADCAST_AUDIENCE = {
    BroadcastEvent.CALL_WAITER: {SubscriberRole.WAITER, SubscriberRole.MANAGER},
    BroadcastEvent.CASH_PAYMENT_REQUESTED: {SubscriberRole.WAITER, SubscriberRole.MANAGER},
    BroadcastEvent.CART_UPDATE: {SubscriberRole.CUSTOMER},
    BroadcastEvent.ANNOUNCEMENT: set(SubscriberRole),
}

# Events a connected client may emit itself; the rest are server generated
CLIENT_BROADCASTS = {
    SubscriberRole.CUSTOMER: {BroadcastEvent.CALL_WAITER},
    SubscriberRole.KITCHEN: {BroadcastEvent.CALL_WAITER},
    SubscriberRole.WAITER: set(),
    SubscriberRole.MANAGER: {BroadcastEvent.ANNOUNCEMENT},
}


def change_message(
    restaurant_id: int,
    entity: ChangeEntity,
    entity_id: Any,
    action: ChangeAction,
    delta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Change notification. ``delta`` is a hint only; subscribers re-fetch
    ``entity``/``id`` to get the current state.
    """
    return {
        "channel": "changes",
        "restaurant_id": restaurant_id,
        "entity": entity.value,
        "action": action.value,
        "id": entity_id,
        "delta": delta or {},
        "timestamp": datetime.utcnow().isoformat(),
    }


def broadcast_message(
    restaurant_id: int, event: BroadcastEvent, payload: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "channel": "broadcast",
        "restaurant_id": restaurant_id,
        "event": event.value,
        "payload": payload or {},
        "timestamp": datetime.utcnow().isoformat(),
    }
