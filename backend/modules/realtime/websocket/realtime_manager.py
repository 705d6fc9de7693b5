"""
WebSocket manager for restaurant dashboards.

Carries two kinds of traffic with different guarantees:

- change notifications for persisted orders, tables and sessions; clients
  treat them as "re-fetch this id" signals, so duplicates are harmless
- ephemeral broadcasts (call waiter, cash requested, cart update); only
  clients connected at the moment of sending receive them

Messages for one restaurant go out in publish order. When a Redis backplane
is attached, messages are also relayed to the other worker processes.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import WebSocket
from redis.exceptions import RedisError

from ..events import (
    BROADCAST_AUDIENCE,
    BroadcastEvent,
    ChangeAction,
    ChangeEntity,
    SubscriberRole,
    broadcast_message,
    change_message,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscriber:
    websocket: WebSocket
    restaurant_id: int
    role: SubscriberRole
    order_id: Optional[str] = None
    session_id: Optional[str] = None
    connected_at: datetime = field(default_factory=datetime.utcnow)

    def wants(self, message: Dict[str, Any]) -> bool:
        if message["channel"] == "broadcast":
            event = BroadcastEvent(message["event"])
            if self.role not in BROADCAST_AUDIENCE[event]:
                return False
            if self.role == SubscriberRole.CUSTOMER:
                target_session = message["payload"].get("session_id")
                return target_session is None or target_session == self.session_id
            return True

        if self.role != SubscriberRole.CUSTOMER:
            return True

        # Customers only follow their own order and their table's session
        entity = message["entity"]
        if entity == ChangeEntity.ORDER.value:
            return self.order_id is not None and str(message["id"]) == self.order_id
        if entity == ChangeEntity.TABLE_SESSION.value:
            return self.session_id is not None and str(message["id"]) == self.session_id
        return False


class RealtimeManager:
    """Restaurant-scoped fan-out of change and broadcast messages"""

    def __init__(self):
        self.connections: Dict[int, List[Subscriber]] = {}
        self.subscribers_by_socket: Dict[Any, Subscriber] = {}
        self.server_id = str(uuid.uuid4())
        self.backplane = None
        self._delivery_locks: Dict[int, asyncio.Lock] = {}

    async def connect(
        self,
        websocket: WebSocket,
        restaurant_id: int,
        role: SubscriberRole,
        order_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Subscriber:
        """Accept and register new WebSocket connection"""
        await websocket.accept()
        return self.register(websocket, restaurant_id, role, order_id, session_id)

    def register(
        self,
        websocket: Any,
        restaurant_id: int,
        role: SubscriberRole,
        order_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Subscriber:
        subscriber = Subscriber(
            websocket=websocket,
            restaurant_id=restaurant_id,
            role=role,
            order_id=order_id,
            session_id=session_id,
        )
        self.connections.setdefault(restaurant_id, []).append(subscriber)
        self.subscribers_by_socket[websocket] = subscriber

        logger.info(
            f"WebSocket connected: restaurant={restaurant_id}, role={role.value}, "
            f"order={order_id}, session={session_id}"
        )
        return subscriber

    def disconnect(self, websocket: Any):
        """Remove WebSocket connection"""
        subscriber = self.subscribers_by_socket.pop(websocket, None)
        if not subscriber:
            return

        restaurant_id = subscriber.restaurant_id
        subscribers = self.connections.get(restaurant_id, [])
        if subscriber in subscribers:
            subscribers.remove(subscriber)
        if not subscribers:
            self.connections.pop(restaurant_id, None)

        logger.info(f"WebSocket disconnected: restaurant={restaurant_id}")

    def connection_count(self, restaurant_id: int) -> int:
        return len(self.connections.get(restaurant_id, []))

    async def publish_change(
        self,
        restaurant_id: int,
        entity: ChangeEntity,
        entity_id: Any,
        action: ChangeAction = ChangeAction.UPDATE,
        delta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Push a persisted-record change to subscribers of the restaurant"""
        message = change_message(restaurant_id, entity, entity_id, action, delta)
        await self._publish(message)
        return message

    async def broadcast(
        self,
        restaurant_id: int,
        event: BroadcastEvent,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send an ephemeral event to whoever is connected right now"""
        message = broadcast_message(restaurant_id, event, payload)
        if not self.connections.get(restaurant_id) and self.backplane is None:
            logger.warning(
                f"Broadcast {event.value} for restaurant {restaurant_id} "
                "has no connected subscribers and was dropped"
            )
        await self._publish(message)
        return message

    async def _publish(self, message: Dict[str, Any]):
        await self.deliver_local(message)
        if self.backplane is None:
            return
        # Callers publish after their commit; relay failures must not undo it
        try:
            await self.backplane.publish(message)
        except (RedisError, ConnectionError, OSError) as e:
            logger.error(
                f"Realtime backplane publish failed for restaurant "
                f"{message['restaurant_id']}: {e}"
            )

    async def deliver_local(self, message: Dict[str, Any]):
        """Deliver to subscribers connected to this process"""
        restaurant_id = message["restaurant_id"]
        lock = self._delivery_locks.setdefault(restaurant_id, asyncio.Lock())
        async with lock:
            recipients = [
                subscriber
                for subscriber in self.connections.get(restaurant_id, [])
                if subscriber.wants(message)
            ]
            await self._send_to_subscribers(recipients, message)

    async def _send_to_subscribers(self, subscribers: List[Subscriber], message: Dict):
        """Send message to multiple connections, dropping the ones that fail"""
        disconnected = []

        for subscriber in subscribers:
            try:
                await subscriber.websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error sending to websocket: {e}")
                disconnected.append(subscriber.websocket)

        for websocket in disconnected:
            self.disconnect(websocket)

    async def attach_backplane(self, backplane):
        await backplane.start(self.deliver_local)
        self.backplane = backplane

    async def detach_backplane(self):
        if self.backplane is not None:
            await self.backplane.close()
            self.backplane = None


# Global instance
realtime_manager = RealtimeManager()
