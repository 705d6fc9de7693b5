"""
WebSocket route for restaurant dashboards and customer order tracking.

Query parameters:
- role: customer, kitchen, waiter or manager
- order_id: order a customer is tracking
- session_id: table session a customer is seated in

Client messages:
- {"type": "ping"}
- {"type": "broadcast", "event": "call_waiter", "payload": {...}}
"""

from typing import Optional
import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from ..events import CLIENT_BROADCASTS, BroadcastEvent, SubscriberRole
from ..websocket.realtime_manager import realtime_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["realtime"])


@router.websocket("/restaurants/{restaurant_id}")
async def restaurant_websocket(
    websocket: WebSocket,
    restaurant_id: int,
    role: SubscriberRole = Query(SubscriberRole.CUSTOMER),
    order_id: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
):
    if role == SubscriberRole.CUSTOMER and not (order_id or session_id):
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION,
            reason="Customers must subscribe to an order or session",
        )
        return

    await realtime_manager.connect(
        websocket,
        restaurant_id=restaurant_id,
        role=role,
        order_id=order_id,
        session_id=session_id,
    )

    try:
        await websocket.send_json({
            "type": "connection_established",
            "restaurant_id": restaurant_id,
            "role": role.value,
        })

        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            elif message.get("type") == "broadcast":
                await _relay_client_broadcast(websocket, restaurant_id, role, message)
            else:
                await websocket.send_json({"type": "error", "message": "Unknown message type"})

    except WebSocketDisconnect:
        logger.info(f"Realtime WebSocket disconnected for restaurant {restaurant_id}")
    finally:
        realtime_manager.disconnect(websocket)


async def _relay_client_broadcast(websocket, restaurant_id, role, message):
    try:
        event = BroadcastEvent(message.get("event"))
    except ValueError:
        await websocket.send_json({"type": "error", "message": "Unknown broadcast event"})
        return

    if event not in CLIENT_BROADCASTS[role]:
        await websocket.send_json({
            "type": "error",
            "message": f"Role {role.value} cannot send {event.value}",
        })
        return

    payload = message.get("payload") or {}
    if not isinstance(payload, dict):
        await websocket.send_json({"type": "error", "message": "Payload must be an object"})
        return

    await realtime_manager.broadcast(restaurant_id, event, payload)
