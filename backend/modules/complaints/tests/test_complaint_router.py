# backend/modules/complaints/tests/test_complaint_router.py

import pytest

from modules.realtime.events import SubscriberRole
from modules.realtime.websocket.realtime_manager import realtime_manager
from tests.factories import OrderFactory

pytestmark = pytest.mark.integration

API = "/api/v1/complaints"


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


def test_report_track_and_resolve(client, db_session):
    order = OrderFactory(served=True, paid=True)
    manager = RecordingSocket()
    realtime_manager.register(manager, order.restaurant_id, SubscriberRole.MANAGER)

    created = client.post(f"{API}/", json={
        "order_id": order.id,
        "issue_type": "wrong_item",
        "description": "Got butter naan instead of garlic naan",
        "priority": "high",
    })
    assert created.status_code == 201
    complaint = created.json()
    assert complaint["status"] == "open"
    assert complaint["restaurant_id"] == order.restaurant_id

    assert client.get(f"{API}/order/{order.id}").json()["id"] == complaint["id"]

    resolved = client.put(f"{API}/{complaint['id']}", json={
        "status": "resolved", "action_taken": "Replaced and comped",
    })
    assert resolved.status_code == 200
    assert resolved.json()["resolved_at"] is not None

    listed = client.get(f"{API}/", params={"restaurant_id": order.restaurant_id, "status": "resolved"})
    assert [c["id"] for c in listed.json()] == [complaint["id"]]

    changes = [(m["entity"], m["action"]) for m in manager.sent if m["channel"] == "changes"]
    assert changes == [("complaint", "insert"), ("complaint", "update")]


def test_second_complaint_for_order(client, db_session):
    order = OrderFactory()
    body = {"order_id": order.id, "issue_type": "wait_time", "description": "40 minutes"}
    client.post(f"{API}/", json=body)

    response = client.post(f"{API}/", json=body)

    assert response.status_code == 409
    assert response.json()["error_code"] == "COMPLAINT_EXISTS"


def test_invalid_issue_type(client, db_session):
    order = OrderFactory()

    response = client.post(f"{API}/", json={
        "order_id": order.id, "issue_type": "noise", "description": "Loud music",
    })

    assert response.status_code == 422


def test_missing_complaints(client, db_session):
    assert client.get(f"{API}/12345").status_code == 404
    assert client.get(f"{API}/order/unknown").status_code == 404
