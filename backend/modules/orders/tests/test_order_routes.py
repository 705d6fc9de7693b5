# backend/modules/orders/tests/test_order_routes.py

import pytest
from fastapi.testclient import TestClient

from tests.factories import OrderFactory, RestaurantFactory, TableFactory


@pytest.mark.integration
class TestOrderRoutes:

    def test_place_and_track_order(self, client: TestClient, db_session):
        restaurant = RestaurantFactory()
        table = TableFactory(restaurant_id=restaurant.id)

        response = client.post("/api/v1/orders/", json={
            "table_id": table.id,
            "payment_method": "cash",
            "items": [
                {"menu_item_id": 11, "name": "Masala Dosa", "price": "120.00", "quantity": 2},
            ],
        })

        assert response.status_code == 201
        order = response.json()
        assert order["order_number"] == 1
        assert order["order_status"] == "pending_payment"
        assert order["items"][0]["menu_item_id"] == "11"
        assert order["total"] == "240.00"
        assert order["session_id"]

        tracked = client.get(f"/api/v1/orders/track/{order['order_token']}")
        assert tracked.status_code == 200
        assert tracked.json()["id"] == order["id"]

    def test_missing_placement_is_a_validation_error(self, client: TestClient):
        response = client.post("/api/v1/orders/", json={
            "payment_method": "cash",
            "items": [{"menu_item_id": "m-1", "name": "Tea", "price": "20", "quantity": 1}],
        })
        assert response.status_code == 422

    def test_unknown_order_uses_error_shape(self, client: TestClient):
        response = client.get("/api/v1/orders/does-not-exist")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "NOT_FOUND"
        assert body["path"] == "/api/v1/orders/does-not-exist"

    def test_item_status_on_unpaid_order_conflicts(self, client: TestClient, db_session):
        order = OrderFactory()
        response = client.put(
            f"/api/v1/orders/{order.id}/items/m-1/status", json={"status": "preparing"}
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    def test_kitchen_flow(self, client: TestClient, db_session):
        order = OrderFactory(paid=True)

        response = client.put(f"/api/v1/orders/{order.id}/items/m-1/status", json={"status": "ready"})
        assert response.json()["order_status"] == "preparing"

        response = client.put(f"/api/v1/orders/{order.id}/status", json={"status": "ready"})
        body = response.json()
        assert body["order_status"] == "ready"
        assert body["version"] == 3

        stale = client.put(
            f"/api/v1/orders/{order.id}/status",
            json={"status": "served", "expected_version": 2},
        )
        assert stale.status_code == 409
        assert stale.json()["error_code"] == "CONCURRENCY_CONFLICT"
        assert stale.json()["current_version"] == 3

    def test_list_orders_for_kitchen(self, client: TestClient, db_session):
        restaurant = RestaurantFactory()
        OrderFactory(restaurant_id=restaurant.id)
        OrderFactory(restaurant_id=restaurant.id, paid=True)

        response = client.get("/api/v1/orders/", params={"restaurant_id": restaurant.id})
        assert response.status_code == 200
        assert [o["order_status"] for o in response.json()] == ["received"]

    def test_cancel_with_refund_reports_result(self, client: TestClient, db_session):
        order = OrderFactory(paid=True)
        response = client.post(
            f"/api/v1/orders/{order.id}/cancel",
            json={"reason": "out of stock", "refund": True, "refund_amount": "100.00"},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["order"]["order_status"] == "cancelled"
        assert body["order"]["payment_status"] == "partially_refunded"
        assert body["refund_amount"] == "100.00"
        assert body["refund_error"] is None
