# backend/modules/payments/tests/conftest.py

import hashlib
import hmac
import json

import httpx
import pytest

from modules.payments.models.payment_models import PaymentGatewayConfig
from modules.payments.services.gateway_registry import gateway_registry
from tests.factories import RestaurantFactory

RAZORPAY_CREDENTIALS = {"key_id": "rzp_test_key", "key_secret": "rzp_test_secret"}
PHONEPE_CREDENTIALS = {"merchant_id": "PGTESTMERCHANT", "salt_key": "salt-123", "salt_index": "1"}


def razorpay_signature(provider_order_ref: str, payment_id: str) -> str:
    message = f"{provider_order_ref}|{payment_id}".encode()
    return hmac.new(RAZORPAY_CREDENTIALS["key_secret"].encode(), message, hashlib.sha256).hexdigest()


class FakeRazorpay:
    """In-memory stand-in for the Razorpay orders and payments API"""

    def __init__(self):
        self.payments = {}
        self.orders = {}
        self.requests = []
        self.order_count = 0

    def add_order(self, provider_order_ref, order_id):
        self.orders[provider_order_ref] = {
            "id": provider_order_ref,
            "status": "created",
            "notes": {"order_id": order_id},
        }

    def add_payment(
        self, payment_id, provider_order_ref, amount_paise, status="captured", order_id=None
    ):
        if order_id is not None:
            self.add_order(provider_order_ref, order_id)
        self.payments[payment_id] = {
            "id": payment_id,
            "order_id": provider_order_ref,
            "amount": amount_paise,
            "currency": "INR",
            "status": status,
            "error_description": "Card declined by bank" if status == "failed" else None,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/v1/orders":
            body = json.loads(request.content)
            self.order_count += 1
            order = {
                "id": f"order_{self.order_count}",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
                "notes": body.get("notes", {}),
            }
            self.orders[order["id"]] = order
            return httpx.Response(200, json=order)

        if request.method == "GET" and path.startswith("/v1/orders/"):
            order = self.orders.get(path.rsplit("/", 1)[1])
            if order is None:
                return httpx.Response(400, json={
                    "error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}
                })
            return httpx.Response(200, json=order)

        if request.method == "GET" and path.startswith("/v1/payments/"):
            payment = self.payments.get(path.rsplit("/", 1)[1])
            if payment is None:
                return httpx.Response(400, json={
                    "error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}
                })
            return httpx.Response(200, json=payment)

        return httpx.Response(404, json={"error": {"description": f"No route {path}"}})


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def configure_provider(db, restaurant, provider, credentials, test_mode=True):
    restaurant.payment_gateway_enabled = True
    restaurant.payment_provider = provider
    db.add(PaymentGatewayConfig(
        restaurant_id=restaurant.id, provider=provider, config=credentials,
        is_active=True, is_test_mode=test_mode,
    ))
    db.commit()
    return restaurant


@pytest.fixture
def fake_razorpay():
    fake = FakeRazorpay()
    gateway_registry.http_client = mock_client(fake.handler)
    return fake


@pytest.fixture
def razorpay_restaurant(db_session):
    return configure_provider(db_session, RestaurantFactory(), "razorpay", RAZORPAY_CREDENTIALS)


@pytest.fixture
def phonepe_restaurant(db_session):
    return configure_provider(db_session, RestaurantFactory(), "phonepe", PHONEPE_CREDENTIALS)
