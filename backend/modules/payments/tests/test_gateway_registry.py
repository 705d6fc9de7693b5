# backend/modules/payments/tests/test_gateway_registry.py

import pytest

from core.exceptions import GatewayOrderCreationError, NotFoundError, ValidationError
from tests.factories import RestaurantFactory
from ..gateways import PaymentResult
from ..gateways.razorpay_gateway import RazorpayGateway
from ..models.payment_models import CheckoutType, PaymentGatewayConfig, PaymentProvider
from ..services.gateway_registry import GatewayCapabilityProbe, PaymentGatewayRegistry
from .conftest import PHONEPE_CREDENTIALS, RAZORPAY_CREDENTIALS, configure_provider


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return PaymentGatewayRegistry(GatewayCapabilityProbe(ttl_seconds=60, clock=clock))


class TestCapabilityProbe:

    def test_gateway_switched_off(self, db_session, registry):
        restaurant = RestaurantFactory()

        capability = registry.capability(db_session, restaurant.id)

        assert not capability.enabled
        assert "not enabled" in capability.reason

    def test_enabled_without_provider(self, db_session, registry):
        restaurant = RestaurantFactory(payment_gateway_enabled=True)

        capability = registry.capability(db_session, restaurant.id)

        assert not capability.enabled
        assert capability.reason == "No online payment provider is configured"

    def test_incomplete_credentials(self, db_session, registry):
        restaurant = configure_provider(
            db_session, RestaurantFactory(), "razorpay", {"key_id": "rzp_test_key"}
        )

        capability = registry.capability(db_session, restaurant.id)

        assert not capability.enabled
        assert "key_secret" in capability.reason

    def test_configured_provider(self, db_session, registry):
        restaurant = configure_provider(
            db_session, RestaurantFactory(), "phonepe", PHONEPE_CREDENTIALS
        )

        capability = registry.capability(db_session, restaurant.id)

        assert capability.enabled
        assert capability.provider == PaymentProvider.PHONEPE
        assert capability.checkout_type == CheckoutType.REDIRECT
        assert capability.test_mode is True

    def test_unknown_restaurant(self, db_session, registry):
        with pytest.raises(NotFoundError):
            registry.capability(db_session, 404)

    def test_answer_is_cached_until_ttl_expires(self, db_session, registry, clock):
        restaurant = RestaurantFactory()
        assert not registry.capability(db_session, restaurant.id).enabled

        # Changed behind the registry's back
        configure_provider(db_session, restaurant, "razorpay", RAZORPAY_CREDENTIALS)
        clock.now += 59
        assert not registry.capability(db_session, restaurant.id).enabled

        clock.now += 2
        assert registry.capability(db_session, restaurant.id).enabled

    def test_zero_ttl_caches_until_invalidated(self, db_session, clock):
        registry = PaymentGatewayRegistry(GatewayCapabilityProbe(ttl_seconds=0, clock=clock))
        restaurant = RestaurantFactory()
        registry.capability(db_session, restaurant.id)

        configure_provider(db_session, restaurant, "razorpay", RAZORPAY_CREDENTIALS)
        clock.now += 10 ** 6
        assert not registry.capability(db_session, restaurant.id).enabled

        registry.probe.invalidate(restaurant.id)
        assert registry.capability(db_session, restaurant.id).enabled


class TestGatewayRegistry:

    def test_configure_gateway_invalidates_the_cache(self, db_session, registry):
        restaurant = RestaurantFactory()
        assert not registry.capability(db_session, restaurant.id).enabled

        capability = registry.configure_gateway(
            db_session, restaurant.id, PaymentProvider.RAZORPAY, RAZORPAY_CREDENTIALS
        )

        assert capability.enabled
        assert capability.provider == PaymentProvider.RAZORPAY
        assert registry.capability(db_session, restaurant.id).enabled

    def test_reconfiguring_updates_the_existing_row(self, db_session, registry):
        restaurant = RestaurantFactory()
        registry.configure_gateway(db_session, restaurant.id, PaymentProvider.RAZORPAY, RAZORPAY_CREDENTIALS)

        capability = registry.configure_gateway(
            db_session, restaurant.id, PaymentProvider.RAZORPAY,
            RAZORPAY_CREDENTIALS, enabled=False,
        )

        assert not capability.enabled
        rows = db_session.query(PaymentGatewayConfig).filter_by(restaurant_id=restaurant.id).all()
        assert len(rows) == 1

    def test_cash_is_not_an_online_provider(self, db_session, registry):
        restaurant = RestaurantFactory()
        with pytest.raises(ValidationError):
            registry.configure_gateway(db_session, restaurant.id, PaymentProvider.CASH, {})

    def test_get_gateway_builds_the_provider_class(self, db_session, registry):
        restaurant = configure_provider(db_session, RestaurantFactory(), "razorpay", RAZORPAY_CREDENTIALS)

        gateway = registry.get_gateway(db_session, restaurant.id)

        assert isinstance(gateway, RazorpayGateway)
        assert gateway.key_id == "rzp_test_key"

    def test_disabled_gateway_cannot_create_orders(self, db_session, registry):
        restaurant = RestaurantFactory()
        with pytest.raises(GatewayOrderCreationError, match="not enabled"):
            registry.get_gateway(db_session, restaurant.id)

    def test_result_from_another_provider_is_rejected(self, db_session, registry):
        restaurant = configure_provider(db_session, RestaurantFactory(), "razorpay", RAZORPAY_CREDENTIALS)
        result = PaymentResult(provider=PaymentProvider.PHONEPE, provider_order_ref="ORD1")

        with pytest.raises(ValidationError, match="razorpay, not phonepe"):
            registry.gateway_for_result(db_session, restaurant.id, result)
