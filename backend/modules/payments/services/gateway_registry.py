# backend/modules/payments/services/gateway_registry.py

"""
Resolves which payment provider a restaurant uses.

The capability probe answers "can this restaurant take online payments,
and through whom" and caches the answer per restaurant for a configured
TTL (0 keeps it until the process restarts). Configuration changes made
through ``configure_gateway`` invalidate the cached answer.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import GatewayOrderCreationError, NotFoundError, ValidationError
from modules.core.models import Restaurant
from ..gateways import PaymentGatewayInterface, PaymentResult
from ..gateways.paytm_gateway import PaytmGateway
from ..gateways.phonepe_gateway import PhonePeGateway
from ..gateways.razorpay_gateway import RazorpayGateway
from ..models.payment_models import (
    ONLINE_PROVIDERS,
    CheckoutType,
    PaymentGatewayConfig,
    PaymentProvider,
)

logger = logging.getLogger(__name__)

GATEWAY_CLASSES = {
    PaymentProvider.RAZORPAY: RazorpayGateway,
    PaymentProvider.PHONEPE: PhonePeGateway,
    PaymentProvider.PAYTM: PaytmGateway,
}


@dataclass
class GatewayCapability:
    restaurant_id: int
    enabled: bool
    provider: Optional[PaymentProvider] = None
    checkout_type: Optional[CheckoutType] = None
    test_mode: bool = True
    currency: str = "INR"
    reason: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict, repr=False)
    probed_at: float = 0.0


class GatewayCapabilityProbe:
    """Per-restaurant provider availability with an explicit TTL"""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cache: Dict[int, GatewayCapability] = {}

    def probe(self, db: Session, restaurant_id: int) -> GatewayCapability:
        cached = self._cache.get(restaurant_id)
        if cached is not None and self._is_fresh(cached):
            return cached

        capability = self._probe(db, restaurant_id)
        self._cache[restaurant_id] = capability
        return capability

    def invalidate(self, restaurant_id: Optional[int] = None):
        if restaurant_id is None:
            self._cache.clear()
        else:
            self._cache.pop(restaurant_id, None)

    def _is_fresh(self, capability: GatewayCapability) -> bool:
        if self.ttl_seconds == 0:
            return True
        return self.clock() - capability.probed_at < self.ttl_seconds

    def _probe(self, db: Session, restaurant_id: int) -> GatewayCapability:
        restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
        if not restaurant:
            raise NotFoundError(f"Restaurant {restaurant_id} not found")

        now = self.clock()

        def disabled(reason: str) -> GatewayCapability:
            logger.info(f"Online payments unavailable for restaurant {restaurant_id}: {reason}")
            return GatewayCapability(
                restaurant_id=restaurant_id, enabled=False, reason=reason,
                currency=restaurant.currency, probed_at=now,
            )

        if not restaurant.payment_gateway_enabled:
            return disabled("Payment gateway is not enabled for this restaurant")

        try:
            provider = PaymentProvider(restaurant.payment_provider)
        except ValueError:
            provider = None
        if provider not in ONLINE_PROVIDERS:
            return disabled("No online payment provider is configured")

        row = (
            db.query(PaymentGatewayConfig)
            .filter(
                PaymentGatewayConfig.restaurant_id == restaurant_id,
                PaymentGatewayConfig.provider == provider.value,
                PaymentGatewayConfig.is_active.is_(True),
            )
            .first()
        )

        config = settings.fallback_gateway_credentials(provider.value)
        if row is not None:
            config.update(row.config or {})
            test_mode = row.is_test_mode
        else:
            test_mode = not settings.is_production

        missing = GATEWAY_CLASSES[provider].missing_credentials(config)
        if missing:
            return disabled(f"{provider.value} credentials are incomplete: missing {', '.join(missing)}")

        return GatewayCapability(
            restaurant_id=restaurant_id,
            enabled=True,
            provider=provider,
            checkout_type=GATEWAY_CLASSES[provider].checkout_type,
            test_mode=test_mode,
            currency=restaurant.currency,
            config=config,
            probed_at=now,
        )


class PaymentGatewayRegistry:
    """Builds the provider gateway configured for a restaurant"""

    def __init__(self, probe: GatewayCapabilityProbe, http_client: Optional[httpx.AsyncClient] = None):
        self.probe = probe
        self.http_client = http_client

    def _client(self) -> httpx.AsyncClient:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)
        return self.http_client

    def capability(self, db: Session, restaurant_id: int) -> GatewayCapability:
        return self.probe.probe(db, restaurant_id)

    def get_gateway(self, db: Session, restaurant_id: int) -> PaymentGatewayInterface:
        capability = self.probe.probe(db, restaurant_id)
        if not capability.enabled:
            raise GatewayOrderCreationError(capability.reason)

        gateway_class = GATEWAY_CLASSES[capability.provider]
        return gateway_class(
            capability.config,
            test_mode=capability.test_mode,
            http_client=self._client(),
        )

    def gateway_for_result(
        self, db: Session, restaurant_id: int, result: PaymentResult
    ) -> PaymentGatewayInterface:
        """The restaurant's gateway, provided it is the one the client claims paid"""
        gateway = self.get_gateway(db, restaurant_id)
        if gateway.provider != result.provider:
            raise ValidationError(
                f"Restaurant {restaurant_id} takes payments through "
                f"{gateway.provider.value}, not {result.provider.value}"
            )
        return gateway

    def configure_gateway(
        self,
        db: Session,
        restaurant_id: int,
        provider: PaymentProvider,
        config: Dict[str, Any],
        enabled: bool = True,
        test_mode: bool = True,
    ) -> GatewayCapability:
        if provider not in ONLINE_PROVIDERS:
            raise ValidationError(f"{provider.value} is not an online payment provider")

        restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
        if not restaurant:
            raise NotFoundError(f"Restaurant {restaurant_id} not found")

        row = (
            db.query(PaymentGatewayConfig)
            .filter(
                PaymentGatewayConfig.restaurant_id == restaurant_id,
                PaymentGatewayConfig.provider == provider.value,
            )
            .first()
        )
        if row is None:
            row = PaymentGatewayConfig(restaurant_id=restaurant_id, provider=provider.value)
            db.add(row)

        row.config = dict(config)
        row.is_active = True
        row.is_test_mode = test_mode
        restaurant.payment_gateway_enabled = enabled
        restaurant.payment_provider = provider.value
        db.commit()

        self.probe.invalidate(restaurant_id)
        logger.info(
            f"Payment gateway for restaurant {restaurant_id} set to {provider.value} "
            f"(enabled={enabled}, test_mode={test_mode})"
        )
        return self.probe.probe(db, restaurant_id)

    async def close(self):
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None


gateway_capability_probe = GatewayCapabilityProbe(settings.gateway_probe_ttl_seconds)
gateway_registry = PaymentGatewayRegistry(gateway_capability_probe)
