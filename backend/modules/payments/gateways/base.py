# backend/modules/payments/gateways/base.py

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass, field
from enum import Enum
import logging

import httpx

from core.exceptions import GatewayError
from ..models.payment_models import CheckoutType, PaymentProvider
from ..utils import payment_retry

logger = logging.getLogger(__name__)


@dataclass
class OrderContext:
    """What a provider needs to open an order for our order"""
    order_id: str
    order_number: int
    amount: Decimal
    currency: str = "INR"
    restaurant_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    return_url: Optional[str] = None  # For redirect-based providers


@dataclass
class ProviderOrderRef:
    """Opaque provider-side order reference plus what checkout needs"""
    provider: PaymentProvider
    provider_order_ref: str
    order_id: str
    amount: Decimal
    currency: str
    checkout_type: CheckoutType
    redirect_url: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class PaymentResult:
    """What the client reports back after checkout; untrusted until verified"""
    provider: PaymentProvider
    provider_order_ref: str
    provider_payment_id: Optional[str] = None
    provider_signature: Optional[str] = None


@dataclass
class VerificationResult:
    verified: bool
    normalized_amount: Optional[Decimal] = None
    provider_payment_id: Optional[str] = None
    # The provider says the payment failed, as opposed to "could not check"
    declined: bool = False
    error_message: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


@dataclass
class CheckoutCallbacks:
    on_success: Callable[[PaymentResult], Awaitable[Any]]
    on_failure: Optional[Callable[[str], Awaitable[Any]]] = None
    on_dismiss: Optional[Callable[[], Awaitable[Any]]] = None


class CheckoutState(str, Enum):
    OPEN = "open"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISMISSED = "dismissed"


@dataclass
class CheckoutSession:
    """
    One checkout attempt.

    Dispatches the provider outcome to the callbacks exactly once. After a
    success, a late dismiss or failure signal is ignored. Nothing here
    writes to the database; payment is recorded only by verification.
    """
    ref: ProviderOrderRef
    callbacks: CheckoutCallbacks
    options: Dict[str, Any] = field(default_factory=dict)
    state: CheckoutState = CheckoutState.OPEN

    @property
    def checkout_type(self) -> CheckoutType:
        return self.ref.checkout_type

    def to_client(self) -> Dict[str, Any]:
        payload = {
            "provider": self.ref.provider.value,
            "checkout_type": self.checkout_type.value,
            "provider_order_ref": self.ref.provider_order_ref,
            "order_id": self.ref.order_id,
            "amount": str(self.ref.amount),
            "currency": self.ref.currency,
        }
        if self.checkout_type == CheckoutType.REDIRECT:
            payload["redirect_url"] = self.ref.redirect_url
        else:
            payload["options"] = self.options
        return payload

    async def succeed(
        self, provider_payment_id: Optional[str], provider_signature: Optional[str] = None
    ):
        if self.state != CheckoutState.OPEN:
            logger.info(f"Ignoring success for checkout in state {self.state.value}")
            return None
        self.state = CheckoutState.SUCCEEDED
        result = PaymentResult(
            provider=self.ref.provider,
            provider_order_ref=self.ref.provider_order_ref,
            provider_payment_id=provider_payment_id,
            provider_signature=provider_signature,
        )
        return await self.callbacks.on_success(result)

    async def fail(self, reason: str):
        if self.state != CheckoutState.OPEN:
            return None
        self.state = CheckoutState.FAILED
        if self.callbacks.on_failure:
            return await self.callbacks.on_failure(reason)
        return None

    async def dismiss(self):
        if self.state != CheckoutState.OPEN:
            return None
        self.state = CheckoutState.DISMISSED
        if self.callbacks.on_dismiss:
            return await self.callbacks.on_dismiss()
        return None


class PaymentGatewayInterface(ABC):
    """Abstract interface for payment providers"""

    provider: PaymentProvider
    checkout_type: CheckoutType
    required_credentials: Tuple[str, ...] = ()

    @classmethod
    def missing_credentials(cls, config: Dict[str, Any]) -> List[str]:
        return [key for key in cls.required_credentials if not config.get(key)]

    def __init__(
        self,
        config: Dict[str, Any],
        test_mode: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize payment gateway

        Args:
            config: Provider credentials (public ids and server-side secrets)
            test_mode: Whether to use the provider's sandbox
            http_client: Shared client; one is created when omitted
            timeout: Request timeout in seconds
        """
        self.config = config
        self.test_mode = test_mode
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @abstractmethod
    async def create_provider_order(self, context: OrderContext) -> ProviderOrderRef:
        """
        Create the provider-side order

        Raises:
            GatewayOrderCreationError if the provider rejects the request
        """
        pass

    @abstractmethod
    async def verify_payment(self, result: PaymentResult) -> VerificationResult:
        """
        Re-validate a client-reported payment with the provider

        Returns:
            VerificationResult; raises GatewayError only when the provider
            could not be reached or answered unintelligibly
        """
        pass

    def reference_prefix(self, order_number: int) -> str:
        return f"ORD{order_number}_"

    async def reference_belongs_to(self, provider_order_ref: str, context: OrderContext) -> bool:
        """
        Whether the provider order was opened for ``context``'s order.

        Merchant-generated references start with the order number; providers
        that mint their own ids override this with a lookup.
        """
        return provider_order_ref.startswith(self.reference_prefix(context.order_number))

    @abstractmethod
    def get_public_config(self) -> Dict[str, Any]:
        """Non-secret identifiers the client may see"""
        pass

    def checkout_options(self, ref: ProviderOrderRef) -> Dict[str, Any]:
        """Popup options for the client SDK; redirect providers need none"""
        return {}

    def initiate_checkout(
        self, ref: ProviderOrderRef, callbacks: CheckoutCallbacks
    ) -> CheckoutSession:
        """Start a popup or redirect checkout, as this provider supports"""
        if ref.checkout_type == CheckoutType.REDIRECT and not ref.redirect_url:
            raise GatewayError(
                f"{self.provider.value} did not return a checkout URL",
                provider=self.provider.value,
            )
        return CheckoutSession(ref=ref, callbacks=callbacks, options=self.checkout_options(ref))

    @payment_retry()
    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying failures the provider cannot have acted on"""
        response = await self.http_client.request(method, url, **kwargs)
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._send(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.provider.value} request failed: {e}")
            raise GatewayError(
                f"Could not reach {self.provider.value}: {e}", provider=self.provider.value
            ) from e

        try:
            data = response.json() if response.text else {}
        except ValueError as e:
            raise GatewayError(
                f"{self.provider.value} returned an unreadable response",
                provider=self.provider.value,
            ) from e

        if response.status_code >= 400:
            logger.error(f"{self.provider.value} API error: {response.status_code} - {data}")
            raise GatewayError(
                f"{self.provider.value} rejected the request: {self._error_text(data)}",
                provider=self.provider.value,
            )
        return data

    def _error_text(self, data: Dict[str, Any]) -> str:
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("description") or error.get("code") or str(error)
        return data.get("message") or str(data)

    def callback_url(self, context: OrderContext, provider_order_ref: str) -> Optional[str]:
        """Return URL that carries the provider order ref back to our callback"""
        if not context.return_url:
            return None
        return str(httpx.URL(context.return_url).copy_add_param("provider_order_ref", provider_order_ref))

    def format_amount(self, amount: Decimal) -> int:
        """Convert rupees to paise for provider APIs"""
        return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def parse_amount(self, amount: Any) -> Decimal:
        """Convert provider paise to rupees"""
        return (Decimal(str(amount)) / 100).quantize(Decimal("0.01"))

    async def close(self):
        await self.http_client.aclose()
