# backend/modules/payments/gateways/razorpay_gateway.py

import hashlib
import hmac
import logging
from typing import Any, Dict

from core.exceptions import GatewayError, GatewayOrderCreationError
from .base import (
    OrderContext,
    PaymentGatewayInterface,
    PaymentResult,
    ProviderOrderRef,
    VerificationResult,
)
from ..models.payment_models import CheckoutType, PaymentProvider


logger = logging.getLogger(__name__)


class RazorpayGateway(PaymentGatewayInterface):
    """Razorpay: popup checkout, HMAC-SHA256 payment signatures"""

    provider = PaymentProvider.RAZORPAY
    checkout_type = CheckoutType.POPUP
    required_credentials = ("key_id", "key_secret")

    # Razorpay uses one host; test vs live is decided by the key pair
    API_BASE = "https://api.razorpay.com/v1"

    def __init__(self, config: Dict[str, Any], test_mode: bool = True, **kwargs):
        super().__init__(config, test_mode, **kwargs)

        self.key_id = config.get("key_id")
        self.key_secret = config.get("key_secret")

        if not self.key_id or not self.key_secret:
            raise ValueError("Razorpay key_id and key_secret are required")

    @property
    def _auth(self):
        return (self.key_id, self.key_secret)

    async def create_provider_order(self, context: OrderContext) -> ProviderOrderRef:
        body = {
            "amount": self.format_amount(context.amount),
            "currency": context.currency,
            "receipt": f"order_{context.order_number}"[:40],
            "notes": {
                "order_id": context.order_id,
                "restaurant_id": str(context.restaurant_id or ""),
            },
        }

        try:
            data = await self._request_json(
                "POST", f"{self.API_BASE}/orders", json=body, auth=self._auth
            )
        except GatewayError as e:
            raise GatewayOrderCreationError(
                f"Razorpay order creation failed: {e.detail}", provider=self.provider.value
            ) from e

        if not data.get("id"):
            raise GatewayOrderCreationError(
                "Razorpay did not return an order id", provider=self.provider.value
            )

        logger.info(f"Created Razorpay order {data['id']} for order {context.order_id}")

        return ProviderOrderRef(
            provider=self.provider,
            provider_order_ref=data["id"],
            order_id=context.order_id,
            amount=context.amount,
            currency=context.currency,
            checkout_type=self.checkout_type,
            raw_response=data,
        )

    def checkout_options(self, ref: ProviderOrderRef) -> Dict[str, Any]:
        return {
            "key": self.key_id,
            "amount": self.format_amount(ref.amount),
            "currency": ref.currency,
            "order_id": ref.provider_order_ref,
            "name": self.config.get("display_name", "Restaurant"),
        }

    def compute_signature(self, provider_order_ref: str, provider_payment_id: str) -> str:
        message = f"{provider_order_ref}|{provider_payment_id}"
        return hmac.new(
            self.key_secret.encode(), message.encode(), hashlib.sha256
        ).hexdigest()

    async def verify_payment(self, result: PaymentResult) -> VerificationResult:
        if not result.provider_payment_id or not result.provider_signature:
            return VerificationResult(
                verified=False, error_message="Missing Razorpay payment id or signature"
            )

        expected = self.compute_signature(result.provider_order_ref, result.provider_payment_id)
        if not hmac.compare_digest(expected, result.provider_signature):
            logger.warning(
                f"Razorpay signature mismatch for order ref {result.provider_order_ref}"
            )
            return VerificationResult(verified=False, error_message="Invalid payment signature")

        # Signature proves authenticity; the payment record gives the amount
        data = await self._request_json(
            "GET", f"{self.API_BASE}/payments/{result.provider_payment_id}", auth=self._auth
        )

        if data.get("order_id") != result.provider_order_ref:
            return VerificationResult(
                verified=False, error_message="Payment does not belong to this order"
            )

        status = data.get("status")
        if status == "failed":
            return VerificationResult(
                verified=False,
                declined=True,
                provider_payment_id=result.provider_payment_id,
                error_message=data.get("error_description") or "Payment failed",
                raw_response=data,
            )
        if status not in ("authorized", "captured"):
            return VerificationResult(
                verified=False, error_message=f"Payment is {status}", raw_response=data
            )

        return VerificationResult(
            verified=True,
            normalized_amount=self.parse_amount(data["amount"]),
            provider_payment_id=result.provider_payment_id,
            raw_response=data,
        )

    async def reference_belongs_to(self, provider_order_ref: str, context: OrderContext) -> bool:
        data = await self._request_json(
            "GET", f"{self.API_BASE}/orders/{provider_order_ref}", auth=self._auth
        )
        notes = data.get("notes") or {}
        return notes.get("order_id") == context.order_id

    def get_public_config(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "checkout_type": self.checkout_type.value,
            "key_id": self.key_id,
            "test_mode": self.test_mode,
        }
