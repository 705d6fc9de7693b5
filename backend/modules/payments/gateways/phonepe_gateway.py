# backend/modules/payments/gateways/phonepe_gateway.py

import base64
import hashlib
import json
import logging
import uuid
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


class PhonePeGateway(PaymentGatewayInterface):
    """
    PhonePe: redirect checkout.

    Requests are signed with ``X-VERIFY = sha256(payload + path + salt_key)
    + "###" + salt_index``; the payment status API is the verification step.
    """

    provider = PaymentProvider.PHONEPE
    checkout_type = CheckoutType.REDIRECT
    required_credentials = ("merchant_id", "salt_key")

    PAY_PATH = "/pg/v1/pay"
    MAX_TRANSACTION_ID_LENGTH = 35
    DECLINED_CODES = {"PAYMENT_ERROR", "PAYMENT_DECLINED", "TIMED_OUT", "TRANSACTION_NOT_FOUND"}

    def __init__(self, config: Dict[str, Any], test_mode: bool = True, **kwargs):
        super().__init__(config, test_mode, **kwargs)

        self.merchant_id = config.get("merchant_id")
        self.salt_key = config.get("salt_key")
        self.salt_index = str(config.get("salt_index", "1"))

        if not self.merchant_id or not self.salt_key:
            raise ValueError("PhonePe merchant_id and salt_key are required")

        if test_mode:
            self.api_base = "https://api-preprod.phonepe.com/apis/pg-sandbox"
        else:
            self.api_base = "https://api.phonepe.com/apis/hermes"

    def x_verify(self, payload: str, path: str) -> str:
        digest = hashlib.sha256(f"{payload}{path}{self.salt_key}".encode()).hexdigest()
        return f"{digest}###{self.salt_index}"

    def merchant_transaction_id(self, context: OrderContext) -> str:
        transaction_id = f"{self.reference_prefix(context.order_number)}{uuid.uuid4().hex}"
        return transaction_id[: self.MAX_TRANSACTION_ID_LENGTH]

    async def create_provider_order(self, context: OrderContext) -> ProviderOrderRef:
        transaction_id = self.merchant_transaction_id(context)
        payload = {
            "merchantId": self.merchant_id,
            "merchantTransactionId": transaction_id,
            "merchantUserId": f"MUID{context.restaurant_id or 0}{context.order_number}",
            "amount": self.format_amount(context.amount),
            "redirectUrl": self.callback_url(context, transaction_id),
            "redirectMode": "REDIRECT",
            "callbackUrl": self.callback_url(context, transaction_id),
            "paymentInstrument": {"type": "PAY_PAGE"},
        }
        if context.customer_phone:
            payload["mobileNumber"] = context.customer_phone

        encoded = base64.b64encode(json.dumps(payload).encode()).decode()
        headers = {
            "Content-Type": "application/json",
            "X-VERIFY": self.x_verify(encoded, self.PAY_PATH),
        }

        try:
            data = await self._request_json(
                "POST", f"{self.api_base}{self.PAY_PATH}",
                json={"request": encoded}, headers=headers,
            )
        except GatewayError as e:
            raise GatewayOrderCreationError(
                f"PhonePe payment initiation failed: {e.detail}", provider=self.provider.value
            ) from e

        if not data.get("success"):
            raise GatewayOrderCreationError(
                f"PhonePe payment initiation failed: {data.get('message', 'unknown error')}",
                provider=self.provider.value,
            )

        try:
            redirect_url = data["data"]["instrumentResponse"]["redirectInfo"]["url"]
        except (KeyError, TypeError) as e:
            raise GatewayOrderCreationError(
                "PhonePe did not return a checkout URL", provider=self.provider.value
            ) from e

        logger.info(f"Created PhonePe transaction {transaction_id} for order {context.order_id}")

        return ProviderOrderRef(
            provider=self.provider,
            provider_order_ref=transaction_id,
            order_id=context.order_id,
            amount=context.amount,
            currency=context.currency,
            checkout_type=self.checkout_type,
            redirect_url=redirect_url,
            raw_response=data,
        )

    async def verify_payment(self, result: PaymentResult) -> VerificationResult:
        path = f"/pg/v1/status/{self.merchant_id}/{result.provider_order_ref}"
        headers = {
            "Content-Type": "application/json",
            "X-VERIFY": self.x_verify("", path),
            "X-MERCHANT-ID": self.merchant_id,
        }
        data = await self._request_json("GET", f"{self.api_base}{path}", headers=headers)

        code = data.get("code")
        details = data.get("data") or {}

        if code == "PAYMENT_SUCCESS":
            return VerificationResult(
                verified=True,
                normalized_amount=self.parse_amount(details["amount"]),
                provider_payment_id=details.get("transactionId") or result.provider_payment_id,
                raw_response=data,
            )
        if code in self.DECLINED_CODES:
            return VerificationResult(
                verified=False,
                declined=True,
                error_message=data.get("message") or "Payment failed",
                raw_response=data,
            )
        return VerificationResult(
            verified=False,
            error_message=data.get("message") or f"Payment status is {code}",
            raw_response=data,
        )

    def get_public_config(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "checkout_type": self.checkout_type.value,
            "merchant_id": self.merchant_id,
            "test_mode": self.test_mode,
        }
