# backend/modules/payments/gateways/paytm_gateway.py

import hashlib
import json
import logging
import uuid
from decimal import Decimal
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


class PaytmGateway(PaymentGatewayInterface):
    """Paytm: initiateTransaction, then redirect to the hosted payment page"""

    provider = PaymentProvider.PAYTM
    checkout_type = CheckoutType.REDIRECT
    required_credentials = ("merchant_id", "merchant_key")

    def __init__(self, config: Dict[str, Any], test_mode: bool = True, **kwargs):
        super().__init__(config, test_mode, **kwargs)

        self.merchant_id = config.get("merchant_id")
        self.merchant_key = config.get("merchant_key")
        self.website = config.get("website", "WEBSTAGING" if test_mode else "DEFAULT")

        if not self.merchant_id or not self.merchant_key:
            raise ValueError("Paytm merchant_id and merchant_key are required")

        if test_mode:
            self.api_base = "https://securegw-stage.paytm.in"
        else:
            self.api_base = "https://securegw.paytm.in"

    def sign(self, body: Dict[str, Any]) -> str:
        serialized = json.dumps(body, separators=(",", ":"))
        return hashlib.sha256(f"{serialized}{self.merchant_key}".encode()).hexdigest()

    def _signed(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return {"body": body, "head": {"signature": self.sign(body)}}

    async def create_provider_order(self, context: OrderContext) -> ProviderOrderRef:
        paytm_order_id = f"{self.reference_prefix(context.order_number)}{uuid.uuid4().hex[:12]}"
        body = {
            "requestType": "Payment",
            "mid": self.merchant_id,
            "websiteName": self.website,
            "orderId": paytm_order_id,
            "callbackUrl": self.callback_url(context, paytm_order_id),
            "txnAmount": {"value": f"{Decimal(str(context.amount)):.2f}", "currency": context.currency},
            "userInfo": {"custId": context.customer_phone or f"CUST_{context.order_number}"},
        }

        try:
            data = await self._request_json(
                "POST",
                f"{self.api_base}/theia/api/v1/initiateTransaction",
                params={"mid": self.merchant_id, "orderId": paytm_order_id},
                json=self._signed(body),
            )
        except GatewayError as e:
            raise GatewayOrderCreationError(
                f"Paytm transaction initiation failed: {e.detail}", provider=self.provider.value
            ) from e

        response_body = data.get("body") or {}
        result_info = response_body.get("resultInfo") or {}
        txn_token = response_body.get("txnToken")
        if result_info.get("resultStatus") != "S" or not txn_token:
            raise GatewayOrderCreationError(
                f"Paytm transaction initiation failed: {result_info.get('resultMsg', 'unknown error')}",
                provider=self.provider.value,
            )

        redirect_url = (
            f"{self.api_base}/theia/api/v1/showPaymentPage"
            f"?mid={self.merchant_id}&orderId={paytm_order_id}&txnToken={txn_token}"
        )

        logger.info(f"Created Paytm transaction {paytm_order_id} for order {context.order_id}")

        return ProviderOrderRef(
            provider=self.provider,
            provider_order_ref=paytm_order_id,
            order_id=context.order_id,
            amount=context.amount,
            currency=context.currency,
            checkout_type=self.checkout_type,
            redirect_url=redirect_url,
            raw_response=data,
        )

    async def verify_payment(self, result: PaymentResult) -> VerificationResult:
        body = {"mid": self.merchant_id, "orderId": result.provider_order_ref}
        data = await self._request_json(
            "POST", f"{self.api_base}/v3/order/status", json=self._signed(body)
        )

        response_body = data.get("body") or {}
        result_info = response_body.get("resultInfo") or {}
        status = result_info.get("resultStatus")

        if status == "TXN_SUCCESS":
            return VerificationResult(
                verified=True,
                normalized_amount=Decimal(str(response_body["txnAmount"])).quantize(Decimal("0.01")),
                provider_payment_id=response_body.get("txnId") or result.provider_payment_id,
                raw_response=data,
            )
        if status == "TXN_FAILURE":
            return VerificationResult(
                verified=False,
                declined=True,
                error_message=result_info.get("resultMsg") or "Payment failed",
                raw_response=data,
            )
        return VerificationResult(
            verified=False,
            error_message=result_info.get("resultMsg") or f"Payment status is {status}",
            raw_response=data,
        )

    def get_public_config(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "checkout_type": self.checkout_type.value,
            "merchant_id": self.merchant_id,
            "test_mode": self.test_mode,
        }
