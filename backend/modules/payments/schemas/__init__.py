# backend/modules/payments/schemas/__init__.py

from .payment_schemas import (
    CashConfirmRequest,
    CheckoutRequest,
    CheckoutResponse,
    GatewayCapabilityResponse,
    GatewayConfigUpdate,
    OnlineLegResult,
    OrderPaymentResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
    RefundCreate,
    RefundResponse,
    SplitPaymentRequest,
)

__all__ = [
    "CashConfirmRequest",
    "CheckoutRequest",
    "CheckoutResponse",
    "GatewayCapabilityResponse",
    "GatewayConfigUpdate",
    "OnlineLegResult",
    "OrderPaymentResponse",
    "PaymentVerifyRequest",
    "PaymentVerifyResponse",
    "RefundCreate",
    "RefundResponse",
    "SplitPaymentRequest",
]
