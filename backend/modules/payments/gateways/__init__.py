# backend/modules/payments/gateways/__init__.py

from .base import (
    CheckoutCallbacks,
    CheckoutSession,
    CheckoutState,
    OrderContext,
    PaymentGatewayInterface,
    PaymentResult,
    ProviderOrderRef,
    VerificationResult,
)
from .razorpay_gateway import RazorpayGateway
from .phonepe_gateway import PhonePeGateway
from .paytm_gateway import PaytmGateway

__all__ = [
    "CheckoutCallbacks",
    "CheckoutSession",
    "CheckoutState",
    "OrderContext",
    "PaymentGatewayInterface",
    "PaymentResult",
    "ProviderOrderRef",
    "VerificationResult",
    "RazorpayGateway",
    "PhonePeGateway",
    "PaytmGateway",
]
