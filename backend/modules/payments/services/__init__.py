# backend/modules/payments/services/__init__.py

from .gateway_registry import (
    GatewayCapability,
    GatewayCapabilityProbe,
    PaymentGatewayRegistry,
    gateway_capability_probe,
    gateway_registry,
)
from .payment_service import PaymentService, PaymentVerification, payment_service
from .refund_service import RefundResult, RefundService, refund_service
from .split_payment_service import SplitPaymentService, split_payment_service

__all__ = [
    # Gateway selection
    "GatewayCapability",
    "GatewayCapabilityProbe",
    "PaymentGatewayRegistry",
    "gateway_capability_probe",
    "gateway_registry",
    # Payment Service
    "PaymentService",
    "PaymentVerification",
    "payment_service",
    # Refund Service
    "RefundResult",
    "RefundService",
    "refund_service",
    # Split payments
    "SplitPaymentService",
    "split_payment_service",
]
