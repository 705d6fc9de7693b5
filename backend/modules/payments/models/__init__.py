# backend/modules/payments/models/__init__.py

from .payment_models import (
    ONLINE_PROVIDERS,
    CheckoutType,
    LedgerStatus,
    OrderPayment,
    PaymentGatewayConfig,
    PaymentProvider,
)

__all__ = [
    "ONLINE_PROVIDERS",
    "CheckoutType",
    "LedgerStatus",
    "OrderPayment",
    "PaymentGatewayConfig",
    "PaymentProvider",
]
