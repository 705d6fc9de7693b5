# backend/modules/payments/__init__.py

from .api import payment_router
from .models import (
    CheckoutType,
    LedgerStatus,
    OrderPayment,
    PaymentGatewayConfig,
    PaymentProvider,
)

__all__ = [
    # API
    'payment_router',

    # Models
    'CheckoutType',
    'LedgerStatus',
    'OrderPayment',
    'PaymentGatewayConfig',
    'PaymentProvider',
]
