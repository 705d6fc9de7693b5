# backend/modules/payments/utils/__init__.py

from .retry_decorator import GatewayRetryPolicy, is_retryable_error, payment_retry

__all__ = [
    'GatewayRetryPolicy',
    'is_retryable_error',
    'payment_retry',
]
