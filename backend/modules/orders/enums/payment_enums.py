from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """How the customer settles the bill; online methods carry the provider name"""
    CASH = "cash"
    RAZORPAY = "razorpay"
    PHONEPE = "phonepe"
    PAYTM = "paytm"
    SPLIT = "split"


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    CASH = "cash"
