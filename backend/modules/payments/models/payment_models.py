# backend/modules/payments/models/payment_models.py

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index,
    Integer, Numeric, String, Text, UniqueConstraint,
)
from core.database import Base
from core.mixins import TimestampMixin
from enum import Enum
import uuid


class PaymentProvider(str, Enum):
    """Who collected the money for a ledger row"""
    RAZORPAY = "razorpay"
    PHONEPE = "phonepe"
    PAYTM = "paytm"
    CASH = "cash"  # Collected by staff at the table
    MANUAL = "manual"  # Online leg confirmed by staff without a gateway result


ONLINE_PROVIDERS = (PaymentProvider.RAZORPAY, PaymentProvider.PHONEPE, PaymentProvider.PAYTM)


class CheckoutType(str, Enum):
    """How a provider presents checkout; fixed per provider"""
    POPUP = "popup"
    REDIRECT = "redirect"


class LedgerStatus(str, Enum):
    CAPTURED = "captured"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


class OrderPayment(Base, TimestampMixin):
    """
    Payment ledger row. Every paid order has rows summing to what was
    actually collected; a split payment has one row per leg.
    """
    __tablename__ = "order_payments"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(String(100), nullable=False, unique=True, index=True)  # Our internal ID

    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)

    provider = Column(String(20), nullable=False)
    provider_order_ref = Column(String(255), nullable=True)
    provider_payment_id = Column(String(255), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(30), nullable=False, default=LedgerStatus.CAPTURED.value)
    is_split = Column(Boolean, nullable=False, default=False)
    details = Column(JSON, nullable=True)
    verified_at = Column(DateTime, nullable=True)

    refund_amount = Column(Numeric(10, 2), nullable=False, default=0)
    refund_reason = Column(Text, nullable=True)
    refund_method = Column(String(20), nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # Duplicate verification deliveries must not create a second row
        UniqueConstraint("provider", "provider_payment_id", name="uq_order_payments_provider_payment"),
        CheckConstraint("amount > 0", name="ck_order_payments_amount_positive"),
        CheckConstraint("refund_amount >= 0 AND refund_amount <= amount",
                        name="ck_order_payments_refund_within_amount"),
        Index("idx_order_payments_order_created", "order_id", "created_at"),
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.payment_id:
            self.payment_id = f"pay_{uuid.uuid4().hex[:16]}"


class PaymentGatewayConfig(Base, TimestampMixin):
    """Per-restaurant provider credentials"""
    __tablename__ = "payment_gateway_configs"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    provider = Column(String(20), nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    is_test_mode = Column(Boolean, nullable=False, default=True)

    # Examples:
    # Razorpay: {"key_id": "rzp_test_...", "key_secret": "..."}
    # PhonePe: {"merchant_id": "...", "salt_key": "...", "salt_index": "1"}
    # Paytm: {"merchant_id": "...", "merchant_key": "...", "website": "WEBSTAGING"}
    config = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "provider", name="uq_gateway_config_restaurant_provider"),
    )
