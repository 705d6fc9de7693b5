# backend/modules/payments/schemas/payment_schemas.py

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Dict, Any, List
from decimal import Decimal
from datetime import datetime

from modules.orders.enums.payment_enums import RefundMethod
from modules.orders.schemas.order_schemas import OrderOut
from ..models.payment_models import CheckoutType, LedgerStatus, PaymentProvider


class CheckoutRequest(BaseModel):
    """Open a provider order for an unpaid order"""
    order_id: str
    return_url: Optional[str] = Field(None, description="Where redirect providers send the customer back")


class CheckoutResponse(BaseModel):
    provider: PaymentProvider
    checkout_type: CheckoutType
    provider_order_ref: str
    order_id: str
    amount: Decimal
    currency: str
    redirect_url: Optional[str] = None
    options: Optional[Dict[str, Any]] = None


class PaymentVerifyRequest(BaseModel):
    """Result the client received from checkout; untrusted until verified"""
    provider: PaymentProvider
    restaurant_id: Optional[int] = None
    order_id: str
    provider_order_ref: str = Field(..., min_length=1)
    provider_payment_id: Optional[str] = None
    provider_signature: Optional[str] = None


class PaymentVerifyResponse(BaseModel):
    success: bool
    order_id: str
    payment_id: Optional[str] = None
    already_recorded: bool = False
    error: Optional[str] = None


class CashConfirmRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the order total")
    expected_version: Optional[int] = None


class OnlineLegResult(BaseModel):
    provider: PaymentProvider
    provider_order_ref: str
    provider_payment_id: Optional[str] = None
    provider_signature: Optional[str] = None


class SplitPaymentRequest(BaseModel):
    cash_amount: Decimal = Field(..., gt=0)
    online_amount: Decimal = Field(..., gt=0)
    online_result: Optional[OnlineLegResult] = None
    expected_version: Optional[int] = None


class RefundCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    method: RefundMethod = RefundMethod.ORIGINAL
    expected_version: Optional[int] = None


class RefundResponse(BaseModel):
    order: OrderOut
    refunded_amount: Decimal
    total_refunded: Decimal
    allocations: List[Dict[str, Any]] = Field(default_factory=list)


class OrderPaymentResponse(BaseModel):
    """Ledger row"""
    payment_id: str
    order_id: str
    provider: PaymentProvider
    provider_order_ref: Optional[str] = None
    provider_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: LedgerStatus
    is_split: bool
    refund_amount: Decimal
    refund_reason: Optional[str] = None
    refund_method: Optional[RefundMethod] = None
    verified_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GatewayConfigUpdate(BaseModel):
    provider: PaymentProvider
    config: Dict[str, Any]
    enabled: bool = True
    test_mode: bool = True

    @model_validator(mode="after")
    def online_provider_only(self):
        if self.provider in (PaymentProvider.CASH, PaymentProvider.MANUAL):
            raise ValueError(f"{self.provider.value} is not an online payment provider")
        return self


class GatewayCapabilityResponse(BaseModel):
    restaurant_id: int
    enabled: bool
    provider: Optional[PaymentProvider] = None
    checkout_type: Optional[CheckoutType] = None
    test_mode: bool
    currency: str
    reason: Optional[str] = None
    public_config: Optional[Dict[str, Any]] = None
