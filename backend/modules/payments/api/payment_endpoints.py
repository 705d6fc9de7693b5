# backend/modules/payments/api/payment_endpoints.py

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from typing import List
import logging

from core.config import settings
from core.database import get_db
from core.exceptions import APIError
from ..gateways import PaymentResult
from ..schemas.payment_schemas import (
    CashConfirmRequest,
    CheckoutRequest,
    CheckoutResponse,
    GatewayCapabilityResponse,
    GatewayConfigUpdate,
    OrderPaymentResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
    RefundCreate,
    RefundResponse,
    SplitPaymentRequest,
)
from ..services.gateway_registry import GatewayCapability, gateway_registry
from ..services.payment_service import payment_service
from ..services.refund_service import refund_service
from ..services.split_payment_service import split_payment_service
from modules.orders.schemas.order_schemas import OrderOut


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


def _capability_response(db: Session, capability: GatewayCapability) -> GatewayCapabilityResponse:
    public_config = None
    if capability.enabled:
        public_config = gateway_registry.get_gateway(db, capability.restaurant_id).get_public_config()
    return GatewayCapabilityResponse(
        restaurant_id=capability.restaurant_id,
        enabled=capability.enabled,
        provider=capability.provider,
        checkout_type=capability.checkout_type,
        test_mode=capability.test_mode,
        currency=capability.currency,
        reason=capability.reason,
        public_config=public_config,
    )


@router.get("/restaurants/{restaurant_id}/gateway", response_model=GatewayCapabilityResponse)
async def get_gateway_capability(restaurant_id: int, db: Session = Depends(get_db)):
    """Whether the restaurant takes online payments, and through which provider"""
    return _capability_response(db, gateway_registry.capability(db, restaurant_id))


@router.put("/restaurants/{restaurant_id}/gateway", response_model=GatewayCapabilityResponse)
async def configure_gateway(
    restaurant_id: int, request: GatewayConfigUpdate, db: Session = Depends(get_db)
):
    capability = gateway_registry.configure_gateway(
        db,
        restaurant_id,
        request.provider,
        request.config,
        enabled=request.enabled,
        test_mode=request.test_mode,
    )
    return _capability_response(db, capability)


@router.post("/restaurants/{restaurant_id}/gateway/refresh", response_model=GatewayCapabilityResponse)
async def refresh_gateway_capability(restaurant_id: int, db: Session = Depends(get_db)):
    """Drop the cached probe result and probe again"""
    gateway_registry.probe.invalidate(restaurant_id)
    return _capability_response(db, gateway_registry.capability(db, restaurant_id))


@router.post("/checkout", response_model=CheckoutResponse)
async def start_checkout(request: CheckoutRequest, db: Session = Depends(get_db)):
    """
    Create the provider order and return popup options or a redirect URL.

    The order itself is not modified here.
    """
    checkout = await payment_service.initiate_checkout(
        db, request.order_id, return_url=request.return_url
    )
    return CheckoutResponse(**checkout.to_client())


@router.post("/verify", response_model=PaymentVerifyResponse)
async def verify_payment(request: PaymentVerifyRequest, db: Session = Depends(get_db)):
    result = PaymentResult(
        provider=request.provider,
        provider_order_ref=request.provider_order_ref,
        provider_payment_id=request.provider_payment_id,
        provider_signature=request.provider_signature,
    )
    verification = await payment_service.verify_payment(
        db, request.order_id, result, restaurant_id=request.restaurant_id
    )
    return PaymentVerifyResponse(
        success=True,
        order_id=verification.order.id,
        payment_id=verification.payment.payment_id,
        already_recorded=verification.already_recorded,
    )


@router.api_route("/callback/{order_id}", methods=["GET", "POST"])
async def provider_redirect_callback(
    order_id: str,
    provider_order_ref: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Redirect providers send the customer here after checkout"""
    order = payment_service.get_order(db, order_id)
    outcome = "success"
    try:
        await payment_service.handle_redirect_callback(db, order_id, provider_order_ref)
    except APIError as e:
        logger.warning(f"Redirect verification failed for order {order_id}: {e.detail}")
        outcome = "failed"

    return RedirectResponse(
        f"{settings.public_base_url.rstrip('/')}/orders/{order.order_token}?payment={outcome}",
        status_code=303,
    )


@router.post("/orders/{order_id}/cash-request", response_model=OrderOut)
async def request_cash_payment(order_id: str, db: Session = Depends(get_db)):
    """Customer will pay cash; the kitchen starts and waiters are alerted"""
    return await payment_service.request_cash_payment(db, order_id)


@router.post("/orders/{order_id}/cash-confirm", response_model=OrderOut)
async def confirm_cash_payment(
    order_id: str, request: CashConfirmRequest, db: Session = Depends(get_db)
):
    verification = await payment_service.confirm_cash_payment(
        db, order_id, amount=request.amount, expected_version=request.expected_version
    )
    return verification.order


@router.post("/orders/{order_id}/split", response_model=OrderOut)
async def split_payment(
    order_id: str, request: SplitPaymentRequest, db: Session = Depends(get_db)
):
    online_result = None
    if request.online_result:
        online_result = PaymentResult(
            provider=request.online_result.provider,
            provider_order_ref=request.online_result.provider_order_ref,
            provider_payment_id=request.online_result.provider_payment_id,
            provider_signature=request.online_result.provider_signature,
        )
    verification = await split_payment_service.process_split_payment(
        db,
        order_id,
        cash_amount=request.cash_amount,
        online_amount=request.online_amount,
        online_result=online_result,
        expected_version=request.expected_version,
    )
    return verification.order


@router.post("/orders/{order_id}/refunds", response_model=RefundResponse)
async def create_refund(order_id: str, request: RefundCreate, db: Session = Depends(get_db)):
    result = await refund_service.process_refund(
        db,
        order_id,
        amount=request.amount,
        reason=request.reason,
        method=request.method,
        expected_version=request.expected_version,
    )
    return RefundResponse(
        order=OrderOut.model_validate(result.order),
        refunded_amount=result.refunded_amount,
        total_refunded=result.total_refunded,
        allocations=result.allocations,
    )


@router.get("/orders/{order_id}", response_model=List[OrderPaymentResponse])
async def list_order_payments(order_id: str, db: Session = Depends(get_db)):
    """Ledger rows for an order, oldest first"""
    payment_service.get_order(db, order_id)
    return payment_service.get_payments(db, order_id)
