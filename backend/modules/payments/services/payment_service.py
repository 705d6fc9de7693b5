# backend/modules/payments/services/payment_service.py

"""
Online checkout, verification and the cash flow.

Checkout only talks to the provider. The order row changes when a payment
is verified server-side (or staff confirm cash), and the ledger row is
written in the same transaction as the order update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.database_utils import check_expected_version, commit_versioned
from core.exceptions import (
    ConcurrencyConflictError,
    GatewayError,
    NotFoundError,
    PartialReconciliationError,
    ValidationError,
)
from modules.core.models import Restaurant
from modules.orders.enums.payment_enums import PaymentMethod, PaymentStatus
from modules.orders.models.order_models import Order
from modules.orders.services.order_events import publish_order_change
from modules.orders.services.status_reducer import (
    ensure_payable,
    money,
    status_after_payment,
)
from modules.realtime.events import BroadcastEvent
from modules.realtime.websocket.realtime_manager import realtime_manager
from ..gateways import (
    CheckoutCallbacks,
    CheckoutSession,
    OrderContext,
    PaymentGatewayInterface,
    PaymentResult,
    ProviderOrderRef,
    VerificationResult,
)
from ..models.payment_models import OrderPayment, PaymentProvider
from ..utils.audit_logger import audit_logger
from .gateway_registry import PaymentGatewayRegistry, gateway_registry

logger = logging.getLogger(__name__)


@dataclass
class PaymentVerification:
    order: Order
    payment: OrderPayment
    already_recorded: bool = False


class PaymentService:
    """Moves an order from pending to paid through a provider or cash"""

    def __init__(self, registry: PaymentGatewayRegistry = gateway_registry):
        self.registry = registry

    # ------------------------------------------------------------ lookups

    def get_order(self, db: Session, order_id: str) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def get_payments(self, db: Session, order_id: str) -> List[OrderPayment]:
        return (
            db.query(OrderPayment)
            .filter(OrderPayment.order_id == order_id)
            .order_by(OrderPayment.created_at, OrderPayment.id)
            .all()
        )

    def find_recorded_payment(
        self, db: Session, order_id: str, provider: PaymentProvider, provider_order_ref: str
    ) -> Optional[OrderPayment]:
        return (
            db.query(OrderPayment)
            .filter(
                OrderPayment.order_id == order_id,
                OrderPayment.provider == provider.value,
                OrderPayment.provider_order_ref == provider_order_ref,
            )
            .first()
        )

    def default_return_url(self, order: Order) -> str:
        return f"{settings.public_base_url.rstrip('/')}/api/v1/payments/callback/{order.id}"

    def currency_for(self, db: Session, order: Order) -> str:
        restaurant = db.query(Restaurant).filter(Restaurant.id == order.restaurant_id).first()
        return restaurant.currency if restaurant else "INR"

    def order_context(
        self,
        order: Order,
        currency: str = "INR",
        amount: Optional[Decimal] = None,
        return_url: Optional[str] = None,
    ) -> OrderContext:
        return OrderContext(
            order_id=order.id,
            order_number=order.order_number,
            amount=money(amount if amount is not None else order.total),
            currency=currency,
            restaurant_id=order.restaurant_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            return_url=return_url or self.default_return_url(order),
        )

    @staticmethod
    def mark_paid(order: Order, method: str):
        order.payment_status = PaymentStatus.PAID.value
        order.payment_method = method
        order.order_status = status_after_payment(order.order_status)

    # ------------------------------------------------------------ checkout

    async def _open_provider_order(
        self, db: Session, order_id: str, return_url: Optional[str] = None
    ) -> Tuple[PaymentGatewayInterface, ProviderOrderRef]:
        order = self.get_order(db, order_id)
        ensure_payable(order.order_status, order.payment_status)
        if money(order.total) <= 0:
            raise ValidationError("Order total must be greater than 0 to pay online")

        gateway = self.registry.get_gateway(db, order.restaurant_id)
        context = self.order_context(
            order, currency=self.currency_for(db, order), return_url=return_url
        )
        ref = await gateway.create_provider_order(context)
        return gateway, ref

    async def create_provider_order(
        self, db: Session, order_id: str, return_url: Optional[str] = None
    ) -> ProviderOrderRef:
        _, ref = await self._open_provider_order(db, order_id, return_url)
        return ref

    async def initiate_checkout(
        self,
        db: Session,
        order_id: str,
        callbacks: Optional[CheckoutCallbacks] = None,
        return_url: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Open a provider order and hand back what the client needs to show
        checkout. Popup or redirect is decided by the provider.

        The default success callback runs verification; failure and dismiss
        leave the order untouched.
        """
        gateway, ref = await self._open_provider_order(db, order_id, return_url)

        if callbacks is None:
            async def on_success(result: PaymentResult):
                return await self.verify_payment(db, order_id, result)

            async def on_failure(reason: str):
                logger.info(f"Checkout for order {order_id} failed on the client: {reason}")

            callbacks = CheckoutCallbacks(on_success=on_success, on_failure=on_failure)

        return gateway.initiate_checkout(ref, callbacks)

    # ------------------------------------------------------------ verification

    async def check_with_provider(
        self, db: Session, order: Order, result: PaymentResult, expected_amount: Decimal
    ) -> VerificationResult:
        """
        Ask the provider whether ``result`` is a real payment of
        ``expected_amount``. The provider order must have been opened for
        ``order``. A definitive decline marks the order failed.
        """
        gateway = self.registry.gateway_for_result(db, order.restaurant_id, result)
        verification = await gateway.verify_payment(result)

        details = {
            "provider": result.provider.value,
            "provider_order_ref": result.provider_order_ref,
            "provider_payment_id": verification.provider_payment_id or result.provider_payment_id,
        }

        if verification.verified or verification.declined:
            context = self.order_context(order)
            if not await gateway.reference_belongs_to(result.provider_order_ref, context):
                audit_logger.log_payment_event(
                    "payment_reference_mismatch", order.id, order.restaurant_id,
                    details, result="rejected",
                )
                raise ValidationError(
                    f"Provider order {result.provider_order_ref} was not opened for "
                    f"order {order.id}",
                    error_code="PAYMENT_REFERENCE_MISMATCH",
                )

        if verification.declined:
            order.payment_status = PaymentStatus.FAILED.value
            commit_versioned(db, f"Order {order.id}")
            await publish_order_change(order)
            audit_logger.log_payment_event(
                "payment_declined", order.id, order.restaurant_id,
                {**details, "reason": verification.error_message}, result="failure",
            )
            raise GatewayError(
                f"Payment failed: {verification.error_message}",
                error_code="PAYMENT_DECLINED",
                provider=result.provider.value,
            )

        if not verification.verified:
            audit_logger.log_payment_event(
                "payment_verification_rejected", order.id, order.restaurant_id,
                {**details, "reason": verification.error_message}, result="rejected",
            )
            raise GatewayError(
                f"Payment could not be verified: {verification.error_message}",
                error_code="PAYMENT_NOT_VERIFIED",
                provider=result.provider.value,
            )

        expected_amount = money(expected_amount)
        if abs(verification.normalized_amount - expected_amount) > settings.split_payment_tolerance:
            audit_logger.log_payment_event(
                "payment_amount_mismatch", order.id, order.restaurant_id,
                {**details, "verified": verification.normalized_amount, "expected": expected_amount},
                result="rejected",
            )
            raise GatewayError(
                f"Verified amount ₹{verification.normalized_amount} does not match "
                f"the amount due ₹{expected_amount}",
                error_code="PAYMENT_AMOUNT_MISMATCH",
                provider=result.provider.value,
            )

        return verification

    async def verify_payment(
        self,
        db: Session,
        order_id: str,
        result: PaymentResult,
        restaurant_id: Optional[int] = None,
    ) -> PaymentVerification:
        """
        The only path that marks an online payment paid.

        Idempotent: a result already recorded for this order returns the
        existing ledger row without writing again.
        """
        order = self.get_order(db, order_id)
        if restaurant_id is not None and order.restaurant_id != restaurant_id:
            raise ValidationError(f"Order {order_id} does not belong to restaurant {restaurant_id}")

        recorded = self.find_recorded_payment(db, order.id, result.provider, result.provider_order_ref)
        if recorded:
            logger.info(f"Payment {recorded.payment_id} for order {order.id} already verified")
            return PaymentVerification(order=order, payment=recorded, already_recorded=True)

        ensure_payable(order.order_status, order.payment_status)
        verification = await self.check_with_provider(db, order, result, order.total)

        payment = OrderPayment(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            provider=result.provider.value,
            provider_order_ref=result.provider_order_ref,
            provider_payment_id=verification.provider_payment_id or result.provider_payment_id,
            amount=verification.normalized_amount,
            currency=self.currency_for(db, order),
            verified_at=datetime.utcnow(),
        )
        db.add(payment)
        self.mark_paid(order, result.provider.value)

        try:
            commit_versioned(db, f"Order {order.id}")
        except (ConcurrencyConflictError, IntegrityError) as e:
            if isinstance(e, IntegrityError):
                db.rollback()
            # A duplicate delivery may have recorded the same payment first
            recorded = self.find_recorded_payment(
                db, order_id, result.provider, result.provider_order_ref
            )
            if recorded:
                db.refresh(recorded)
                return PaymentVerification(
                    order=self.get_order(db, order_id), payment=recorded, already_recorded=True
                )
            if isinstance(e, ConcurrencyConflictError):
                raise
            raise PartialReconciliationError(
                f"Payment for order {order_id} was verified but could not be recorded",
                order_id=order_id,
            ) from e

        await publish_order_change(order)
        audit_logger.log_payment_event(
            "payment_verified", order.id, order.restaurant_id,
            {
                "payment_id": payment.payment_id,
                "provider": payment.provider,
                "provider_payment_id": payment.provider_payment_id,
                "amount": payment.amount,
            },
        )
        logger.info(f"Order {order.id} paid via {payment.provider} ({payment.amount})")
        return PaymentVerification(order=order, payment=payment)

    async def handle_redirect_callback(
        self, db: Session, order_id: str, provider_order_ref: str
    ) -> PaymentVerification:
        """Provider redirected back; check the ref with the restaurant's provider"""
        order = self.get_order(db, order_id)
        gateway = self.registry.get_gateway(db, order.restaurant_id)
        result = PaymentResult(provider=gateway.provider, provider_order_ref=provider_order_ref)
        return await self.verify_payment(db, order_id, result)

    # ------------------------------------------------------------ cash

    async def request_cash_payment(self, db: Session, order_id: str) -> Order:
        """
        Customer chose to pay at the table. The kitchen starts on the order
        while payment stays pending, and waiters are told to collect.
        """
        order = self.get_order(db, order_id)
        ensure_payable(order.order_status, order.payment_status)

        order.payment_method = PaymentMethod.CASH.value
        order.order_status = status_after_payment(order.order_status)
        commit_versioned(db, f"Order {order.id}")

        await publish_order_change(order)
        await realtime_manager.broadcast(
            order.restaurant_id,
            BroadcastEvent.CASH_PAYMENT_REQUESTED,
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "table_number": order.table_number,
                "session_id": order.session_id,
                "amount": str(money(order.total)),
            },
        )
        logger.info(f"Cash payment requested for order {order.id}")
        return order

    async def confirm_cash_payment(
        self,
        db: Session,
        order_id: str,
        amount: Optional[Decimal] = None,
        expected_version: Optional[int] = None,
    ) -> PaymentVerification:
        """Staff collected cash for the whole bill"""
        order = self.get_order(db, order_id)
        check_expected_version(order, expected_version)
        ensure_payable(order.order_status, order.payment_status)

        total = money(order.total)
        received = money(amount) if amount is not None else total
        if abs(received - total) > settings.split_payment_tolerance:
            raise ValidationError(
                f"Cash received (₹{received}) does not match order total (₹{total}). "
                "Use a split payment for part-cash settlements."
            )
        if total <= 0:
            raise ValidationError("Order total must be greater than 0 to record a payment")

        payment = OrderPayment(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            provider=PaymentProvider.CASH.value,
            amount=received,
            currency=self.currency_for(db, order),
            verified_at=datetime.utcnow(),
        )
        db.add(payment)
        self.mark_paid(order, PaymentMethod.CASH.value)
        commit_versioned(db, f"Order {order.id}")

        await publish_order_change(order)
        audit_logger.log_payment_event(
            "cash_payment_confirmed", order.id, order.restaurant_id,
            {"payment_id": payment.payment_id, "amount": received},
        )
        return PaymentVerification(order=order, payment=payment)


payment_service = PaymentService()
