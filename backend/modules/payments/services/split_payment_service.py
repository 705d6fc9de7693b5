# backend/modules/payments/services/split_payment_service.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.database_utils import check_expected_version, commit_versioned
from core.exceptions import PartialReconciliationError
from modules.orders.enums.payment_enums import PaymentMethod
from modules.orders.services.order_events import publish_order_change
from modules.orders.services.status_reducer import ensure_payable, money, validate_split
from ..gateways import PaymentResult
from ..models.payment_models import OrderPayment, PaymentProvider
from ..utils.audit_logger import audit_logger
from .payment_service import PaymentVerification, payment_service

logger = logging.getLogger(__name__)


class SplitPaymentService:
    """Settles one order with a cash leg and an online leg"""

    async def process_split_payment(
        self,
        db: Session,
        order_id: str,
        cash_amount: Decimal,
        online_amount: Decimal,
        online_result: Optional[PaymentResult] = None,
        expected_version: Optional[int] = None,
    ) -> PaymentVerification:
        """
        Record both legs and mark the order paid.

        An online leg with a provider result is verified with the provider
        for exactly ``online_amount``; without one it is recorded as staff
        confirmed.
        """
        order = payment_service.get_order(db, order_id)
        check_expected_version(order, expected_version)
        ensure_payable(order.order_status, order.payment_status)

        cash_amount = money(cash_amount)
        online_amount = money(online_amount)
        validate_split(cash_amount, online_amount, order.total, settings.split_payment_tolerance)

        now = datetime.utcnow()
        currency = payment_service.currency_for(db, order)

        if online_result is not None:
            verification = await payment_service.check_with_provider(
                db, order, online_result, online_amount
            )
            online_provider = online_result.provider
            provider_order_ref = online_result.provider_order_ref
            provider_payment_id = verification.provider_payment_id or online_result.provider_payment_id
        else:
            online_provider = PaymentProvider.MANUAL
            provider_order_ref = None
            provider_payment_id = None

        cash_leg = OrderPayment(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            provider=PaymentProvider.CASH.value,
            amount=cash_amount,
            currency=currency,
            is_split=True,
            verified_at=now,
        )
        online_leg = OrderPayment(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            provider=online_provider.value,
            provider_order_ref=provider_order_ref,
            provider_payment_id=provider_payment_id,
            amount=online_amount,
            currency=currency,
            is_split=True,
            verified_at=now,
        )
        db.add_all([cash_leg, online_leg])

        order.payment_split_details = {
            "cash_amount": str(cash_amount),
            "online_amount": str(online_amount),
            "online_provider": online_provider.value,
            "provider_order_ref": provider_order_ref,
            "provider_payment_id": provider_payment_id,
            "recorded_at": now.isoformat(),
        }
        payment_service.mark_paid(order, PaymentMethod.SPLIT.value)

        try:
            commit_versioned(db, f"Order {order.id}")
        except SQLAlchemyError as e:
            db.rollback()
            audit_logger.log_payment_event(
                "split_payment_failed", order_id, order.restaurant_id,
                {"cash": cash_amount, "online": online_amount, "error": str(e)},
                result="failure",
            )
            raise PartialReconciliationError(
                f"Split payment for order {order_id} could not be recorded; nothing was changed",
                order_id=order_id,
            ) from e

        await publish_order_change(order)
        audit_logger.log_payment_event(
            "split_payment_reconciled", order.id, order.restaurant_id,
            {
                "cash": cash_amount,
                "online": online_amount,
                "online_provider": online_provider.value,
                "provider_payment_id": provider_payment_id,
            },
        )
        logger.info(
            f"Split payment on order {order.id}: cash ₹{cash_amount} + "
            f"{online_provider.value} ₹{online_amount}"
        )
        return PaymentVerification(order=order, payment=online_leg)


split_payment_service = SplitPaymentService()
