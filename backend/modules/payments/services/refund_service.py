# backend/modules/payments/services/refund_service.py

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.database_utils import check_expected_version, commit_versioned
from core.exceptions import PartialReconciliationError
from modules.orders.enums.payment_enums import RefundMethod
from modules.orders.models.order_models import Order
from modules.orders.services.order_events import publish_order_change
from modules.orders.services.status_reducer import compute_refund, money
from ..models.payment_models import LedgerStatus, OrderPayment
from ..utils.audit_logger import audit_logger
from .payment_service import payment_service

logger = logging.getLogger(__name__)


@dataclass
class RefundResult:
    order: Order
    refunded_amount: Decimal
    total_refunded: Decimal
    allocations: List[Dict[str, Any]] = field(default_factory=list)


class RefundService:
    """
    Refunds against the payment ledger.

    The order's cumulative refund and the ledger rows it is drawn from are
    written in one transaction: either both change or neither does.
    """

    def paid_total(self, order: Order, payments: List[OrderPayment]) -> Decimal:
        # Orders settled before the ledger existed have no rows
        if not payments:
            return money(order.total)
        return money(sum((money(p.amount) for p in payments), Decimal("0")))

    def allocate(
        self,
        payments: List[OrderPayment],
        amount: Decimal,
        reason: str,
        method: RefundMethod,
        now: datetime,
    ) -> List[Dict[str, Any]]:
        """Spread ``amount`` over ledger rows oldest first, never past a row's amount"""
        remaining = amount
        allocations = []
        for payment in payments:
            if remaining <= 0:
                break
            available = money(payment.amount) - money(payment.refund_amount or 0)
            if available <= 0:
                continue

            portion = min(available, remaining)
            payment.refund_amount = money(payment.refund_amount or 0) + portion
            payment.status = (
                LedgerStatus.REFUNDED.value
                if payment.refund_amount >= money(payment.amount)
                else LedgerStatus.PARTIALLY_REFUNDED.value
            )
            payment.refund_reason = reason
            payment.refund_method = method.value
            payment.refunded_at = now
            remaining -= portion
            allocations.append({"payment_id": payment.payment_id, "amount": str(portion)})
        return allocations

    async def process_refund(
        self,
        db: Session,
        order_id: str,
        amount: Decimal,
        reason: str,
        method: RefundMethod = RefundMethod.ORIGINAL,
        expected_version: Optional[int] = None,
    ) -> RefundResult:
        order = payment_service.get_order(db, order_id)
        check_expected_version(order, expected_version)

        payments = payment_service.get_payments(db, order.id)
        outcome = compute_refund(
            payment_status=order.payment_status,
            already_refunded=order.refund_amount,
            requested=amount,
            paid_total=self.paid_total(order, payments),
            order_total=order.total,
            reason=reason,
        )

        now = datetime.utcnow()
        requested = money(amount)
        allocations = self.allocate(payments, requested, reason.strip(), method, now)

        order.refund_amount = outcome.total_refunded
        order.refund_reason = reason.strip()
        order.refunded_at = now
        order.payment_status = outcome.payment_status.value

        try:
            commit_versioned(db, f"Order {order_id}")
        except SQLAlchemyError as e:
            db.rollback()
            audit_logger.log_payment_event(
                "refund_failed", order_id, order.restaurant_id,
                {"amount": requested, "error": str(e)}, result="failure",
            )
            raise PartialReconciliationError(
                f"Refund of ₹{requested} could not be recorded on both the order and "
                "its payments; nothing was changed. Please retry.",
                order_id=order_id,
            ) from e

        await publish_order_change(order)
        audit_logger.log_payment_event(
            "refund_processed", order.id, order.restaurant_id,
            {
                "amount": requested,
                "total_refunded": outcome.total_refunded,
                "payment_status": outcome.payment_status.value,
                "method": method.value,
                "reason": order.refund_reason,
                "allocations": allocations,
            },
        )
        logger.info(
            f"Refunded ₹{requested} on order {order.id}; "
            f"total refunded ₹{outcome.total_refunded} ({outcome.payment_status.value})"
        )

        return RefundResult(
            order=order,
            refunded_amount=requested,
            total_refunded=outcome.total_refunded,
            allocations=allocations,
        )


refund_service = RefundService()
