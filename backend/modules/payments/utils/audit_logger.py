# backend/modules/payments/utils/audit_logger.py

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional


class PaymentAuditLogger:
    """
    Structured audit trail for money movement

    Every verification, cash confirmation, split reconciliation and refund
    is logged here whether it succeeded or not.
    """

    def __init__(self, name: str = "payments"):
        self.logger = logging.getLogger(f"{name}.audit")

    def _format_audit_data(self, **kwargs) -> Dict:
        return {
            "audit_data": json.dumps({
                "timestamp": datetime.utcnow().isoformat(),
                "event_type": "payment_audit",
                **kwargs
            }, default=str)
        }

    def log_payment_event(
        self,
        action: str,
        order_id: str,
        restaurant_id: Optional[int],
        details: Optional[Dict[str, Any]] = None,
        result: str = "success",
    ):
        """
        Args:
            action: e.g. "payment_verified", "refund_processed"
            order_id: Order the money belongs to
            restaurant_id: Tenant of the order
            details: Amounts, provider references, reasons
            result: success, failure or rejected
        """
        level = logging.INFO if result == "success" else logging.WARNING
        self.logger.log(
            level,
            f"AUDIT: {action} on order {order_id} ({result})",
            extra=self._format_audit_data(
                action=action,
                order_id=order_id,
                restaurant_id=restaurant_id,
                details=details or {},
                result=result,
            ),
        )


audit_logger = PaymentAuditLogger()
