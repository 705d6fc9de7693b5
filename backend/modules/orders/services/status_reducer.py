# backend/modules/orders/services/status_reducer.py

"""
Pure order lifecycle rules.

Nothing here touches the database: functions take current values, return
new values, and raise the domain errors from ``core.exceptions`` when a
transition is not allowed. The order service and the payment services
apply the results inside their own transactions.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.exceptions import InvalidTransitionError, ValidationError
from ..enums.order_enums import (
    ITEM_STATUS_RANK,
    DiscountType,
    OrderItemStatus,
    OrderStatus,
)
from ..enums.payment_enums import PaymentStatus

TWO_PLACES = Decimal("0.01")

IN_KITCHEN_STATUSES = {
    OrderItemStatus.QUEUED,
    OrderItemStatus.RECEIVED,
    OrderItemStatus.PREPARING,
}

ITEM_TIMESTAMP_FIELDS = {
    OrderItemStatus.PREPARING: "started_at",
    OrderItemStatus.READY: "ready_at",
    OrderItemStatus.SERVED: "served_at",
}

# Only the explicit cancel and payment paths set these
REDUCER_BYPASS_STATUSES = {OrderStatus.PENDING_PAYMENT.value, OrderStatus.CANCELLED.value}

REFUNDABLE_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.PARTIALLY_REFUNDED.value}
PAYABLE_PAYMENT_STATUSES = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------- derivation

def item_status_of(item: Dict[str, Any]) -> Optional[OrderItemStatus]:
    """Item status, ``queued`` when missing, ``None`` when unrecognized."""
    raw = item.get("item_status") or OrderItemStatus.QUEUED.value
    try:
        return OrderItemStatus(raw)
    except ValueError:
        return None


def derive_order_status(items: Iterable[Dict[str, Any]]) -> Optional[OrderStatus]:
    """
    Order status implied by item statuses.

    Returns None when the rule has no opinion (no items, or nothing
    recognizable), in which case the caller keeps the current status.
    """
    statuses = [item_status_of(item) for item in items]
    if not statuses:
        return None

    if all(s == OrderItemStatus.SERVED for s in statuses):
        return OrderStatus.SERVED
    if all(s in (OrderItemStatus.READY, OrderItemStatus.SERVED) for s in statuses):
        return OrderStatus.READY
    if any(s in IN_KITCHEN_STATUSES for s in statuses):
        return OrderStatus.PREPARING
    return None


def resolve_order_status(current: str, items: Iterable[Dict[str, Any]]) -> str:
    if current in REDUCER_BYPASS_STATUSES:
        return current
    derived = derive_order_status(items)
    return derived.value if derived else current


def status_after_payment(current: str) -> str:
    """Paid orders leave ``pending_payment`` for the kitchen queue."""
    if current == OrderStatus.PENDING_PAYMENT.value:
        return OrderStatus.RECEIVED.value
    return current


# ---------------------------------------------------------------- item status

def ensure_kitchen_updates_allowed(order_status: str):
    if order_status == OrderStatus.PENDING_PAYMENT.value:
        raise InvalidTransitionError(
            "Order is awaiting payment; item status can change only after payment"
        )
    if order_status == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError("Order has been cancelled; item status cannot change")


def apply_item_status(
    item: Dict[str, Any], target: OrderItemStatus, now: datetime
) -> Dict[str, Any]:
    """
    Return a copy of ``item`` moved to ``target``.

    Re-applying the current status is a no-op; lifecycle timestamps are only
    stamped the first time the matching status is entered.
    """
    current = item_status_of(item) or OrderItemStatus.QUEUED
    if ITEM_STATUS_RANK[target] < ITEM_STATUS_RANK[current]:
        raise InvalidTransitionError(
            f"Item '{item.get('name', item.get('menu_item_id'))}' is already "
            f"{current.value}; it cannot move back to {target.value}"
        )

    updated = dict(item)
    updated["item_status"] = target.value
    stamp_field = ITEM_TIMESTAMP_FIELDS.get(target)
    if stamp_field and not updated.get(stamp_field):
        updated[stamp_field] = now.isoformat()
    return updated


def update_item_in_list(
    items: List[Dict[str, Any]], menu_item_id: str, target: OrderItemStatus, now: datetime
) -> Optional[List[Dict[str, Any]]]:
    """
    New item list with one item moved, addressed by ``menu_item_id``.

    Returns None if no item carries that id.
    """
    found = False
    updated = []
    for item in items:
        if str(item.get("menu_item_id")) == str(menu_item_id):
            found = True
            updated.append(apply_item_status(item, target, now))
        else:
            updated.append(dict(item))
    return updated if found else None


def cascade_items(
    items: List[Dict[str, Any]], target: OrderItemStatus, now: datetime
) -> List[Dict[str, Any]]:
    """Move every item that is behind ``target`` up to it; items ahead are left alone."""
    updated = []
    for item in items:
        current = item_status_of(item) or OrderItemStatus.QUEUED
        if ITEM_STATUS_RANK[current] <= ITEM_STATUS_RANK[target]:
            updated.append(apply_item_status(item, target, now))
        else:
            updated.append(dict(item))
    return updated


# ---------------------------------------------------------------- totals

def compute_totals(
    items: Iterable[Dict[str, Any]], tax_rate: Any, discount_amount: Any = 0
) -> Tuple[Decimal, Decimal, Decimal]:
    """(subtotal, tax, total) with tax charged on the pre-discount subtotal."""
    subtotal = money(
        sum((to_decimal(item["price"]) * int(item["quantity"]) for item in items), Decimal("0"))
    )
    tax = money(subtotal * to_decimal(tax_rate) / Decimal("100"))
    total = money(subtotal - to_decimal(discount_amount) + tax)
    return subtotal, tax, total


# ---------------------------------------------------------------- cancel

def validate_cancellation(order_status: str, reason: Optional[str]):
    if order_status == OrderStatus.SERVED.value:
        raise InvalidTransitionError(
            "Cannot cancel an order that has already been served. "
            "Please process a refund instead."
        )
    if order_status == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError("Order has already been cancelled")
    if not reason or not reason.strip():
        raise ValidationError("Cancellation reason is required")


# ---------------------------------------------------------------- discount

@dataclass
class DiscountOutcome:
    amount: Decimal
    original_total: Decimal
    new_total: Decimal


def ensure_discountable(order_status: str, payment_status: str):
    if order_status == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError("Cannot apply a discount to a cancelled order")
    if payment_status not in PAYABLE_PAYMENT_STATUSES:
        raise InvalidTransitionError(
            f"Cannot apply a discount to an order with payment status '{payment_status}'"
        )


def compute_discount(
    *,
    subtotal: Any,
    total: Any,
    existing_discount: Any,
    discount_type: DiscountType,
    value: Any,
    amount: Any,
    reason: Optional[str],
    client_new_total: Any,
    tolerance: Decimal = TWO_PLACES,
) -> DiscountOutcome:
    """
    Validate a discount against server-side totals.

    A new discount replaces the previous one, so the base is the order total
    with the existing discount added back.
    """
    value = to_decimal(value)
    amount = money(amount)
    client_new_total = to_decimal(client_new_total)
    existing_discount = money(existing_discount or 0)

    if value <= 0:
        raise ValidationError("Discount value must be greater than 0")
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100%")
    if not reason or not reason.strip():
        raise ValidationError("Discount reason is required")
    if amount < 0:
        raise ValidationError("Discount amount cannot be negative")
    if client_new_total < 0:
        raise ValidationError("Total after discount cannot be negative")

    original_total = money(to_decimal(total) + existing_discount)
    if amount > original_total:
        raise ValidationError(
            f"Discount amount (₹{amount}) cannot exceed order total (₹{original_total})"
        )
    item_base = money(to_decimal(subtotal) + existing_discount)
    if amount > item_base:
        raise ValidationError(
            f"Discount amount (₹{amount}) cannot exceed subtotal (₹{item_base})"
        )

    new_total = money(original_total - amount)
    if abs(client_new_total - new_total) > tolerance:
        raise ValidationError(
            f"New total ₹{money(client_new_total)} does not match the expected ₹{new_total}"
        )
    return DiscountOutcome(amount=amount, original_total=original_total, new_total=new_total)


# ---------------------------------------------------------------- refund

@dataclass
class RefundOutcome:
    total_refunded: Decimal
    payment_status: PaymentStatus


def compute_refund(
    *,
    payment_status: str,
    already_refunded: Any,
    requested: Any,
    paid_total: Any,
    order_total: Any,
    reason: Optional[str],
) -> RefundOutcome:
    requested = money(requested)
    already_refunded = money(already_refunded or 0)
    paid_total = money(paid_total)
    order_total = money(order_total)

    if requested <= 0:
        raise ValidationError("Refund amount must be greater than 0")
    if not reason or not reason.strip():
        raise ValidationError("Refund reason is required")
    if payment_status not in REFUNDABLE_PAYMENT_STATUSES:
        raise InvalidTransitionError(
            f"Cannot refund an order with payment status '{payment_status}'. "
            "Only paid or partially refunded orders can be refunded."
        )

    total_refunded = already_refunded + requested
    if total_refunded > paid_total:
        raise ValidationError(
            f"Refund of ₹{requested} exceeds paid amount. Paid: ₹{paid_total}, "
            f"already refunded: ₹{already_refunded}"
        )
    if total_refunded > order_total:
        raise ValidationError(
            f"Total refund (₹{total_refunded}) cannot exceed order total (₹{order_total})"
        )

    new_status = (
        PaymentStatus.REFUNDED if total_refunded >= order_total
        else PaymentStatus.PARTIALLY_REFUNDED
    )
    return RefundOutcome(total_refunded=total_refunded, payment_status=new_status)


# ---------------------------------------------------------------- payment

def ensure_payable(order_status: str, payment_status: str):
    if order_status == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError("Cannot take payment for a cancelled order")
    if payment_status not in PAYABLE_PAYMENT_STATUSES:
        raise InvalidTransitionError(
            f"Order payment is already settled (status '{payment_status}')"
        )


def validate_split(cash: Any, online: Any, total: Any, tolerance: Decimal = TWO_PLACES):
    cash = to_decimal(cash)
    online = to_decimal(online)
    total = to_decimal(total)

    if cash <= 0 or online <= 0:
        raise ValidationError("Both cash and online amounts must be greater than 0")
    if abs(cash + online - total) > tolerance:
        raise ValidationError(
            f"Split amounts (₹{money(cash + online)}) do not match order total (₹{money(total)})"
        )
