from enum import Enum


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class OrderItemStatus(str, Enum):
    QUEUED = "queued"
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"


# Items only move forward through the kitchen
ITEM_STATUS_RANK = {
    OrderItemStatus.QUEUED: 0,
    OrderItemStatus.RECEIVED: 1,
    OrderItemStatus.PREPARING: 2,
    OrderItemStatus.READY: 3,
    OrderItemStatus.SERVED: 4,
}


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
