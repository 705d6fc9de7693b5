import uuid

from sqlalchemy import (CheckConstraint, Column, DateTime, ForeignKey, Index,
                        Integer, JSON, Numeric, String, Text, UniqueConstraint)

from core.database import Base
from core.mixins import TimestampMixin, VersionedMixin
from ..enums.order_enums import OrderStatus, OrderType
from ..enums.payment_enums import PaymentStatus


def generate_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base, TimestampMixin, VersionedMixin):
    """
    Order aggregate. Line items are embedded in ``items`` as an ordered list
    of dicts keyed by ``menu_item_id``; they are never rows of their own.

    Item dict shape::

        {"menu_item_id": "m-1", "name": "Paneer Tikka", "price": "180.00",
         "quantity": 2, "is_veg": true, "item_status": "queued",
         "started_at": null, "ready_at": null, "served_at": null}
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_order_id)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"),
                           nullable=False, index=True)
    order_number = Column(Integer, nullable=False)
    order_token = Column(String(64), nullable=False, unique=True, index=True)

    order_type = Column(String(20), nullable=False, default=OrderType.DINE_IN.value)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True, index=True)
    table_number = Column(String(20), nullable=True)
    session_id = Column(String(36), ForeignKey("table_sessions.id"),
                        nullable=True, index=True)

    items = Column(JSON, nullable=False, default=list)
    special_instructions = Column(Text, nullable=True)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    customer_email = Column(String(255), nullable=True)

    # Financials; total == subtotal - discount_amount + tax
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_type = Column(String(20), nullable=True)
    discount_value = Column(Numeric(10, 2), nullable=True)
    discount_reason = Column(Text, nullable=True)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    payment_status = Column(String(30), nullable=False,
                            default=PaymentStatus.PENDING.value, index=True)
    payment_method = Column(String(20), nullable=True)
    payment_split_details = Column(JSON, nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=False, default=0)
    refund_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    order_status = Column(String(30), nullable=False,
                          default=OrderStatus.PENDING_PAYMENT.value, index=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "order_number",
                         name="uq_orders_restaurant_order_number"),
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint("tax >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint("refund_amount >= 0", name="ck_orders_refund_non_negative"),
        Index("ix_orders_restaurant_status", "restaurant_id", "order_status"),
    )

    def find_item(self, menu_item_id: str):
        for item in self.items or []:
            if str(item.get("menu_item_id")) == str(menu_item_id):
                return item
        return None

    def __repr__(self):
        return (
            f"<Order(id={self.id}, number={self.order_number}, "
            f"status={self.order_status}, payment={self.payment_status})>"
        )
