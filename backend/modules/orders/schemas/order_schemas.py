from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal

from ..enums.order_enums import (
    DiscountType,
    OrderItemStatus,
    OrderStatus,
    OrderType,
)
from ..enums.payment_enums import PaymentMethod, PaymentStatus, RefundMethod


class OrderItemIn(BaseModel):
    menu_item_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    quantity: int = Field(..., ge=1)
    is_veg: bool = False

    @field_validator("menu_item_id", mode="before")
    @classmethod
    def coerce_menu_item_id(cls, v):
        return str(v) if isinstance(v, int) else v


class OrderItemOut(BaseModel):
    menu_item_id: str
    name: str
    price: Decimal
    quantity: int
    is_veg: bool = False
    item_status: OrderItemStatus = OrderItemStatus.QUEUED
    started_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    served_at: Optional[datetime] = None


def _ensure_unique_items(items: List[OrderItemIn]) -> List[OrderItemIn]:
    seen = set()
    for item in items:
        if item.menu_item_id in seen:
            raise ValueError(
                f"Menu item {item.menu_item_id} appears more than once; "
                "combine it into one line with a higher quantity"
            )
        seen.add(item.menu_item_id)
    return items


class OrderCreate(BaseModel):
    restaurant_id: Optional[int] = None
    table_id: Optional[int] = None
    order_type: Optional[OrderType] = None
    items: List[OrderItemIn] = Field(..., min_length=1)
    payment_method: PaymentMethod
    special_instructions: Optional[str] = Field(None, max_length=1000)
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)

    @field_validator("items")
    @classmethod
    def unique_items(cls, v):
        return _ensure_unique_items(v)

    @model_validator(mode="after")
    def restaurant_or_table(self):
        if self.restaurant_id is None and self.table_id is None:
            raise ValueError("Either restaurant_id or table_id is required")
        return self


class OrderUpdate(BaseModel):
    """Edits allowed before payment"""
    items: Optional[List[OrderItemIn]] = Field(None, min_length=1)
    special_instructions: Optional[str] = Field(None, max_length=1000)
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)
    expected_version: Optional[int] = None

    @field_validator("items")
    @classmethod
    def unique_items(cls, v):
        return _ensure_unique_items(v) if v is not None else v


class ItemStatusUpdate(BaseModel):
    status: OrderItemStatus
    expected_version: Optional[int] = None


class OrderStatusCascade(BaseModel):
    status: OrderItemStatus
    expected_version: Optional[int] = None


class CancelOrderRequest(BaseModel):
    reason: str
    refund: bool = False
    refund_amount: Optional[Decimal] = None
    refund_method: RefundMethod = RefundMethod.ORIGINAL
    expected_version: Optional[int] = None


class DiscountRequest(BaseModel):
    type: DiscountType
    value: Decimal
    amount: Decimal
    reason: str
    new_total: Decimal
    expected_version: Optional[int] = None


class OrderOut(BaseModel):
    id: str
    restaurant_id: int
    order_number: int
    order_token: str
    order_type: OrderType
    table_id: Optional[int] = None
    table_number: Optional[str] = None
    session_id: Optional[str] = None
    items: List[OrderItemOut]
    special_instructions: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None

    subtotal: Decimal
    discount_amount: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    discount_reason: Optional[str] = None
    tax: Decimal
    total: Decimal

    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_split_details: Optional[Dict[str, Any]] = None
    refund_amount: Decimal
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None

    order_status: OrderStatus
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CancellationResult(BaseModel):
    order: OrderOut
    refund_amount: Optional[Decimal] = None
    refund_error: Optional[str] = None
