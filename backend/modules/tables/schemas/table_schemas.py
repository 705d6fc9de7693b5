# backend/modules/tables/schemas/table_schemas.py

from typing import List, Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

from modules.orders.schemas.order_schemas import OrderOut
from ..models.table_models import TableStatus, TableSessionStatus


# Table Schemas
class TableCreate(BaseModel):
    """Table creation schema"""

    restaurant_id: int
    table_number: str = Field(..., min_length=1, max_length=20)
    table_name: Optional[str] = Field(None, max_length=100)
    capacity: int = Field(4, ge=1)


class TableStatusUpdate(BaseModel):
    """Manual status change; occupancy is driven by sessions"""

    status: TableStatus

    @field_validator("status")
    @classmethod
    def not_occupied(cls, v):
        if v == TableStatus.OCCUPIED:
            raise ValueError("Tables become occupied by seating customers, not by a status change")
        return v


class TableResponse(BaseModel):
    """Table response schema"""

    id: int
    restaurant_id: int
    table_number: str
    table_name: Optional[str] = None
    capacity: int
    status: TableStatus
    booked_at: Optional[datetime] = None
    active_session_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# Session Schemas
class TableSessionResponse(BaseModel):
    """Table session response schema"""

    id: str
    restaurant_id: int
    table_id: int
    status: TableSessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    last_activity_at: datetime
    closed_reason: Optional[str] = None
    cart_items: List[Dict[str, Any]] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class TableSessionWithOrders(BaseModel):
    session: TableSessionResponse
    orders: List[OrderOut]
    total_due: str


class ReleaseTableRequest(BaseModel):
    """Release by table or by session"""

    table_id: Optional[int] = None
    session_id: Optional[str] = None


class SharedCartUpdate(BaseModel):
    cart_items: List[Dict[str, Any]]


class CloseInactiveRequest(BaseModel):
    idle_minutes: Optional[int] = Field(None, ge=1)


class CloseInactiveResponse(BaseModel):
    closed_session_ids: List[str]
