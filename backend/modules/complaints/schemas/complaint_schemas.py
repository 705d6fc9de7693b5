# backend/modules/complaints/schemas/complaint_schemas.py

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime

from modules.complaints.models.complaint_models import (
    ComplaintPriority,
    ComplaintStatus,
    IssueType,
)


def _strip_required(v: str) -> str:
    if v is None or not v.strip():
        raise ValueError("Description is required")
    return v.strip()


class ComplaintCreate(BaseModel):
    """Schema for reporting a complaint"""

    order_id: str
    issue_type: IssueType
    description: str = Field(..., max_length=2000)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    action_taken: Optional[str] = Field(None, max_length=2000)
    reported_by: Optional[str] = Field(None, max_length=100)

    @field_validator("description")
    @classmethod
    def description_required(cls, v):
        return _strip_required(v)


class ComplaintUpdate(BaseModel):
    """Schema for updating a complaint"""

    issue_type: Optional[IssueType] = None
    description: Optional[str] = Field(None, max_length=2000)
    priority: Optional[ComplaintPriority] = None
    status: Optional[ComplaintStatus] = None
    action_taken: Optional[str] = Field(None, max_length=2000)

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v):
        return _strip_required(v) if v is not None else v


class ComplaintResponse(BaseModel):
    """Schema for complaint response"""

    id: int
    restaurant_id: int
    order_id: str
    table_id: Optional[int] = None
    table_number: Optional[str] = None
    issue_type: IssueType
    description: str
    priority: ComplaintPriority
    status: ComplaintStatus
    action_taken: Optional[str] = None
    reported_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
