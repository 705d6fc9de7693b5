# backend/modules/complaints/models/complaint_models.py

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
import enum

from core.database import Base
from core.mixins import TimestampMixin


class IssueType(str, enum.Enum):
    """What the complaint is about"""
    FOOD_QUALITY = "food_quality"
    WRONG_ITEM = "wrong_item"
    WAIT_TIME = "wait_time"
    SERVICE = "service"
    CLEANLINESS = "cleanliness"
    BILLING = "billing"
    OTHER = "other"


class ComplaintPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ComplaintStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class Complaint(Base, TimestampMixin):
    """Issue reported against an order; independent of the order's own state"""

    __tablename__ = "complaints"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True)
    table_number = Column(String(20), nullable=True)

    issue_type = Column(String(30), nullable=False)
    description = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default=ComplaintPriority.MEDIUM.value)
    status = Column(String(20), nullable=False, default=ComplaintStatus.OPEN.value)
    action_taken = Column(Text, nullable=True)
    reported_by = Column(String(100), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_complaints_restaurant_status", "restaurant_id", "status"),
        Index("idx_complaints_restaurant_created", "restaurant_id", "created_at"),
    )

    def __repr__(self):
        return f"<Complaint(id={self.id}, order_id={self.order_id}, status={self.status})>"
