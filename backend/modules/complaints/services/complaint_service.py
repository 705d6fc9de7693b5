# backend/modules/complaints/services/complaint_service.py

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from typing import Optional, List
from datetime import date, datetime, time
import logging

from core.exceptions import ConflictError, NotFoundError
from modules.complaints.models.complaint_models import (
    Complaint,
    ComplaintPriority,
    ComplaintStatus,
)
from modules.complaints.schemas.complaint_schemas import ComplaintCreate, ComplaintUpdate
from modules.orders.models.order_models import Order
from modules.realtime.events import ChangeAction, ChangeEntity
from modules.realtime.websocket.realtime_manager import realtime_manager

logger = logging.getLogger(__name__)


class ComplaintService:
    """Service for order complaints raised by customers or staff"""

    def __init__(self, db: Session):
        self.db = db

    def create_complaint(self, data: ComplaintCreate) -> Complaint:
        """Record a complaint against an order; one complaint per order"""

        order = self.db.query(Order).filter(Order.id == data.order_id).first()
        if not order:
            raise NotFoundError(f"Order {data.order_id} not found")

        complaint = Complaint(
            restaurant_id=order.restaurant_id,
            order_id=order.id,
            table_id=order.table_id,
            table_number=order.table_number,
            issue_type=data.issue_type.value,
            description=data.description,
            priority=data.priority.value,
            status=ComplaintStatus.OPEN.value,
            action_taken=data.action_taken,
            reported_by=data.reported_by,
        )
        self.db.add(complaint)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(
                f"A complaint already exists for order {order.id}",
                error_code="COMPLAINT_EXISTS",
            )
        self.db.refresh(complaint)

        logger.info(
            f"Created complaint {complaint.id} for order {order.id} "
            f"({complaint.issue_type}, priority {complaint.priority})"
        )
        return complaint

    def get_complaint(self, complaint_id: int) -> Complaint:
        complaint = self.db.query(Complaint).filter(Complaint.id == complaint_id).first()
        if not complaint:
            raise NotFoundError(f"Complaint {complaint_id} not found")
        return complaint

    def get_complaint_for_order(self, order_id: str) -> Optional[Complaint]:
        return self.db.query(Complaint).filter(Complaint.order_id == order_id).first()

    def list_complaints(
        self,
        restaurant_id: int,
        status: Optional[ComplaintStatus] = None,
        priority: Optional[ComplaintPriority] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Complaint]:
        """Complaints for a restaurant, newest first. Date bounds are inclusive days."""

        query = self.db.query(Complaint).filter(Complaint.restaurant_id == restaurant_id)
        if status:
            query = query.filter(Complaint.status == status.value)
        if priority:
            query = query.filter(Complaint.priority == priority.value)
        if start_date:
            query = query.filter(Complaint.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(Complaint.created_at <= datetime.combine(end_date, time.max))

        return (
            query.order_by(desc(Complaint.created_at), desc(Complaint.id))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def update_complaint(self, complaint_id: int, update: ComplaintUpdate) -> Complaint:
        complaint = self.get_complaint(complaint_id)
        changes = update.model_dump(exclude_unset=True)

        for field, value in changes.items():
            if value is None and field != "action_taken":
                continue
            setattr(complaint, field, getattr(value, "value", value))

        if "status" in changes and changes["status"] is not None:
            if changes["status"] == ComplaintStatus.RESOLVED:
                if complaint.resolved_at is None:
                    complaint.resolved_at = datetime.utcnow()
            else:
                complaint.resolved_at = None

        self.db.commit()
        self.db.refresh(complaint)
        logger.info(f"Updated complaint {complaint.id}: {sorted(changes)}")
        return complaint


async def publish_complaint_change(
    complaint: Complaint, action: ChangeAction = ChangeAction.UPDATE
):
    await realtime_manager.publish_change(
        complaint.restaurant_id,
        ChangeEntity.COMPLAINT,
        complaint.id,
        action,
        {
            "order_id": complaint.order_id,
            "status": complaint.status,
            "priority": complaint.priority,
        },
    )
