# backend/modules/complaints/routers/complaint_router.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from core.database import get_db
from core.exceptions import NotFoundError
from modules.complaints.models.complaint_models import ComplaintPriority, ComplaintStatus
from modules.complaints.schemas.complaint_schemas import (
    ComplaintCreate,
    ComplaintResponse,
    ComplaintUpdate,
)
from modules.complaints.services.complaint_service import (
    ComplaintService,
    publish_complaint_change,
)
from modules.realtime.events import ChangeAction

router = APIRouter(prefix="/complaints", tags=["Complaints"])


def get_complaint_service(db: Session = Depends(get_db)) -> ComplaintService:
    return ComplaintService(db)


@router.post("/", response_model=ComplaintResponse, status_code=201)
async def create_complaint(
    complaint_data: ComplaintCreate,
    service: ComplaintService = Depends(get_complaint_service),
):
    """
    Report an issue with an order.

    Restaurant and table are copied from the order. Priority defaults to
    medium and the complaint starts open.
    """
    complaint = service.create_complaint(complaint_data)
    await publish_complaint_change(complaint, ChangeAction.INSERT)
    return complaint


@router.get("/", response_model=List[ComplaintResponse])
async def list_complaints(
    restaurant_id: int = Query(...),
    status: Optional[ComplaintStatus] = Query(None),
    priority: Optional[ComplaintPriority] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: ComplaintService = Depends(get_complaint_service),
):
    return service.list_complaints(
        restaurant_id,
        status=status,
        priority=priority,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@router.get("/order/{order_id}", response_model=ComplaintResponse)
async def get_complaint_for_order(
    order_id: str, service: ComplaintService = Depends(get_complaint_service)
):
    complaint = service.get_complaint_for_order(order_id)
    if not complaint:
        raise NotFoundError(f"No complaint for order {order_id}")
    return complaint


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: int, service: ComplaintService = Depends(get_complaint_service)
):
    return service.get_complaint(complaint_id)


@router.put("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: int,
    update: ComplaintUpdate,
    service: ComplaintService = Depends(get_complaint_service),
):
    """Update status, priority or the action taken; resolving stamps resolved_at"""
    complaint = service.update_complaint(complaint_id, update)
    await publish_complaint_change(complaint)
    return complaint
