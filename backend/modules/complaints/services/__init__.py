from .complaint_service import ComplaintService, publish_complaint_change

__all__ = ["ComplaintService", "publish_complaint_change"]
