from .complaint_models import Complaint, ComplaintPriority, ComplaintStatus, IssueType

__all__ = ["Complaint", "ComplaintPriority", "ComplaintStatus", "IssueType"]
