from .complaint_schemas import ComplaintCreate, ComplaintResponse, ComplaintUpdate

__all__ = ["ComplaintCreate", "ComplaintResponse", "ComplaintUpdate"]
