from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field

RecipientType = Literal["TEACHER", "STUDENT"]
NotificationStatus = Literal["PENDING", "PROCESSING", "SENT", "FAILED"]


class NotificationCreate(BaseModel):
    recipient_type: RecipientType
    recipient_id: str = Field(..., min_length=1, max_length=50)
    notification_type: str = Field(..., min_length=1, max_length=50)
    message: str = Field(..., min_length=1)
    related_class_id: Optional[str] = None
    branch_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class NotificationStatusIn(BaseModel):
    status: NotificationStatus


class NotificationCleanupIn(BaseModel):
    days: int = Field(30, ge=1, le=3650)
