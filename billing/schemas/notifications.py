from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID

from billing.models.communication import NotificationType


class NotificationResponse(BaseModel):
    id: UUID
    type: NotificationType
    title: str
    message: str
    sender_id: Optional[UUID] = None
    receiver_id: UUID
    reference_id: Optional[str] = None
    is_read: bool
    created_at: datetime
    dispatched_at: Optional[datetime] = None

    class Config:
        from_attributes = True
