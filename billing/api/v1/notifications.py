from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import uuid

from billing.api.deps import get_current_user_any_status
from billing.core.database import get_db
from billing.models.users import User
from billing.schemas import NotificationResponse
from billing.services import notifications as notification_service

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user_any_status),
):
    return notification_service.list_for_user(db, current_user, unread_only=unread_only, limit=min(limit, 200))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user_any_status),
):
    return notification_service.mark_read(db, current_user, notification_id)
