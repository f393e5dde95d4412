"""In-app notification inbox."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.models import NotificationChannel, User
from quranakh.api.v1.auth import get_current_user
from quranakh.services.notifications import NotificationDispatcher

router = APIRouter()
dispatcher = NotificationDispatcher()


# === Schemas ===

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    channel: NotificationChannel
    type: str
    payload_json: Dict[str, Any]
    created_at: datetime
    read_at: Optional[datetime]

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread: int


# === Endpoints ===

@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Newest first."""
    notifications = dispatcher.list_for_user(db, current_user, unread_only=unread_only)
    return {
        "notifications": notifications,
        "total": len(notifications),
        "unread": sum(1 for n in notifications if n.read_at is None),
    }


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return dispatcher.mark_read(db, current_user, notification_id)
