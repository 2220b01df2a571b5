"""
Notification inbox routes
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, model_validator
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db
from flexia.core.permissions import Actor
from flexia.db.models import Notification, NotificationType
from flexia.services.notifications import list_notifications, mark_read

router = APIRouter()


class MarkReadRequest(BaseModel):
    notification_ids: Optional[List[UUID]] = None
    mark_all: bool = False

    @model_validator(mode="after")
    def validate_target(self) -> "MarkReadRequest":
        if not self.mark_all and not self.notification_ids:
            raise ValueError("Provide notification_ids or set mark_all")
        return self


class NotificationResponse(BaseModel):
    notification_id: str
    title: str
    content: str
    type: str
    is_read: bool
    created_at: str


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    unread: int
    page: int
    limit: int


def notification_to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        notification_id=str(notification.notification_id),
        title=notification.title,
        content=notification.content,
        type=notification.type.value,
        is_read=notification.is_read,
        created_at=notification.created_at.isoformat(),
    )


@router.get("/", response_model=NotificationListResponse)
def get_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    items, total, unread = list_notifications(
        db, actor.user_id, page=page, limit=limit, unread_only=unread_only, notification_type=type
    )
    return NotificationListResponse(
        notifications=[notification_to_response(n) for n in items],
        total=total,
        unread=unread,
        page=page,
        limit=limit,
    )


@router.patch("/mark-read")
def mark_notifications_read(
    request: MarkReadRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    updated = mark_read(db, actor.user_id, request.notification_ids, mark_all=request.mark_all)
    return {"updated": updated}
