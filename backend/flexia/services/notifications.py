"""
Notification side effects and inbox queries.
"""
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flexia.core.logging import get_logger
from flexia.db.models import Notification, NotificationType

logger = get_logger(__name__)


def notify(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    content: str,
) -> Optional[Notification]:
    """
    Queue a notification inside the caller's transaction.

    The insert runs in a SAVEPOINT; if it fails, only the savepoint is rolled
    back and the surrounding business change still commits.
    """
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        content=content,
    )
    try:
        with db.begin_nested():
            db.add(notification)
    except SQLAlchemyError as e:
        logger.warning(f"Dropping {notification_type.value} notification for {user_id}: {e}")
        return None
    return notification


def list_notifications(
    db: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    notification_type: Optional[NotificationType] = None,
) -> tuple[list[Notification], int, int]:
    """Return (page of notifications, total matching, unread count)."""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(Notification.type == notification_type)

    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = (
        db.query(func.count(Notification.notification_id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
    )
    return items, total, unread


def mark_read(
    db: Session,
    user_id: UUID,
    notification_ids: Optional[Sequence[UUID]] = None,
    mark_all: bool = False,
) -> int:
    """Mark the caller's notifications as read; returns rows changed."""
    stmt = update(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    if not mark_all:
        stmt = stmt.where(Notification.notification_id.in_(list(notification_ids or [])))

    result = db.execute(stmt.values(is_read=True).execution_options(synchronize_session=False))
    db.commit()
    return result.rowcount
