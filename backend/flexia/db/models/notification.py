"""
Notification database model
"""
import uuid
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, String, Text, DateTime, Enum, ForeignKey, Uuid

from flexia.db.base import Base, utcnow


class NotificationType(str, PyEnum):
    CLAIM_ASSIGNED = "CLAIM_ASSIGNED"
    CLAIM_UPDATE = "CLAIM_UPDATE"
    EARNING_ADDED = "EARNING_ADDED"
    EARNING_STATUS_CHANGED = "EARNING_STATUS_CHANGED"
    CONNECTION_REQUEST_SENT = "CONNECTION_REQUEST_SENT"
    CONNECTION_UPDATE = "CONNECTION_UPDATE"
    SYSTEM = "SYSTEM"


class Notification(Base):
    """Append-only message to a user; only ``is_read`` ever changes."""

    __tablename__ = "notifications"

    notification_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Notification {self.type.value} -> {self.user_id}>"
