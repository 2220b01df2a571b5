"""
Audit database model for system-wide audit logging
"""
import uuid

from sqlalchemy import Column, String, DateTime, JSON, Uuid

from flexia.db.base import Base, utcnow


class AuditLog(Base):
    """System-wide audit log for state-changing operations."""

    __tablename__ = "audit_logs"

    log_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(String(100), nullable=False, index=True)

    # Resource being accessed/modified
    resource_type = Column(String(50), nullable=True)  # e.g., "claim", "commission", "affiliate"
    resource_id = Column(String(100), nullable=True)

    # Actor
    actor_id = Column(Uuid, nullable=True)
    actor_type = Column(String(50), nullable=False)  # e.g., "user", "admin", "system"
    actor_role = Column(String(50), nullable=True)

    # Details
    action = Column(String(100), nullable=False)  # e.g., "create", "update", "delete"
    details = Column(JSON, default=dict)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} at {self.timestamp}>"
