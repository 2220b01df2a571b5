"""
Audit service for Flex.IA.
Persists sanitized audit records for money-moving and administrative actions.
"""

from datetime import datetime
from typing import Any, Optional
from sqlalchemy.orm import Session

from flexia.core.permissions import Actor
from flexia.db.models import AuditLog
from flexia.core.data_classification import (
    sanitize_for_logging,
    classify_request_body,
)
from flexia.core.logging import get_logger

logger = get_logger(__name__)


class AuditService:
    """Service for creating and querying audit logs."""

    # Event type categories
    CLAIM_EVENTS = ["claim.assigned", "claim.unassigned", "claim.status_changed", "claim.deleted"]
    AFFILIATE_EVENTS = [
        "referral.converted", "commission.paid", "commission.processed",
        "commission.cancelled", "affiliate.status_changed",
    ]
    USER_EVENTS = ["user.updated"]
    SECURITY_EVENTS = ["auth.failed", "access.denied", "rate.limited"]

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        event_type: str,
        action: str,
        actor: Optional[Actor],
        resource_type: str,
        resource_id: str,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> AuditLog:
        """
        Add an audit log entry to the current transaction.

        The row is committed with the business change it describes; callers
        run this inside their ``atomic()`` block.

        Args:
            event_type: Type of event (e.g., "claim.assigned", "commission.paid")
            action: Verb performed ("create", "update", "delete", ...)
            actor: Who performed the action; None for system events
            resource_type: Type of resource affected
            resource_id: ID of the resource
            details: Additional event details (will be sanitized)
            ip_address: Client IP address
        """
        sanitized_details = sanitize_for_logging(details or {})
        sanitized_details["_metadata"] = {
            "data_classification": classify_request_body(details or {}).value,
        }

        audit_log = AuditLog(
            event_type=event_type,
            action=action,
            actor_type="system" if actor is None else ("admin" if actor.is_admin else "user"),
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role.value if actor else None,
            resource_type=resource_type,
            resource_id=resource_id,
            details=sanitized_details,
            ip_address=ip_address,
        )
        self.db.add(audit_log)

        # Mirror to application logs for real-time monitoring
        log_msg = (
            f"AUDIT: {event_type} | {audit_log.actor_type}:{audit_log.actor_id} "
            f"| {resource_type}:{resource_id}"
        )
        if event_type in self.SECURITY_EVENTS:
            logger.warning(log_msg)
        else:
            logger.info(log_msg)

        return audit_log

    def list_logs(
        self,
        event_type: Optional[str] = None,
        resource_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        """Most recent audit entries, newest first."""
        query = self.db.query(AuditLog)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if since:
            query = query.filter(AuditLog.timestamp >= since)
        return query.order_by(AuditLog.timestamp.desc()).limit(limit).all()

    def get_resource_history(
        self,
        resource_type: str,
        resource_id: str,
        limit: int = 50,
    ) -> list[AuditLog]:
        """Get audit history for a specific resource."""
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
            .all()
        )

