"""
Firms and the adjuster/firm connection workflow.
"""
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flexia.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from flexia.core.logging import get_logger, log_audit_event
from flexia.core.permissions import Action, Actor, ensure_can_perform
from flexia.db.base import utcnow
from flexia.db.models import (
    Claim,
    ClaimStatus,
    ConnectionStatus,
    Firm,
    FirmConnection,
    NotificationType,
    User,
    UserRole,
)
from flexia.services.db_utils import atomic
from flexia.services.notifications import notify

logger = get_logger(__name__)


class FirmService:
    def __init__(self, db: Session):
        self.db = db

    def get_firm(self, firm_id: UUID) -> Firm:
        firm = self.db.get(Firm, firm_id)
        if firm is None:
            raise NotFoundError("Firm not found")
        return firm

    def list_firms(
        self,
        actor: Actor,
        search: Optional[str] = None,
        state: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Active firms, each with the caller's connection status and the number
        of AVAILABLE claims it currently has posted.
        """
        query = self.db.query(Firm).filter(Firm.is_active.is_(True))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Firm.name.ilike(pattern), Firm.city.ilike(pattern)))
        if state:
            query = query.filter(Firm.state == state)

        total = query.count()
        firms = query.order_by(Firm.name).offset((page - 1) * limit).limit(limit).all()
        firm_ids = [f.firm_id for f in firms]
        if not firm_ids:
            return [], total

        available_counts = dict(
            self.db.query(Claim.firm_id, func.count(Claim.claim_id))
            .filter(Claim.firm_id.in_(firm_ids), Claim.status == ClaimStatus.AVAILABLE)
            .group_by(Claim.firm_id)
            .all()
        )
        connections = {
            c.firm_id: c
            for c in self.db.query(FirmConnection).filter(
                FirmConnection.firm_id.in_(firm_ids),
                FirmConnection.adjuster_id == actor.user_id,
            )
        }

        rows = []
        for firm in firms:
            connection = connections.get(firm.firm_id)
            rows.append({
                "firm": firm,
                "available_claims": available_counts.get(firm.firm_id, 0),
                "connection_status": connection.status if connection else None,
            })
        return rows, total

    def create_firm(self, actor: Actor, data: dict[str, Any]) -> Firm:
        ensure_can_perform(actor, Action.FIRM_CREATE, message="Only firm admins can create firms")

        owner_id = data.pop("owner_id", None)
        if actor.is_firm_admin:
            owner_id = actor.user_id
        elif owner_id is not None:
            owner = self.db.get(User, owner_id)
            if owner is None or owner.role != UserRole.FIRM_ADMIN:
                raise ValidationError("Firm owner must be a firm admin")

        firm = Firm(owner_id=owner_id, is_active=True, **data)
        with atomic(self.db):
            self.db.add(firm)

        self.db.refresh(firm)
        log_audit_event(
            "firm_created",
            str(actor.user_id),
            actor.role.value,
            {"firm_id": str(firm.firm_id), "name": firm.name},
        )
        return firm

    def list_connections(
        self,
        actor: Actor,
        status: Optional[ConnectionStatus] = None,
    ) -> list[FirmConnection]:
        """Adjusters see their own requests; firm admins see requests to firms they own."""
        query = self.db.query(FirmConnection)
        if actor.is_adjuster:
            query = query.filter(FirmConnection.adjuster_id == actor.user_id)
        elif actor.is_firm_admin:
            query = query.join(Firm, FirmConnection.firm_id == Firm.firm_id).filter(
                Firm.owner_id == actor.user_id
            )
        if status:
            query = query.filter(FirmConnection.status == status)
        return query.order_by(FirmConnection.created_at.desc()).all()

    def request_connection(
        self,
        actor: Actor,
        firm_id: UUID,
        message: Optional[str] = None,
    ) -> FirmConnection:
        ensure_can_perform(
            actor, Action.CONNECTION_REQUEST, message="Only adjusters can request firm connections"
        )

        firm = self.get_firm(firm_id)
        if not firm.is_active:
            raise ValidationError("Firm is not active")

        existing = (
            self.db.query(FirmConnection)
            .filter(FirmConnection.adjuster_id == actor.user_id, FirmConnection.firm_id == firm_id)
            .first()
        )
        # A rejected pair may ask again; the same row goes back to PENDING
        if existing is not None and existing.status != ConnectionStatus.REJECTED:
            raise ConflictError("Connection request already exists")

        connection = existing or FirmConnection(adjuster_id=actor.user_id, firm_id=firm_id)
        try:
            with atomic(self.db):
                connection.status = ConnectionStatus.PENDING
                connection.message = message
                connection.connected_at = None
                self.db.add(connection)
                self.db.flush()
                notify(
                    self.db,
                    actor.user_id,
                    NotificationType.CONNECTION_REQUEST_SENT,
                    "Connection Request Sent",
                    f"Your connection request to {firm.name} has been sent",
                )
                if firm.owner_id is not None:
                    notify(
                        self.db,
                        firm.owner_id,
                        NotificationType.CONNECTION_REQUEST_SENT,
                        "New Connection Request",
                        f"An adjuster has requested to connect with {firm.name}",
                    )
        except IntegrityError:
            raise ConflictError("Connection request already exists")

        self.db.refresh(connection)
        return connection

    def respond_connection(self, actor: Actor, connection_id: UUID, approve: bool) -> FirmConnection:
        connection = self.db.get(FirmConnection, connection_id)
        if connection is None:
            raise NotFoundError("Connection not found")

        ensure_can_perform(actor, Action.FIRM_MANAGE, connection.firm)

        if connection.status != ConnectionStatus.PENDING:
            raise ValidationError("Connection request already processed")

        new_status = ConnectionStatus.APPROVED if approve else ConnectionStatus.REJECTED
        with atomic(self.db):
            connection.status = new_status
            if approve:
                connection.connected_at = utcnow()
            notify(
                self.db,
                connection.adjuster_id,
                NotificationType.CONNECTION_UPDATE,
                "Connection Request Updated",
                f"Your connection request to {connection.firm.name} was {new_status.value.lower()}",
            )

        self.db.refresh(connection)
        logger.info(f"Connection {connection_id} {new_status.value} by {actor.user_id}")
        return connection
