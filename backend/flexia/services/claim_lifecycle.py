"""
Claim lifecycle: the status state machine, adjuster assignment and the
earning/notification side effects that go with each move.

Every status change, whether from the dedicated assign/unassign endpoints or
the generic PATCH, is validated by ``transition`` and written with a
compare-and-set UPDATE on the expected current status, so two concurrent
writers can never both apply a move from the same starting state.
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flexia.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from flexia.core.logging import get_logger, log_audit_event
from flexia.core.permissions import Action, Actor, can_perform, ensure_can_perform
from flexia.db.base import utcnow
from flexia.db.models import (
    Claim,
    ClaimPriority,
    ClaimStatus,
    ClaimType,
    ConnectionStatus,
    Earning,
    Firm,
    FirmConnection,
    NotificationType,
    User,
    UserRole,
)
from flexia.services.audit import AuditService
from flexia.services.db_utils import atomic
from flexia.services.earnings import EarningsLedger
from flexia.services.notifications import notify

logger = get_logger(__name__)


class ClaimEvent(str, Enum):
    ASSIGN = "ASSIGN"
    START = "START"
    UNASSIGN = "UNASSIGN"
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"
    REOPEN = "REOPEN"


TRANSITIONS: dict[tuple[ClaimStatus, ClaimEvent], ClaimStatus] = {
    (ClaimStatus.AVAILABLE, ClaimEvent.ASSIGN): ClaimStatus.ASSIGNED,
    (ClaimStatus.AVAILABLE, ClaimEvent.CANCEL): ClaimStatus.CANCELLED,
    (ClaimStatus.ASSIGNED, ClaimEvent.START): ClaimStatus.IN_PROGRESS,
    (ClaimStatus.ASSIGNED, ClaimEvent.UNASSIGN): ClaimStatus.AVAILABLE,
    (ClaimStatus.ASSIGNED, ClaimEvent.CANCEL): ClaimStatus.CANCELLED,
    (ClaimStatus.IN_PROGRESS, ClaimEvent.COMPLETE): ClaimStatus.COMPLETED,
    (ClaimStatus.IN_PROGRESS, ClaimEvent.CANCEL): ClaimStatus.CANCELLED,
    (ClaimStatus.CANCELLED, ClaimEvent.REOPEN): ClaimStatus.AVAILABLE,
}

# Target status requested through PATCH -> the event that reaches it
STATUS_EVENTS: dict[ClaimStatus, ClaimEvent] = {
    ClaimStatus.IN_PROGRESS: ClaimEvent.START,
    ClaimStatus.COMPLETED: ClaimEvent.COMPLETE,
    ClaimStatus.CANCELLED: ClaimEvent.CANCEL,
    ClaimStatus.AVAILABLE: ClaimEvent.REOPEN,
}

UNDELETABLE_STATUSES = frozenset({ClaimStatus.IN_PROGRESS, ClaimStatus.COMPLETED})

UPDATABLE_FIELDS = (
    "title",
    "description",
    "type",
    "priority",
    "estimated_value",
    "final_value",
    "adjuster_fee",
    "address",
    "city",
    "state",
    "zip_code",
    "incident_date",
    "deadline",
)

_PRIORITY_RANK = case(
    (Claim.priority == ClaimPriority.URGENT, 4),
    (Claim.priority == ClaimPriority.HIGH, 3),
    (Claim.priority == ClaimPriority.MEDIUM, 2),
    else_=1,
)

_ANY = object()


def transition(current: ClaimStatus, event: ClaimEvent) -> ClaimStatus:
    """Return the status ``event`` leads to from ``current`` or raise ConflictError."""
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise ConflictError(
            f"Cannot {event.value.lower()} a claim that is {current.value}",
            details={"status": current.value, "event": event.value},
        )


def _is_claim_number_collision(error: IntegrityError) -> bool:
    # SQLite names the column, PostgreSQL the ix_claims_claim_number index
    return "claim_number" in str(error.orig)


class ClaimService:
    """Claim CRUD and lifecycle operations for one request's session."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = EarningsLedger(db)
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _get_claim(self, claim_id: UUID) -> Claim:
        claim = self.db.get(Claim, claim_id)
        if claim is None:
            raise NotFoundError("Claim not found")
        return claim

    def _compare_and_set(
        self,
        claim_id: UUID,
        expected_status: ClaimStatus,
        values: dict[str, Any],
        expected_adjuster: Any = _ANY,
    ) -> bool:
        """Conditional UPDATE; True only if the claim was still in the expected state."""
        stmt = update(Claim).where(
            Claim.claim_id == claim_id,
            Claim.status == expected_status,
        )
        if expected_adjuster is not _ANY:
            if expected_adjuster is None:
                stmt = stmt.where(Claim.adjuster_id.is_(None))
            else:
                stmt = stmt.where(Claim.adjuster_id == expected_adjuster)

        result = self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _next_claim_number(self) -> str:
        year = utcnow().year
        seq = self.db.query(Claim).count() + 1
        while True:
            number = f"CLM-{year}-{seq:04d}"
            exists = self.db.query(Claim.claim_id).filter(Claim.claim_number == number).first()
            if not exists:
                return number
            seq += 1

    def _resolve_firm(self, actor: Actor, firm_id: Optional[UUID]) -> Firm:
        if firm_id is not None:
            firm = self.db.get(Firm, firm_id)
            if firm is None or not firm.is_active:
                raise NotFoundError("Firm not found or inactive")
            if actor.is_firm_admin and firm.owner_id != actor.user_id:
                raise AuthorizationError("You can only post claims for your own firm")
            return firm

        if actor.is_admin:
            raise ValidationError("firm_id is required", details={"firm_id": "Field required"})

        firm = (
            self.db.query(Firm)
            .filter(Firm.owner_id == actor.user_id, Firm.is_active.is_(True))
            .order_by(Firm.created_at)
            .first()
        )
        if firm is None:
            raise ValidationError("No active firm found for this account")
        return firm

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, actor: Actor, data: dict[str, Any]) -> Claim:
        """Post a new AVAILABLE claim for a firm."""
        ensure_can_perform(actor, Action.CLAIM_CREATE, message="Insufficient permissions")
        firm = self._resolve_firm(actor, data.pop("firm_id", None))

        # Claim numbers come from a count; retry if a concurrent insert took ours
        for attempt in range(3):
            claim = Claim(
                claim_number=self._next_claim_number(),
                firm_id=firm.firm_id,
                status=ClaimStatus.AVAILABLE,
                reported_date=utcnow(),
                **data,
            )
            try:
                with atomic(self.db):
                    self.db.add(claim)
            except IntegrityError as e:
                if not _is_claim_number_collision(e):
                    raise
                logger.warning(f"Claim number collision on attempt {attempt + 1}, retrying")
                continue
            break
        else:
            raise ConflictError("Could not allocate a claim number, please retry")

        self.db.refresh(claim)
        log_audit_event(
            "claim_created",
            str(actor.user_id),
            actor.role.value,
            {"claim_id": str(claim.claim_id), "claim_number": claim.claim_number},
        )
        return claim

    def get(self, claim_id: UUID, actor: Actor) -> Claim:
        claim = self._get_claim(claim_id)
        ensure_can_perform(actor, Action.CLAIM_VIEW, claim)
        return claim

    def list(
        self,
        actor: Actor,
        status: Optional[ClaimStatus] = None,
        claim_type: Optional[ClaimType] = None,
        priority: Optional[ClaimPriority] = None,
        firm_id: Optional[UUID] = None,
        search: Optional[str] = None,
        assigned: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Claim], int]:
        """Claims visible to ``actor``, highest priority and nearest deadline first."""
        query = self.db.query(Claim)

        if actor.is_adjuster:
            if assigned:
                query = query.filter(Claim.adjuster_id == actor.user_id)
            else:
                query = query.filter(
                    or_(Claim.status == ClaimStatus.AVAILABLE, Claim.adjuster_id == actor.user_id)
                )
        elif actor.is_firm_admin:
            query = query.join(Firm, Claim.firm_id == Firm.firm_id).filter(
                Firm.owner_id == actor.user_id
            )

        if status:
            query = query.filter(Claim.status == status)
        if claim_type:
            query = query.filter(Claim.type == claim_type)
        if priority:
            query = query.filter(Claim.priority == priority)
        if firm_id:
            query = query.filter(Claim.firm_id == firm_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Claim.claim_number.ilike(pattern),
                    Claim.title.ilike(pattern),
                    Claim.description.ilike(pattern),
                    Claim.address.ilike(pattern),
                    Claim.city.ilike(pattern),
                )
            )

        total = query.count()
        claims = (
            query.order_by(_PRIORITY_RANK.desc(), Claim.deadline.asc(), Claim.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return claims, total

    def update(self, claim_id: UUID, actor: Actor, changes: dict[str, Any]) -> Claim:
        """Apply field changes and, optionally, a validated status move."""
        claim = self._get_claim(claim_id)
        ensure_can_perform(actor, Action.CLAIM_UPDATE, claim)

        new_status: Optional[ClaimStatus] = changes.pop("status", None)
        current = claim.status
        previous_adjuster = claim.adjuster_id

        values: dict[str, Any] = {
            field: changes[field] for field in UPDATABLE_FIELDS if field in changes
        }

        status_changed = new_status is not None and new_status != current
        if status_changed:
            if new_status == ClaimStatus.ASSIGNED:
                raise ValidationError("Use the assignment endpoint to assign a claim")
            if new_status == ClaimStatus.AVAILABLE and previous_adjuster is not None:
                raise ValidationError("Use the assignment endpoint to unassign a claim")

            event = STATUS_EVENTS[new_status]
            values["status"] = transition(current, event)

            if event == ClaimEvent.COMPLETE:
                values["completed_at"] = utcnow()
            if event == ClaimEvent.CANCEL:
                values["adjuster_id"] = None

        if not values:
            return claim

        with atomic(self.db):
            if not self._compare_and_set(claim_id, current, values, expected_adjuster=previous_adjuster):
                raise ConflictError("Claim was modified concurrently, reload and retry")

            if status_changed:
                reversed_count = 0
                if values.get("status") == ClaimStatus.CANCELLED and previous_adjuster is not None:
                    reversed_count = self.ledger.reverse_pending_for_claim(claim_id)

                if previous_adjuster is not None:
                    notify(
                        self.db,
                        previous_adjuster,
                        NotificationType.CLAIM_UPDATE,
                        "Claim Status Updated",
                        f"Claim {claim.claim_number} status changed to {new_status.value}",
                    )
                self.audit.log(
                    "claim.status_changed",
                    "update",
                    actor,
                    "claim",
                    str(claim_id),
                    {
                        "from": current.value,
                        "to": new_status.value,
                        "reversed_earnings": reversed_count,
                    },
                )

        self.db.refresh(claim)
        log_audit_event(
            "claim_updated",
            str(actor.user_id),
            actor.role.value,
            {"claim_id": str(claim_id), "fields": sorted(values)},
        )
        return claim

    def delete(self, claim_id: UUID, actor: Actor) -> None:
        claim = self._get_claim(claim_id)
        ensure_can_perform(actor, Action.CLAIM_DELETE, claim)

        if claim.status in UNDELETABLE_STATUSES:
            raise ValidationError("Cannot delete active or completed claims")

        with atomic(self.db):
            self.ledger.reverse_pending_for_claim(claim_id)
            self.ledger.detach_claim(claim_id)
            self.db.delete(claim)
            self.audit.log(
                "claim.deleted",
                "delete",
                actor,
                "claim",
                str(claim_id),
                {"claim_number": claim.claim_number, "status": claim.status.value},
            )

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(
        self,
        claim_id: UUID,
        actor: Actor,
        target_adjuster_id: Optional[UUID] = None,
    ) -> Claim:
        """AVAILABLE -> ASSIGNED for the caller or, for firm admins/admins, another adjuster."""
        claim = self._get_claim(claim_id)

        if claim.status != ClaimStatus.AVAILABLE:
            raise ConflictError("Claim is not available for assignment")

        target_id = target_adjuster_id or actor.user_id
        if target_id == actor.user_id:
            ensure_can_perform(
                actor, Action.CLAIM_SELF_ASSIGN, message="Only adjusters can self-assign claims"
            )
        else:
            ensure_can_perform(
                actor,
                Action.CLAIM_ASSIGN_OTHER,
                message="Insufficient permissions to assign claims to others",
            )
            if actor.is_firm_admin and not can_perform(actor, Action.CLAIM_UPDATE, claim):
                raise AuthorizationError("You can only assign claims of your own firm")

        adjuster = (
            self.db.query(User)
            .filter(
                User.user_id == target_id,
                User.role == UserRole.ADJUSTER,
                User.is_active.is_(True),
            )
            .first()
        )
        if adjuster is None:
            raise ValidationError("Invalid adjuster or adjuster not found")

        if actor.is_firm_admin:
            connection = (
                self.db.query(FirmConnection)
                .filter(
                    FirmConnection.adjuster_id == target_id,
                    FirmConnection.firm_id == claim.firm_id,
                    FirmConnection.status == ConnectionStatus.APPROVED,
                )
                .first()
            )
            if connection is None:
                raise ValidationError("Adjuster is not connected to this firm")

        new_status = transition(ClaimStatus.AVAILABLE, ClaimEvent.ASSIGN)
        fee: Optional[Decimal] = claim.adjuster_fee

        with atomic(self.db):
            assigned = self._compare_and_set(
                claim_id,
                ClaimStatus.AVAILABLE,
                {"status": new_status, "adjuster_id": target_id},
                expected_adjuster=None,
            )
            if not assigned:
                raise ConflictError("Claim is not available for assignment")

            notify(
                self.db,
                target_id,
                NotificationType.CLAIM_ASSIGNED,
                "New Claim Assigned",
                f"You have been assigned to claim {claim.claim_number} - {claim.title}",
            )
            earning: Optional[Earning] = None
            if fee:
                earning = self.ledger.record_claim_fee(claim, target_id, fee)

            self.audit.log(
                "claim.assigned",
                "assign",
                actor,
                "claim",
                str(claim_id),
                {
                    "adjuster_id": str(target_id),
                    "adjuster_fee": str(fee) if fee else None,
                    "earning_created": earning is not None,
                },
            )

        self.db.refresh(claim)
        logger.info(f"Claim {claim.claim_number} assigned to {target_id} by {actor.user_id}")
        return claim

    def unassign(self, claim_id: UUID, actor: Actor) -> Claim:
        """ASSIGNED -> AVAILABLE, reversing the claim's PENDING earnings."""
        claim = self._get_claim(claim_id)

        if claim.adjuster_id is None:
            raise ValidationError("Claim is not assigned")

        ensure_can_perform(actor, Action.CLAIM_UNASSIGN, claim)

        if claim.status in (ClaimStatus.IN_PROGRESS, ClaimStatus.COMPLETED):
            raise ValidationError("Cannot unassign active or completed claims")

        current = claim.status
        previous_adjuster = claim.adjuster_id
        new_status = transition(current, ClaimEvent.UNASSIGN)

        with atomic(self.db):
            released = self._compare_and_set(
                claim_id,
                current,
                {"status": new_status, "adjuster_id": None},
                expected_adjuster=previous_adjuster,
            )
            if not released:
                raise ConflictError("Claim assignment changed concurrently, reload and retry")

            reversed_count = self.ledger.reverse_pending_for_claim(claim_id)

            notify(
                self.db,
                previous_adjuster,
                NotificationType.CLAIM_UPDATE,
                "Claim Unassigned",
                f"You have been unassigned from claim {claim.claim_number}",
            )
            self.audit.log(
                "claim.unassigned",
                "unassign",
                actor,
                "claim",
                str(claim_id),
                {"adjuster_id": str(previous_adjuster), "reversed_earnings": reversed_count},
            )

        self.db.refresh(claim)
        logger.info(
            f"Claim {claim.claim_number} unassigned from {previous_adjuster}, "
            f"{reversed_count} pending earning(s) reversed"
        )
        return claim
