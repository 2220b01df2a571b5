"""
Role and ownership based capability checks.

Every handler asks ``can_perform(actor, action, resource)`` instead of
re-deriving ADMIN / FIRM_ADMIN / ADJUSTER branching locally.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from flexia.core.exceptions import AuthorizationError
from flexia.db.models.claim import ClaimStatus
from flexia.db.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""
    user_id: UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_firm_admin(self) -> bool:
        return self.role == UserRole.FIRM_ADMIN

    @property
    def is_adjuster(self) -> bool:
        return self.role == UserRole.ADJUSTER


class Action(str, Enum):
    CLAIM_CREATE = "claim:create"
    CLAIM_VIEW = "claim:view"
    CLAIM_UPDATE = "claim:update"
    CLAIM_DELETE = "claim:delete"
    CLAIM_SELF_ASSIGN = "claim:self_assign"
    CLAIM_ASSIGN_OTHER = "claim:assign_other"
    CLAIM_UNASSIGN = "claim:unassign"
    EARNING_MANAGE = "earning:manage"
    FIRM_CREATE = "firm:create"
    FIRM_MANAGE = "firm:manage"
    CONNECTION_REQUEST = "connection:request"
    AFFILIATE_ADMIN = "affiliate:admin"
    ADMIN_ACCESS = "admin:access"


def _owns_firm(actor: Actor, firm: Any) -> bool:
    return (
        actor.is_firm_admin
        and firm is not None
        and firm.owner_id == actor.user_id
    )


def _claim_firm(claim: Any) -> Any:
    return getattr(claim, "firm", None)


def can_perform(actor: Actor, action: Action, resource: Optional[Any] = None) -> bool:
    """Return True when ``actor`` may perform ``action`` on ``resource``."""
    if action in (Action.ADMIN_ACCESS, Action.AFFILIATE_ADMIN):
        return actor.is_admin

    if action in (Action.CLAIM_CREATE, Action.FIRM_CREATE):
        return actor.is_admin or actor.is_firm_admin

    if action == Action.CLAIM_SELF_ASSIGN:
        return actor.is_adjuster

    if action == Action.CLAIM_ASSIGN_OTHER:
        return actor.is_admin or actor.is_firm_admin

    if action == Action.CONNECTION_REQUEST:
        return actor.is_adjuster

    if action == Action.FIRM_MANAGE:
        return actor.is_admin or _owns_firm(actor, resource)

    if action == Action.EARNING_MANAGE:
        return resource is not None and resource.user_id == actor.user_id

    # Remaining actions are claim-scoped
    claim = resource
    if claim is None:
        return False

    if actor.is_admin:
        return True

    owns = _owns_firm(actor, _claim_firm(claim))
    is_assignee = claim.adjuster_id is not None and claim.adjuster_id == actor.user_id

    if action == Action.CLAIM_DELETE:
        return owns

    if action in (Action.CLAIM_UPDATE, Action.CLAIM_UNASSIGN):
        return owns or is_assignee

    if action == Action.CLAIM_VIEW:
        return owns or is_assignee or claim.status == ClaimStatus.AVAILABLE

    return False


def ensure_can_perform(
    actor: Actor,
    action: Action,
    resource: Optional[Any] = None,
    message: str = "Access denied",
) -> None:
    """Raise AuthorizationError unless ``can_perform`` allows the action."""
    if not can_perform(actor, action, resource):
        raise AuthorizationError(message)
