"""
Admin user management: directory listing, activation and role changes.
"""
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from flexia.core.exceptions import NotFoundError, ValidationError
from flexia.core.logging import get_logger
from flexia.core.permissions import Action, Actor, ensure_can_perform
from flexia.db.models import User, UserRole
from flexia.services.audit import AuditService
from flexia.services.db_utils import atomic

logger = get_logger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def list_users(
        self,
        actor: Actor,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        """Newest users first, filtered by role, activity and a name/email search."""
        ensure_can_perform(actor, Action.ADMIN_ACCESS, message="Insufficient permissions")

        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                    User.email.ilike(pattern),
                    User.license_number.ilike(pattern),
                )
            )

        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.email)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    def update_user(self, actor: Actor, user_id: UUID, changes: dict[str, Any]) -> User:
        """
        Activate, deactivate or re-role a user.

        An admin can neither deactivate nor demote their own account, so the
        platform always keeps the admin performing the change.
        """
        ensure_can_perform(actor, Action.ADMIN_ACCESS, message="Insufficient permissions")

        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        applied = {
            field: value
            for field, value in changes.items()
            if field in ("is_active", "role") and value is not None and getattr(user, field) != value
        }
        if not applied:
            return user

        if user.user_id == actor.user_id:
            raise ValidationError("Admins cannot deactivate or demote their own account")

        before = {field: getattr(user, field) for field in applied}
        with atomic(self.db):
            for field, value in applied.items():
                setattr(user, field, value)
            self.audit.log(
                "user.updated",
                "update",
                actor,
                "user",
                str(user_id),
                {
                    "from": {k: getattr(v, "value", v) for k, v in before.items()},
                    "to": {k: getattr(v, "value", v) for k, v in applied.items()},
                },
            )

        self.db.refresh(user)
        logger.info(f"User {user_id} updated by {actor.user_id}: {sorted(applied)}")
        return user
