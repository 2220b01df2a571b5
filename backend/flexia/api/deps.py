"""
API dependencies
"""
from typing import Callable
from uuid import UUID

from fastapi import Depends
from sqlalchemy.orm import Session

from flexia.db import get_db
from flexia.db.models import User, UserRole
from flexia.core import get_token_payload
from flexia.core.exceptions import AuthenticationError, AuthorizationError
from flexia.core.permissions import Actor


def get_current_actor(
    payload: dict = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the bearer token to an active user."""
    try:
        user_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token payload")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    # Role is read from the database so a demotion takes effect immediately
    return Actor(user_id=user.user_id, role=user.role)


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory restricting a route to the given roles."""
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise AuthorizationError("Insufficient permissions")
        return actor
    return role_checker


__all__ = [
    "get_db",
    "get_current_actor",
    "require_roles",
]
