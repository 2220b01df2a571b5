"""
Admin API routes
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from flexia.api.deps import get_db, require_roles
from flexia.api.routes.affiliate import AffiliateResponse, affiliate_to_response
from flexia.core.permissions import Actor
from flexia.db.models import (
    AffiliateCommission,
    AffiliatePartner,
    AffiliateStatus,
    Claim,
    ClaimStatus,
    CommissionStatus,
    Earning,
    EarningStatus,
    User,
    UserRole,
)
from flexia.services.affiliate import AffiliateService
from flexia.services.audit import AuditService
from flexia.services.users import UserService

router = APIRouter()

admin_only = require_roles(UserRole.ADMIN)


# Request/Response schemas
class MetricsResponse(BaseModel):
    total_users: int
    users_by_role: Dict[str, int]
    total_claims: int
    claims_by_status: Dict[str, int]
    earnings_by_status: Dict[str, float]
    affiliates_by_status: Dict[str, int]
    affiliate_total_earnings: float
    commissions_by_status: Dict[str, float]


class AuditLogResponse(BaseModel):
    log_id: str
    event_type: str
    resource_type: Optional[str]
    resource_id: Optional[str]
    actor_id: Optional[str]
    actor_type: str
    action: str
    details: Dict[str, Any]
    timestamp: str


class AffiliateStatusRequest(BaseModel):
    status: AffiliateStatus


class AdminUserResponse(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    license_number: Optional[str] = None
    created_at: str


class UserListResponse(BaseModel):
    users: List[AdminUserResponse]
    total: int
    page: int
    limit: int


class UserUpdateRequest(BaseModel):
    is_active: Optional[bool] = None
    role: Optional[UserRole] = None


def user_to_response(user: User) -> AdminUserResponse:
    return AdminUserResponse(
        user_id=str(user.user_id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role.value,
        is_active=user.is_active,
        license_number=user.license_number,
        created_at=user.created_at.isoformat(),
    )


def _counts(db: Session, column, enum_cls) -> Dict[str, int]:
    counts = {member.value: 0 for member in enum_cls}
    for value, count in db.query(column, func.count()).group_by(column).all():
        counts[value.value] = count
    return counts


def _sums(db: Session, status_column, amount_column, enum_cls) -> Dict[str, float]:
    sums = {member.value: 0.0 for member in enum_cls}
    rows = db.query(status_column, func.sum(amount_column)).group_by(status_column).all()
    for value, amount in rows:
        sums[value.value] = float(amount or 0)
    return sums


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics(
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Platform-wide counts and money totals."""
    users_by_role = _counts(db, User.role, UserRole)
    claims_by_status = _counts(db, Claim.status, ClaimStatus)
    affiliate_total = db.query(func.sum(AffiliatePartner.total_earnings)).scalar()

    return MetricsResponse(
        total_users=sum(users_by_role.values()),
        users_by_role=users_by_role,
        total_claims=sum(claims_by_status.values()),
        claims_by_status=claims_by_status,
        earnings_by_status=_sums(db, Earning.status, Earning.amount, EarningStatus),
        affiliates_by_status=_counts(db, AffiliatePartner.status, AffiliateStatus),
        affiliate_total_earnings=float(affiliate_total or 0),
        commissions_by_status=_sums(
            db, AffiliateCommission.status, AffiliateCommission.amount, CommissionStatus
        ),
    )


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def get_audit_logs(
    limit: int = Query(100, ge=1, le=500),
    event_type: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    since: Optional[datetime] = None,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Get audit logs, newest first."""
    audit = AuditService(db)
    if resource_type and resource_id:
        logs = audit.get_resource_history(resource_type, resource_id, limit=limit)
    else:
        logs = audit.list_logs(
            event_type=event_type, resource_type=resource_type, since=since, limit=limit
        )

    return [
        AuditLogResponse(
            log_id=str(log.log_id),
            event_type=log.event_type,
            resource_type=log.resource_type,
            resource_id=log.resource_id,
            actor_id=str(log.actor_id) if log.actor_id else None,
            actor_type=log.actor_type,
            action=log.action,
            details=log.details or {},
            timestamp=log.timestamp.isoformat(),
        )
        for log in logs
    ]


@router.put("/affiliates/{affiliate_id}/status", response_model=AffiliateResponse)
def set_affiliate_status(
    affiliate_id: UUID,
    request: AffiliateStatusRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Activate or suspend an affiliate partner."""
    affiliate = AffiliateService(db).set_status(actor, affiliate_id, request.status)
    return affiliate_to_response(affiliate)


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """User directory with role, activity and text filters."""
    users, total = UserService(db).list_users(
        actor, role=role, is_active=is_active, search=search, page=page, limit=limit
    )
    return UserListResponse(
        users=[user_to_response(u) for u in users],
        total=total,
        page=page,
        limit=limit,
    )


@router.patch("/users/{user_id}", response_model=AdminUserResponse)
def update_user(
    user_id: UUID,
    request: UserUpdateRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Activate, deactivate or change the role of a user."""
    user = UserService(db).update_user(actor, user_id, request.model_dump(exclude_none=True))
    return user_to_response(user)
