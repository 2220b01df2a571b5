"""
Affiliate partner, referral and commission routes
"""
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db, require_roles
from flexia.core.permissions import Actor
from flexia.db.models import (
    AffiliateCommission,
    AffiliatePartner,
    AffiliateReferral,
    CommissionStatus,
    PaymentMethod,
    ReferralStatus,
    UserRole,
)
from flexia.services.affiliate import AffiliateService
from flexia.services.rate_limiter import rate_limit

router = APIRouter()

admin_only = require_roles(UserRole.ADMIN)


# Request/Response schemas
class RegisterAffiliateRequest(BaseModel):
    company_name: Optional[str] = Field(default=None, max_length=255)
    website: Optional[str] = Field(default=None, max_length=500)
    payment_method: PaymentMethod = PaymentMethod.PAYPAL
    payment_details: Optional[str] = None


class UpdateAffiliateRequest(BaseModel):
    company_name: Optional[str] = Field(default=None, max_length=255)
    website: Optional[str] = Field(default=None, max_length=500)
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[str] = None


class TrackReferralRequest(BaseModel):
    affiliate_code: str = Field(min_length=1)
    referred_user_id: UUID


class ConvertReferralRequest(BaseModel):
    referral_id: UUID
    subscription_amount: Decimal = Field(gt=0)


class PayCommissionsRequest(BaseModel):
    commission_ids: List[UUID] = Field(min_length=1)
    payment_method: str = Field(min_length=1, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=255)


class ProcessCommissionRequest(BaseModel):
    commission_id: UUID
    action: Literal["APPROVE", "REJECT"]


class AffiliateResponse(BaseModel):
    affiliate_id: str
    user_id: str
    affiliate_code: str
    company_name: Optional[str]
    website: Optional[str]
    commission_rate: float
    status: str
    payment_method: str
    total_referrals: int
    total_earnings: float
    created_at: str


class ReferralResponse(BaseModel):
    referral_id: str
    affiliate_id: str
    referred_user_id: str
    referral_code: str
    status: str
    subscription_amount: Optional[float]
    conversion_date: Optional[str]
    created_at: str


class CommissionResponse(BaseModel):
    commission_id: str
    affiliate_id: str
    referral_id: str
    amount: float
    commission_rate: float
    status: str
    payment_date: Optional[str]
    payment_method: Optional[str]
    payment_reference: Optional[str]
    created_at: str


class DashboardResponse(BaseModel):
    affiliate: AffiliateResponse
    stats: Dict[str, Any]
    recent_referrals: List[ReferralResponse]
    recent_commissions: List[CommissionResponse]


class ConvertReferralResponse(BaseModel):
    referral: ReferralResponse
    commission: CommissionResponse


class CommissionListResponse(BaseModel):
    commissions: List[CommissionResponse]
    total: int
    page: int
    limit: int


def affiliate_to_response(affiliate: AffiliatePartner) -> AffiliateResponse:
    return AffiliateResponse(
        affiliate_id=str(affiliate.affiliate_id),
        user_id=str(affiliate.user_id),
        affiliate_code=affiliate.affiliate_code,
        company_name=affiliate.company_name,
        website=affiliate.website,
        commission_rate=float(affiliate.commission_rate),
        status=affiliate.status.value,
        payment_method=affiliate.payment_method.value,
        total_referrals=affiliate.total_referrals,
        total_earnings=float(affiliate.total_earnings),
        created_at=affiliate.created_at.isoformat(),
    )


def referral_to_response(referral: AffiliateReferral) -> ReferralResponse:
    return ReferralResponse(
        referral_id=str(referral.referral_id),
        affiliate_id=str(referral.affiliate_id),
        referred_user_id=str(referral.referred_user_id),
        referral_code=referral.referral_code,
        status=referral.status.value,
        subscription_amount=(
            float(referral.subscription_amount) if referral.subscription_amount is not None else None
        ),
        conversion_date=referral.conversion_date.isoformat() if referral.conversion_date else None,
        created_at=referral.created_at.isoformat(),
    )


def commission_to_response(commission: AffiliateCommission) -> CommissionResponse:
    return CommissionResponse(
        commission_id=str(commission.commission_id),
        affiliate_id=str(commission.affiliate_id),
        referral_id=str(commission.referral_id),
        amount=float(commission.amount),
        commission_rate=float(commission.commission_rate),
        status=commission.status.value,
        payment_date=commission.payment_date.isoformat() if commission.payment_date else None,
        payment_method=commission.payment_method,
        payment_reference=commission.payment_reference,
        created_at=commission.created_at.isoformat(),
    )


def _stats_to_json(stats: Dict[str, Any]) -> Dict[str, Any]:
    commissions = {
        name: {"amount": float(entry["amount"]), "count": entry["count"]}
        for name, entry in stats["commissions"].items()
    }
    return {**stats, "commissions": commissions}


# ----------------------------------------------------------------------
# Partner profile
# ----------------------------------------------------------------------

@router.get("/", response_model=DashboardResponse)
def get_dashboard(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """The caller's affiliate profile and performance."""
    dashboard = AffiliateService(db).get_dashboard(actor)
    return DashboardResponse(
        affiliate=affiliate_to_response(dashboard["affiliate"]),
        stats=_stats_to_json(dashboard["stats"]),
        recent_referrals=[referral_to_response(r) for r in dashboard["recent_referrals"]],
        recent_commissions=[commission_to_response(c) for c in dashboard["recent_commissions"]],
    )


@router.post("/", response_model=AffiliateResponse, status_code=status.HTTP_201_CREATED)
def register_affiliate(
    request: RegisterAffiliateRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Apply to the affiliate program."""
    affiliate = AffiliateService(db).register(actor, **request.model_dump())
    return affiliate_to_response(affiliate)


@router.put("/", response_model=AffiliateResponse)
def update_affiliate(
    request: UpdateAffiliateRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    affiliate = AffiliateService(db).update_profile(actor, request.model_dump(exclude_none=True))
    return affiliate_to_response(affiliate)


# ----------------------------------------------------------------------
# Referrals
# ----------------------------------------------------------------------

@router.get("/referral", dependencies=[Depends(rate_limit("referral"))])
def lookup_referral(
    code: str = Query(..., min_length=1),
    user_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
):
    """Public check of a referral code before signup."""
    return AffiliateService(db).lookup_referral(code, user_id)


@router.post(
    "/referral",
    response_model=ReferralResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("referral"))],
)
def track_referral(
    request: TrackReferralRequest,
    db: Session = Depends(get_db),
):
    """Attribute a new signup to an affiliate code."""
    referral = AffiliateService(db).track_referral(request.affiliate_code, request.referred_user_id)
    return referral_to_response(referral)


@router.put("/referral", response_model=ConvertReferralResponse)
def convert_referral(
    request: ConvertReferralRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Record a paid subscription for a referral and raise its commission."""
    referral, commission = AffiliateService(db).convert_referral(
        actor, request.referral_id, request.subscription_amount
    )
    return ConvertReferralResponse(
        referral=referral_to_response(referral),
        commission=commission_to_response(commission),
    )


@router.get("/referrals", response_model=List[ReferralResponse])
def list_referrals(
    status: Optional[ReferralStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    referrals, _ = AffiliateService(db).list_referrals(actor, status=status, page=page, limit=limit)
    return [referral_to_response(r) for r in referrals]


# ----------------------------------------------------------------------
# Commissions
# ----------------------------------------------------------------------

@router.get("/commission", response_model=CommissionListResponse)
def list_commissions(
    status: Optional[CommissionStatus] = None,
    affiliate_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Admins see every commission; partners see their own."""
    items, total = AffiliateService(db).list_commissions(
        actor, status=status, affiliate_id=affiliate_id, page=page, limit=limit
    )
    return CommissionListResponse(
        commissions=[commission_to_response(c) for c in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.put("/commission")
def pay_commissions(
    request: PayCommissionsRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Mark a batch of pending commissions as paid."""
    paid = AffiliateService(db).pay_commissions(
        actor, request.commission_ids, request.payment_method, request.payment_reference
    )
    return {"message": f"{paid} commissions marked as paid", "paid": paid}


@router.post("/commission", response_model=CommissionResponse)
def process_commission(
    request: ProcessCommissionRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Approve or reject a pending commission."""
    commission = AffiliateService(db).process_commission(actor, request.commission_id, request.action)
    return commission_to_response(commission)


@router.delete("/commission", response_model=CommissionResponse)
def cancel_commission(
    id: UUID = Query(...),
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Cancel an unpaid commission."""
    commission = AffiliateService(db).cancel_commission(actor, id)
    return commission_to_response(commission)
