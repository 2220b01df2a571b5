"""
Earnings API routes
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db
from flexia.core.permissions import Actor
from flexia.db.base import utcnow
from flexia.db.models import Earning, EarningStatus
from flexia.services.earnings import EarningsLedger

router = APIRouter()


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Request/Response schemas
class CreateEarningRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    type: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    claim_id: Optional[UUID] = None
    earned_date: Optional[datetime] = None

    @field_validator("earned_date")
    @classmethod
    def validate_earned_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(v)


class UpdateEarningRequest(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    status: Optional[EarningStatus] = None
    earned_date: Optional[datetime] = None

    @field_validator("earned_date")
    @classmethod
    def validate_earned_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(v)


class EarningResponse(BaseModel):
    earning_id: str
    user_id: str
    claim_id: Optional[str]
    claim_number: Optional[str]
    amount: float
    type: str
    description: Optional[str]
    status: str
    earned_date: str
    paid_date: Optional[str]
    created_at: str


class EarningListResponse(BaseModel):
    earnings: List[EarningResponse]
    total: int
    page: int
    limit: int
    summary: Dict[str, Any]


def earning_to_response(earning: Earning) -> EarningResponse:
    return EarningResponse(
        earning_id=str(earning.earning_id),
        user_id=str(earning.user_id),
        claim_id=str(earning.claim_id) if earning.claim_id else None,
        claim_number=earning.claim.claim_number if earning.claim else None,
        amount=float(earning.amount),
        type=earning.type,
        description=earning.description,
        status=earning.status.value,
        earned_date=earning.earned_date.isoformat(),
        paid_date=earning.paid_date.isoformat() if earning.paid_date else None,
        created_at=earning.created_at.isoformat(),
    )


def _summary_to_json(summary: Dict[str, Any]) -> Dict[str, Any]:
    """Decimals become floats for the JSON response."""
    def convert(value: Any) -> Any:
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, list):
            return [convert(v) for v in value]
        return value
    return convert(summary)


@router.get("/", response_model=EarningListResponse)
def list_earnings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[EarningStatus] = None,
    type: Optional[str] = None,
    claim_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """The caller's earnings with a summary of all of them."""
    ledger = EarningsLedger(db)
    items, total = ledger.list(
        actor.user_id,
        status=status,
        earning_type=type,
        claim_id=claim_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return EarningListResponse(
        earnings=[earning_to_response(e) for e in items],
        total=total,
        page=page,
        limit=limit,
        summary=_summary_to_json(ledger.summary(actor.user_id)),
    )


@router.post("/", response_model=EarningResponse, status_code=status.HTTP_201_CREATED)
def create_earning(
    request: CreateEarningRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Record an earning, optionally against a claim assigned to the caller."""
    earning = EarningsLedger(db).create(
        actor,
        amount=request.amount,
        earning_type=request.type,
        earned_date=request.earned_date or utcnow(),
        description=request.description,
        claim_id=request.claim_id,
    )
    return earning_to_response(earning)


@router.get("/{earning_id}", response_model=EarningResponse)
def get_earning(
    earning_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return earning_to_response(EarningsLedger(db).get(actor, earning_id))


@router.put("/{earning_id}", response_model=EarningResponse)
def update_earning(
    earning_id: UUID,
    request: UpdateEarningRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    earning = EarningsLedger(db).update(actor, earning_id, request.model_dump(exclude_none=True))
    return earning_to_response(earning)


@router.delete("/{earning_id}")
def delete_earning(
    earning_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    EarningsLedger(db).delete(actor, earning_id)
    return {"message": "Earning deleted successfully"}
