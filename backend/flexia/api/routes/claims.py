"""
Claims API routes
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db
from flexia.core.permissions import Actor
from flexia.db.models import Claim, ClaimPriority, ClaimStatus, ClaimType
from flexia.services.claim_lifecycle import ClaimService

router = APIRouter()


# Request/Response schemas
class CreateClaimRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    type: ClaimType
    priority: ClaimPriority = ClaimPriority.MEDIUM
    estimated_value: Optional[Decimal] = Field(default=None, ge=0)
    adjuster_fee: Optional[Decimal] = Field(default=None, ge=0)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    incident_date: date
    deadline: date
    firm_id: Optional[UUID] = None

    @field_validator("incident_date")
    @classmethod
    def validate_incident_date(cls, v: date) -> date:
        if v > date.today():
            raise ValueError("incident_date cannot be in the future")
        return v

    @model_validator(mode="after")
    def validate_deadline(self) -> "CreateClaimRequest":
        if self.deadline < self.incident_date:
            raise ValueError("deadline cannot be before incident_date")
        return self


class UpdateClaimRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[ClaimType] = None
    status: Optional[ClaimStatus] = None
    priority: Optional[ClaimPriority] = None
    estimated_value: Optional[Decimal] = Field(default=None, ge=0)
    final_value: Optional[Decimal] = Field(default=None, ge=0)
    adjuster_fee: Optional[Decimal] = Field(default=None, ge=0)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    incident_date: Optional[date] = None
    deadline: Optional[date] = None


class AssignRequest(BaseModel):
    adjuster_id: Optional[UUID] = None


class ClaimResponse(BaseModel):
    claim_id: str
    claim_number: str
    title: str
    description: Optional[str]
    type: str
    status: str
    priority: str
    estimated_value: Optional[float]
    final_value: Optional[float]
    adjuster_fee: Optional[float]
    address: str
    city: str
    state: str
    zip_code: str
    incident_date: str
    reported_date: str
    deadline: str
    completed_at: Optional[str]
    firm_id: str
    firm_name: Optional[str]
    adjuster_id: Optional[str]
    adjuster_name: Optional[str]
    created_at: str
    updated_at: Optional[str]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ClaimListResponse(BaseModel):
    claims: List[ClaimResponse]
    pagination: Pagination


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def claim_to_response(claim: Claim) -> ClaimResponse:
    return ClaimResponse(
        claim_id=str(claim.claim_id),
        claim_number=claim.claim_number,
        title=claim.title,
        description=claim.description,
        type=claim.type.value,
        status=claim.status.value,
        priority=claim.priority.value,
        estimated_value=_money(claim.estimated_value),
        final_value=_money(claim.final_value),
        adjuster_fee=_money(claim.adjuster_fee),
        address=claim.address,
        city=claim.city,
        state=claim.state,
        zip_code=claim.zip_code,
        incident_date=claim.incident_date.isoformat(),
        reported_date=claim.reported_date.isoformat(),
        deadline=claim.deadline.isoformat(),
        completed_at=claim.completed_at.isoformat() if claim.completed_at else None,
        firm_id=str(claim.firm_id),
        firm_name=claim.firm.name if claim.firm else None,
        adjuster_id=str(claim.adjuster_id) if claim.adjuster_id else None,
        adjuster_name=claim.adjuster.full_name if claim.adjuster else None,
        created_at=claim.created_at.isoformat(),
        updated_at=claim.updated_at.isoformat() if claim.updated_at else None,
    )


@router.get("/", response_model=ClaimListResponse)
def list_claims(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ClaimStatus] = None,
    type: Optional[ClaimType] = None,
    priority: Optional[ClaimPriority] = None,
    firm_id: Optional[UUID] = None,
    search: Optional[str] = None,
    assigned: bool = False,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Claims visible to the caller, highest priority first."""
    claims, total = ClaimService(db).list(
        actor,
        status=status,
        claim_type=type,
        priority=priority,
        firm_id=firm_id,
        search=search,
        assigned=assigned,
        page=page,
        limit=limit,
    )
    return ClaimListResponse(
        claims=[claim_to_response(c) for c in claims],
        pagination=Pagination(page=page, limit=limit, total=total, pages=-(-total // limit)),
    )


@router.post("/", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
def create_claim(
    request: CreateClaimRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Post a new claim for a firm."""
    claim = ClaimService(db).create(actor, request.model_dump())
    return claim_to_response(claim)


@router.get("/{claim_id}", response_model=ClaimResponse)
def get_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Get claim details by ID."""
    return claim_to_response(ClaimService(db).get(claim_id, actor))


@router.patch("/{claim_id}", response_model=ClaimResponse)
def update_claim(
    claim_id: UUID,
    request: UpdateClaimRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Update claim fields and optionally move its status."""
    claim = ClaimService(db).update(claim_id, actor, request.model_dump(exclude_none=True))
    return claim_to_response(claim)


@router.delete("/{claim_id}")
def delete_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Delete a claim that is not in progress or completed."""
    ClaimService(db).delete(claim_id, actor)
    return {"message": "Claim deleted successfully"}


@router.post("/{claim_id}/assign", response_model=ClaimResponse)
def assign_claim(
    claim_id: UUID,
    request: Optional[AssignRequest] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Assign an AVAILABLE claim to the caller or to a named adjuster."""
    target = request.adjuster_id if request else None
    claim = ClaimService(db).assign(claim_id, actor, target)
    return claim_to_response(claim)


@router.delete("/{claim_id}/assign", response_model=ClaimResponse)
def unassign_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Release an ASSIGNED claim back to AVAILABLE."""
    claim = ClaimService(db).unassign(claim_id, actor)
    return claim_to_response(claim)
