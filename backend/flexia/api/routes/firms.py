"""
Firm directory and adjuster connection routes
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db
from flexia.core.exceptions import ValidationError
from flexia.core.permissions import Actor
from flexia.db.models import ConnectionStatus, Firm, FirmConnection
from flexia.services.firms import FirmService

router = APIRouter()


# Request/Response schemas
class CreateFirmRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    owner_id: Optional[UUID] = None


class ConnectionRequest(BaseModel):
    firm_id: UUID
    message: Optional[str] = Field(default=None, max_length=1000)


class ConnectionDecision(BaseModel):
    status: ConnectionStatus


class FirmResponse(BaseModel):
    firm_id: str
    name: str
    email: Optional[str]
    phone: Optional[str]
    description: Optional[str]
    city: Optional[str]
    state: Optional[str]
    owner_id: Optional[str]
    is_active: bool
    available_claims: int = 0
    connection_status: Optional[str] = None


class FirmListResponse(BaseModel):
    firms: List[FirmResponse]
    total: int
    page: int
    limit: int


class ConnectionResponse(BaseModel):
    connection_id: str
    adjuster_id: str
    firm_id: str
    firm_name: str
    status: str
    message: Optional[str]
    connected_at: Optional[str]
    created_at: str


def firm_to_response(
    firm: Firm,
    available_claims: int = 0,
    connection_status: Optional[ConnectionStatus] = None,
) -> FirmResponse:
    return FirmResponse(
        firm_id=str(firm.firm_id),
        name=firm.name,
        email=firm.email,
        phone=firm.phone,
        description=firm.description,
        city=firm.city,
        state=firm.state,
        owner_id=str(firm.owner_id) if firm.owner_id else None,
        is_active=firm.is_active,
        available_claims=available_claims,
        connection_status=connection_status.value if connection_status else None,
    )


def connection_to_response(connection: FirmConnection) -> ConnectionResponse:
    return ConnectionResponse(
        connection_id=str(connection.connection_id),
        adjuster_id=str(connection.adjuster_id),
        firm_id=str(connection.firm_id),
        firm_name=connection.firm.name,
        status=connection.status.value,
        message=connection.message,
        connected_at=connection.connected_at.isoformat() if connection.connected_at else None,
        created_at=connection.created_at.isoformat(),
    )


@router.get("/", response_model=FirmListResponse)
def list_firms(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    state: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Active firms with the caller's connection status."""
    rows, total = FirmService(db).list_firms(actor, search=search, state=state, page=page, limit=limit)
    return FirmListResponse(
        firms=[
            firm_to_response(r["firm"], r["available_claims"], r["connection_status"])
            for r in rows
        ],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/", response_model=FirmResponse, status_code=status.HTTP_201_CREATED)
def create_firm(
    request: CreateFirmRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    firm = FirmService(db).create_firm(actor, request.model_dump())
    return firm_to_response(firm)


@router.get("/connections", response_model=List[ConnectionResponse])
def list_connections(
    status: Optional[ConnectionStatus] = None,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    connections = FirmService(db).list_connections(actor, status=status)
    return [connection_to_response(c) for c in connections]


@router.post("/connections", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
def request_connection(
    request: ConnectionRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Adjuster asks to work with a firm."""
    connection = FirmService(db).request_connection(actor, request.firm_id, request.message)
    return connection_to_response(connection)


@router.put("/connections/{connection_id}", response_model=ConnectionResponse)
def respond_connection(
    connection_id: UUID,
    request: ConnectionDecision,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Firm owner approves or rejects a pending connection."""
    if request.status == ConnectionStatus.PENDING:
        raise ValidationError("status must be APPROVED or REJECTED")
    connection = FirmService(db).respond_connection(
        actor, connection_id, approve=request.status == ConnectionStatus.APPROVED
    )
    return connection_to_response(connection)
