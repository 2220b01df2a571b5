"""
Authentication API routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flexia.api.deps import get_current_actor, get_db
from flexia.core import create_access_token, hash_password, logger, verify_password
from flexia.core.exceptions import AuthenticationError, AuthorizationError, ConflictError
from flexia.core.permissions import Actor
from flexia.db.models import User, UserRole
from flexia.services.rate_limiter import rate_limit

router = APIRouter()

SIGNUP_ROLES = (UserRole.ADJUSTER, UserRole.FIRM_ADMIN)


# Request/Response schemas
class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.ADJUSTER
    license_number: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        if v not in SIGNUP_ROLES:
            raise ValueError("role must be ADJUSTER or FIRM_ADMIN")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str


class UserResponse(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    license_number: Optional[str] = None


def _token_for(user: User) -> TokenResponse:
    token = create_access_token({
        "sub": str(user.user_id),
        "email": user.email,
        "role": user.role.value,
    })
    return TokenResponse(
        access_token=token,
        user_id=str(user.user_id),
        role=user.role.value,
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(request: SignupRequest, db: Session = Depends(get_db)):
    """Register a new adjuster or firm admin."""
    email = request.email.lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(request.password),
        first_name=request.first_name,
        last_name=request.last_name,
        role=request.role,
        license_number=request.license_number,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Email already registered")
    db.refresh(user)

    logger.info(f"User registered: {user.email}")
    return _token_for(user)


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limit("login"))])
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate user and return token."""
    user = db.query(User).filter(User.email == request.email.lower()).first()

    if not user or not verify_password(request.password, user.password_hash):
        logger.warning(f"Failed login for {request.email}")
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthorizationError("Account is deactivated")

    logger.info(f"User logged in: {user.email}")
    return _token_for(user)


@router.get("/me", response_model=UserResponse)
def me(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Profile of the authenticated user."""
    user = db.get(User, actor.user_id)
    return UserResponse(
        user_id=str(user.user_id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role.value,
        is_active=user.is_active,
        license_number=user.license_number,
    )
