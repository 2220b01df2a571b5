"""
User database model
"""
import uuid
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, String, DateTime, Enum, Uuid
from sqlalchemy.orm import relationship

from flexia.db.base import Base, utcnow


class UserRole(str, PyEnum):
    ADJUSTER = "ADJUSTER"
    FIRM_ADMIN = "FIRM_ADMIN"
    ADMIN = "ADMIN"


class User(Base):
    """User account model."""

    __tablename__ = "users"

    user_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.ADJUSTER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    license_number = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owned_firms = relationship("Firm", back_populates="owner")
    assigned_claims = relationship("Claim", back_populates="adjuster")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
