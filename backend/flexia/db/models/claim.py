"""
Claim database model
"""
import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, String, Text, Date, DateTime, Enum, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from flexia.db.base import Base, utcnow


class ClaimType(str, PyEnum):
    AUTO_COLLISION = "AUTO_COLLISION"
    PROPERTY_DAMAGE = "PROPERTY_DAMAGE"
    FIRE_DAMAGE = "FIRE_DAMAGE"
    WATER_DAMAGE = "WATER_DAMAGE"
    THEFT = "THEFT"
    VANDALISM = "VANDALISM"
    NATURAL_DISASTER = "NATURAL_DISASTER"
    LIABILITY = "LIABILITY"
    WORKERS_COMP = "WORKERS_COMP"
    OTHER = "OTHER"


class ClaimStatus(str, PyEnum):
    AVAILABLE = "AVAILABLE"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ClaimPriority(str, PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Statuses in which a claim carries an adjuster
ADJUSTER_BOUND_STATUSES = frozenset(
    {ClaimStatus.ASSIGNED, ClaimStatus.IN_PROGRESS, ClaimStatus.COMPLETED}
)


class Claim(Base):
    """A unit of insurance-adjustment work posted by a firm."""

    __tablename__ = "claims"

    claim_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    claim_number = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(ClaimType), nullable=False)
    status = Column(Enum(ClaimStatus), default=ClaimStatus.AVAILABLE, nullable=False, index=True)
    priority = Column(Enum(ClaimPriority), default=ClaimPriority.MEDIUM, nullable=False)

    estimated_value = Column(Numeric(12, 2), nullable=True)
    final_value = Column(Numeric(12, 2), nullable=True)
    adjuster_fee = Column(Numeric(12, 2), nullable=True)

    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip_code = Column(String(20), nullable=False)

    incident_date = Column(Date, nullable=False)
    reported_date = Column(DateTime, default=utcnow, nullable=False)
    deadline = Column(Date, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    firm_id = Column(Uuid, ForeignKey("firms.firm_id"), nullable=False, index=True)
    adjuster_id = Column(Uuid, ForeignKey("users.user_id"), nullable=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    firm = relationship("Firm", back_populates="claims")
    adjuster = relationship("User", back_populates="assigned_claims")
    earnings = relationship("Earning", back_populates="claim")

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} ({self.status.value})>"
