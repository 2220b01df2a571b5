"""
Earning database model
"""
import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, String, Text, DateTime, Enum, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship

from flexia.db.base import Base, utcnow


class EarningStatus(str, PyEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    DISPUTED = "DISPUTED"


CLAIM_FEE = "CLAIM_FEE"


class Earning(Base):
    """A monetary amount owed to a user, usually for claim work."""

    __tablename__ = "earnings"

    earning_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id"), nullable=False, index=True)
    claim_id = Column(Uuid, ForeignKey("claims.claim_id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(EarningStatus), default=EarningStatus.PENDING, nullable=False, index=True)
    earned_date = Column(DateTime, default=utcnow, nullable=False)
    paid_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    user = relationship("User")
    claim = relationship("Claim", back_populates="earnings")

    def __repr__(self) -> str:
        return f"<Earning {self.amount} {self.type} ({self.status.value})>"
