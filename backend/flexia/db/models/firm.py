"""
Firm and adjuster/firm connection models
"""
import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean, Column, String, Text, DateTime, Enum, ForeignKey, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship

from flexia.db.base import Base, utcnow


class ConnectionStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Firm(Base):
    """An organization that posts claims for adjusters."""

    __tablename__ = "firms"

    firm_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True, index=True)
    owner_id = Column(Uuid, ForeignKey("users.user_id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="owned_firms")
    claims = relationship("Claim", back_populates="firm")
    connections = relationship("FirmConnection", back_populates="firm", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Firm {self.name}>"


class FirmConnection(Base):
    """Approval gate between an adjuster and a firm."""

    __tablename__ = "firm_connections"
    __table_args__ = (
        UniqueConstraint("adjuster_id", "firm_id", name="uq_firm_connection_pair"),
    )

    connection_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    adjuster_id = Column(Uuid, ForeignKey("users.user_id"), nullable=False, index=True)
    firm_id = Column(Uuid, ForeignKey("firms.firm_id"), nullable=False, index=True)
    status = Column(Enum(ConnectionStatus), default=ConnectionStatus.PENDING, nullable=False)
    message = Column(Text, nullable=True)
    connected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    firm = relationship("Firm", back_populates="connections")
    adjuster = relationship("User")

    def __repr__(self) -> str:
        return f"<FirmConnection {self.adjuster_id} -> {self.firm_id} ({self.status.value})>"
