"""
Affiliate partner, referral and commission models
"""
import uuid
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, String, Integer, DateTime, Enum, ForeignKey, Numeric, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship

from flexia.db.base import Base, utcnow


class AffiliateStatus(str, PyEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class PaymentMethod(str, PyEnum):
    PAYPAL = "PAYPAL"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"


class ReferralStatus(str, PyEnum):
    PENDING = "PENDING"
    CONVERTED = "CONVERTED"


class CommissionStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class AffiliatePartner(Base):
    """A referral partner earning commission on converted signups."""

    __tablename__ = "affiliate_partners"

    affiliate_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.user_id"), unique=True, nullable=False)
    affiliate_code = Column(String(32), unique=True, nullable=False, index=True)
    company_name = Column(String(255), nullable=True)
    website = Column(String(500), nullable=True)
    commission_rate = Column(Numeric(5, 4), default=Decimal("0.20"), nullable=False)
    status = Column(Enum(AffiliateStatus), default=AffiliateStatus.PENDING, nullable=False)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.PAYPAL, nullable=False)
    payment_details = Column(Text, nullable=True)

    # Denormalized counters, only touched by AffiliateService alongside the ledger rows
    total_referrals = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User")
    referrals = relationship("AffiliateReferral", back_populates="affiliate")
    commissions = relationship("AffiliateCommission", back_populates="affiliate")

    def __repr__(self) -> str:
        return f"<AffiliatePartner {self.affiliate_code} ({self.status.value})>"


class AffiliateReferral(Base):
    """A signup attributed to an affiliate code."""

    __tablename__ = "affiliate_referrals"
    __table_args__ = (
        UniqueConstraint("affiliate_id", "referred_user_id", name="uq_affiliate_referral_pair"),
    )

    referral_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(Uuid, ForeignKey("affiliate_partners.affiliate_id"), nullable=False, index=True)
    referred_user_id = Column(Uuid, ForeignKey("users.user_id"), nullable=False)
    referral_code = Column(String(32), nullable=False)
    status = Column(Enum(ReferralStatus), default=ReferralStatus.PENDING, nullable=False)
    subscription_amount = Column(Numeric(12, 2), nullable=True)
    conversion_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    affiliate = relationship("AffiliatePartner", back_populates="referrals")
    referred_user = relationship("User")
    commission = relationship("AffiliateCommission", back_populates="referral", uselist=False)

    def __repr__(self) -> str:
        return f"<AffiliateReferral {self.referral_code} ({self.status.value})>"


class AffiliateCommission(Base):
    """Commission owed to an affiliate for a converted referral."""

    __tablename__ = "affiliate_commissions"

    commission_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(Uuid, ForeignKey("affiliate_partners.affiliate_id"), nullable=False, index=True)
    referral_id = Column(Uuid, ForeignKey("affiliate_referrals.referral_id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)
    status = Column(Enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True)
    payment_date = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    affiliate = relationship("AffiliatePartner", back_populates="commissions")
    referral = relationship("AffiliateReferral", back_populates="commission")

    def __repr__(self) -> str:
        return f"<AffiliateCommission {self.amount} ({self.status.value})>"
