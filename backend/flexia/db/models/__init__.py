"""
Database models package
"""
from flexia.db.models.user import User, UserRole
from flexia.db.models.firm import Firm, FirmConnection, ConnectionStatus
from flexia.db.models.claim import (
    Claim, ClaimType, ClaimStatus, ClaimPriority, ADJUSTER_BOUND_STATUSES
)
from flexia.db.models.earning import Earning, EarningStatus, CLAIM_FEE
from flexia.db.models.affiliate import (
    AffiliatePartner, AffiliateReferral, AffiliateCommission,
    AffiliateStatus, PaymentMethod, ReferralStatus, CommissionStatus
)
from flexia.db.models.notification import Notification, NotificationType
from flexia.db.models.audit import AuditLog

__all__ = [
    # User
    "User",
    "UserRole",
    # Firm
    "Firm",
    "FirmConnection",
    "ConnectionStatus",
    # Claim
    "Claim",
    "ClaimType",
    "ClaimStatus",
    "ClaimPriority",
    "ADJUSTER_BOUND_STATUSES",
    # Earning
    "Earning",
    "EarningStatus",
    "CLAIM_FEE",
    # Affiliate
    "AffiliatePartner",
    "AffiliateReferral",
    "AffiliateCommission",
    "AffiliateStatus",
    "PaymentMethod",
    "ReferralStatus",
    "CommissionStatus",
    # Notification
    "Notification",
    "NotificationType",
    # Audit
    "AuditLog",
]
