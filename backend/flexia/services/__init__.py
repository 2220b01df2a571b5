"""
Services package
"""
from flexia.services.claim_lifecycle import ClaimEvent, ClaimService, transition
from flexia.services.earnings import EarningsLedger
from flexia.services.affiliate import AffiliateService
from flexia.services.firms import FirmService
from flexia.services.audit import AuditService
from flexia.services.users import UserService

__all__ = [
    "ClaimEvent",
    "ClaimService",
    "transition",
    "EarningsLedger",
    "AffiliateService",
    "FirmService",
    "AuditService",
    "UserService",
]
