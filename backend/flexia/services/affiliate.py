"""
Affiliate referral and commission pipeline.

Referral -> conversion -> commission, with the partner's denormalized
``total_referrals`` / ``total_earnings`` counters adjusted by SQL-side
increments in the same transaction as the row that justifies them.
"""
import secrets
import string
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flexia.core.config import settings
from flexia.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from flexia.core.logging import get_logger, log_audit_event
from flexia.core.permissions import Action, Actor, ensure_can_perform
from flexia.db.base import utcnow
from flexia.db.models import (
    AffiliateCommission,
    AffiliatePartner,
    AffiliateReferral,
    AffiliateStatus,
    CommissionStatus,
    PaymentMethod,
    ReferralStatus,
    User,
)
from flexia.services.audit import AuditService
from flexia.services.db_utils import atomic

logger = get_logger(__name__)

CODE_PREFIX = "FLEX-"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CENT = Decimal("0.01")

PROFILE_FIELDS = ("company_name", "website", "payment_method", "payment_details")


def generate_affiliate_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(8))


def calculate_commission(subscription_amount: Decimal, rate: Decimal) -> Decimal:
    """Commission for a conversion, rounded half-up to the cent."""
    return (Decimal(subscription_amount) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)


class AffiliateService:
    """Affiliate partner profile, referral tracking and commission payouts."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _adjust_totals(
        self,
        affiliate_id: UUID,
        referrals: int = 0,
        earnings: Decimal = Decimal("0"),
    ) -> None:
        """Atomic in-database increment of the partner's counters."""
        self.db.execute(
            update(AffiliatePartner)
            .where(AffiliatePartner.affiliate_id == affiliate_id)
            .values(
                total_referrals=AffiliatePartner.total_referrals + referrals,
                total_earnings=AffiliatePartner.total_earnings + earnings,
            )
            .execution_options(synchronize_session=False)
        )

    def _unique_code(self) -> str:
        while True:
            code = generate_affiliate_code()
            taken = (
                self.db.query(AffiliatePartner.affiliate_id)
                .filter(AffiliatePartner.affiliate_code == code)
                .first()
            )
            if not taken:
                return code

    def _get_commission(self, commission_id: UUID) -> AffiliateCommission:
        commission = self.db.get(AffiliateCommission, commission_id)
        if commission is None:
            raise NotFoundError("Commission not found")
        return commission

    # ------------------------------------------------------------------
    # Partner profile
    # ------------------------------------------------------------------

    def get_for_user(self, user_id: UUID) -> Optional[AffiliatePartner]:
        return (
            self.db.query(AffiliatePartner)
            .filter(AffiliatePartner.user_id == user_id)
            .first()
        )

    def register(
        self,
        actor: Actor,
        company_name: Optional[str] = None,
        website: Optional[str] = None,
        payment_method: PaymentMethod = PaymentMethod.PAYPAL,
        payment_details: Optional[str] = None,
    ) -> AffiliatePartner:
        """Enrol the caller as a PENDING affiliate partner."""
        if self.get_for_user(actor.user_id) is not None:
            raise ConflictError("Affiliate partner already exists")

        affiliate = AffiliatePartner(
            user_id=actor.user_id,
            affiliate_code=self._unique_code(),
            company_name=company_name,
            website=website,
            commission_rate=settings.DEFAULT_COMMISSION_RATE,
            status=AffiliateStatus.PENDING,
            payment_method=payment_method,
            payment_details=payment_details,
            total_referrals=0,
            total_earnings=Decimal("0"),
        )
        try:
            with atomic(self.db):
                self.db.add(affiliate)
        except IntegrityError:
            raise ConflictError("Affiliate partner already exists")

        self.db.refresh(affiliate)
        log_audit_event(
            "affiliate_registered",
            str(actor.user_id),
            actor.role.value,
            {"affiliate_code": affiliate.affiliate_code},
        )
        return affiliate

    def update_profile(self, actor: Actor, changes: dict[str, Any]) -> AffiliatePartner:
        affiliate = self.get_for_user(actor.user_id)
        if affiliate is None:
            raise NotFoundError("Affiliate partner not found")

        with atomic(self.db):
            for field in PROFILE_FIELDS:
                if changes.get(field) is not None:
                    setattr(affiliate, field, changes[field])

        self.db.refresh(affiliate)
        return affiliate

    def set_status(self, actor: Actor, affiliate_id: UUID, status: AffiliateStatus) -> AffiliatePartner:
        """Admin approval or suspension of a partner."""
        ensure_can_perform(actor, Action.AFFILIATE_ADMIN, message="Admin access required")

        affiliate = self.db.get(AffiliatePartner, affiliate_id)
        if affiliate is None:
            raise NotFoundError("Affiliate partner not found")

        previous = affiliate.status
        with atomic(self.db):
            affiliate.status = status
            self.audit.log(
                "affiliate.status_changed",
                "update",
                actor,
                "affiliate",
                str(affiliate_id),
                {"from": previous.value, "to": status.value},
            )

        self.db.refresh(affiliate)
        return affiliate

    def get_dashboard(self, actor: Actor) -> dict[str, Any]:
        """Partner profile with referral and commission statistics."""
        affiliate = self.get_for_user(actor.user_id)
        if affiliate is None:
            raise NotFoundError("Affiliate partner not found")

        referral_counts = dict(
            self.db.query(AffiliateReferral.status, func.count(AffiliateReferral.referral_id))
            .filter(AffiliateReferral.affiliate_id == affiliate.affiliate_id)
            .group_by(AffiliateReferral.status)
            .all()
        )
        commission_rows = (
            self.db.query(
                AffiliateCommission.status,
                func.sum(AffiliateCommission.amount),
                func.count(AffiliateCommission.commission_id),
            )
            .filter(AffiliateCommission.affiliate_id == affiliate.affiliate_id)
            .group_by(AffiliateCommission.status)
            .all()
        )
        commissions = {
            status.value: {"amount": Decimal("0"), "count": 0} for status in CommissionStatus
        }
        for status, amount, count in commission_rows:
            commissions[status.value] = {"amount": Decimal(amount or 0), "count": count}

        total_referrals = sum(referral_counts.values())
        converted = referral_counts.get(ReferralStatus.CONVERTED, 0)
        conversion_rate = round(converted / total_referrals * 100, 2) if total_referrals else 0.0

        recent_referrals = (
            self.db.query(AffiliateReferral)
            .filter(AffiliateReferral.affiliate_id == affiliate.affiliate_id)
            .order_by(AffiliateReferral.created_at.desc())
            .limit(10)
            .all()
        )
        recent_commissions = (
            self.db.query(AffiliateCommission)
            .filter(AffiliateCommission.affiliate_id == affiliate.affiliate_id)
            .order_by(AffiliateCommission.created_at.desc())
            .limit(10)
            .all()
        )

        return {
            "affiliate": affiliate,
            "stats": {
                "total_referrals": total_referrals,
                "converted_referrals": converted,
                "pending_referrals": referral_counts.get(ReferralStatus.PENDING, 0),
                "conversion_rate": conversion_rate,
                "commissions": commissions,
            },
            "recent_referrals": recent_referrals,
            "recent_commissions": recent_commissions,
        }

    # ------------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------------

    def _active_affiliate_by_code(self, code: str) -> AffiliatePartner:
        affiliate = (
            self.db.query(AffiliatePartner)
            .filter(AffiliatePartner.affiliate_code == code.strip().upper())
            .first()
        )
        if affiliate is None:
            raise NotFoundError("Invalid affiliate code")
        if affiliate.status != AffiliateStatus.ACTIVE:
            raise ValidationError("Affiliate partner is not active")
        return affiliate

    def lookup_referral(self, code: str, user_id: Optional[UUID] = None) -> dict[str, Any]:
        """Validate a referral code and report whether ``user_id`` already used it."""
        affiliate = self._active_affiliate_by_code(code)

        already_referred = False
        if user_id is not None:
            already_referred = (
                self.db.query(AffiliateReferral.referral_id)
                .filter(
                    AffiliateReferral.affiliate_id == affiliate.affiliate_id,
                    AffiliateReferral.referred_user_id == user_id,
                )
                .first()
                is not None
            )

        return {
            "affiliate_code": affiliate.affiliate_code,
            "company_name": affiliate.company_name,
            "already_referred": already_referred,
        }

    def track_referral(self, code: str, referred_user_id: UUID) -> AffiliateReferral:
        """Attribute a signup to an affiliate; one referral per (affiliate, user)."""
        affiliate = self._active_affiliate_by_code(code)

        if self.db.get(User, referred_user_id) is None:
            raise NotFoundError("Referred user not found")
        if affiliate.user_id == referred_user_id:
            raise ValidationError("Affiliates cannot refer themselves")

        existing = (
            self.db.query(AffiliateReferral.referral_id)
            .filter(
                AffiliateReferral.affiliate_id == affiliate.affiliate_id,
                AffiliateReferral.referred_user_id == referred_user_id,
            )
            .first()
        )
        if existing:
            raise ConflictError("User already referred by this affiliate")

        referral = AffiliateReferral(
            affiliate_id=affiliate.affiliate_id,
            referred_user_id=referred_user_id,
            referral_code=affiliate.affiliate_code,
            status=ReferralStatus.PENDING,
        )
        try:
            with atomic(self.db):
                self.db.add(referral)
                self.db.flush()
                self._adjust_totals(affiliate.affiliate_id, referrals=1)
        except IntegrityError:
            raise ConflictError("User already referred by this affiliate")

        self.db.refresh(referral)
        logger.info(f"Referral tracked for affiliate {affiliate.affiliate_code}")
        return referral

    def convert_referral(
        self,
        actor: Actor,
        referral_id: UUID,
        subscription_amount: Decimal,
    ) -> tuple[AffiliateReferral, AffiliateCommission]:
        """PENDING referral -> CONVERTED plus its PENDING commission."""
        ensure_can_perform(actor, Action.AFFILIATE_ADMIN, message="Admin access required")

        if subscription_amount is None or subscription_amount <= 0:
            raise ValidationError("Subscription amount must be greater than zero")

        referral = self.db.get(AffiliateReferral, referral_id)
        if referral is None:
            raise NotFoundError("Referral not found")
        if referral.status != ReferralStatus.PENDING:
            raise ValidationError("Referral already processed")

        affiliate = referral.affiliate
        rate = Decimal(affiliate.commission_rate)
        amount = calculate_commission(subscription_amount, rate)
        now = utcnow()

        with atomic(self.db):
            result = self.db.execute(
                update(AffiliateReferral)
                .where(
                    AffiliateReferral.referral_id == referral_id,
                    AffiliateReferral.status == ReferralStatus.PENDING,
                )
                .values(
                    status=ReferralStatus.CONVERTED,
                    subscription_amount=subscription_amount,
                    conversion_date=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ValidationError("Referral already processed")

            commission = AffiliateCommission(
                affiliate_id=affiliate.affiliate_id,
                referral_id=referral_id,
                amount=amount,
                commission_rate=rate,
                status=CommissionStatus.PENDING,
            )
            self.db.add(commission)
            self.db.flush()
            self._adjust_totals(affiliate.affiliate_id, earnings=amount)

            self.audit.log(
                "referral.converted",
                "convert",
                actor,
                "referral",
                str(referral_id),
                {
                    "subscription_amount": str(subscription_amount),
                    "commission_amount": str(amount),
                    "commission_rate": str(rate),
                },
            )

        self.db.refresh(referral)
        self.db.refresh(commission)
        return referral, commission

    def list_referrals(
        self,
        actor: Actor,
        status: Optional[ReferralStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[AffiliateReferral], int]:
        """The caller's referrals, or every referral for an admin."""
        query = self.db.query(AffiliateReferral)
        if not actor.is_admin:
            affiliate = self.get_for_user(actor.user_id)
            if affiliate is None:
                raise NotFoundError("Affiliate partner not found")
            query = query.filter(AffiliateReferral.affiliate_id == affiliate.affiliate_id)
        if status:
            query = query.filter(AffiliateReferral.status == status)

        total = query.count()
        items = (
            query.order_by(AffiliateReferral.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    # ------------------------------------------------------------------
    # Commissions
    # ------------------------------------------------------------------

    def list_commissions(
        self,
        actor: Actor,
        status: Optional[CommissionStatus] = None,
        affiliate_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[AffiliateCommission], int]:
        query = self.db.query(AffiliateCommission)
        if actor.is_admin:
            if affiliate_id:
                query = query.filter(AffiliateCommission.affiliate_id == affiliate_id)
        else:
            affiliate = self.get_for_user(actor.user_id)
            if affiliate is None:
                raise NotFoundError("Affiliate partner not found")
            query = query.filter(AffiliateCommission.affiliate_id == affiliate.affiliate_id)
        if status:
            query = query.filter(AffiliateCommission.status == status)

        total = query.count()
        items = (
            query.order_by(AffiliateCommission.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def pay_commissions(
        self,
        actor: Actor,
        commission_ids: Sequence[UUID],
        payment_method: str,
        payment_reference: Optional[str] = None,
    ) -> int:
        """Mark a batch of PENDING commissions PAID; all or nothing."""
        ensure_can_perform(actor, Action.AFFILIATE_ADMIN, message="Admin access required")

        ids = list(dict.fromkeys(commission_ids))
        if not ids:
            raise ValidationError("At least one commission id is required")

        with atomic(self.db):
            result = self.db.execute(
                update(AffiliateCommission)
                .where(
                    AffiliateCommission.commission_id.in_(ids),
                    AffiliateCommission.status == CommissionStatus.PENDING,
                )
                .values(
                    status=CommissionStatus.PAID,
                    payment_date=utcnow(),
                    payment_method=payment_method,
                    payment_reference=payment_reference,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                raise ValidationError(
                    "Some commissions not found or already processed",
                    details={"requested": len(ids), "payable": result.rowcount},
                )

            self.audit.log(
                "commission.paid",
                "pay",
                actor,
                "commission",
                ",".join(str(i) for i in ids)[:100],
                {
                    "commission_ids": [str(i) for i in ids],
                    "payment_method": payment_method,
                    "payment_reference": payment_reference,
                },
            )

        # Bulk UPDATE bypassed the identity map
        self.db.expire_all()
        return len(ids)

    def process_commission(self, actor: Actor, commission_id: UUID, action: str) -> AffiliateCommission:
        """APPROVE -> APPROVED or REJECT -> CANCELLED, from PENDING only."""
        ensure_can_perform(actor, Action.AFFILIATE_ADMIN, message="Admin access required")

        targets = {"APPROVE": CommissionStatus.APPROVED, "REJECT": CommissionStatus.CANCELLED}
        if action not in targets:
            raise ValidationError("Invalid action", details={"action": "Must be APPROVE or REJECT"})

        commission = self._get_commission(commission_id)
        if commission.status != CommissionStatus.PENDING:
            raise ValidationError("Commission already processed")

        with atomic(self.db):
            result = self.db.execute(
                update(AffiliateCommission)
                .where(
                    AffiliateCommission.commission_id == commission_id,
                    AffiliateCommission.status == CommissionStatus.PENDING,
                )
                .values(status=targets[action])
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ValidationError("Commission already processed")

            self.audit.log(
                "commission.processed",
                action.lower(),
                actor,
                "commission",
                str(commission_id),
                {"status": targets[action].value, "amount": str(commission.amount)},
            )

        self.db.refresh(commission)
        return commission

    def cancel_commission(self, actor: Actor, commission_id: UUID) -> AffiliateCommission:
        """
        Cancel an unpaid commission.

        Cancelling an APPROVED commission takes its amount back out of the
        partner's ``total_earnings``; a PENDING one leaves the counter as is.
        """
        ensure_can_perform(actor, Action.AFFILIATE_ADMIN, message="Admin access required")

        commission = self._get_commission(commission_id)
        if commission.status == CommissionStatus.PAID:
            raise ValidationError("Cannot cancel paid commission")
        if commission.status == CommissionStatus.CANCELLED:
            raise ValidationError("Commission already cancelled")

        prior = commission.status
        with atomic(self.db):
            result = self.db.execute(
                update(AffiliateCommission)
                .where(
                    AffiliateCommission.commission_id == commission_id,
                    AffiliateCommission.status == prior,
                )
                .values(status=CommissionStatus.CANCELLED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError("Commission was modified concurrently, reload and retry")

            if prior == CommissionStatus.APPROVED:
                self._adjust_totals(commission.affiliate_id, earnings=-Decimal(commission.amount))

            self.audit.log(
                "commission.cancelled",
                "cancel",
                actor,
                "commission",
                str(commission_id),
                {"previous_status": prior.value, "amount": str(commission.amount)},
            )

        self.db.refresh(commission)
        return commission
