"""
Earnings ledger: per-user money owed for claim work and manual entries.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.orm import Session

from flexia.core.exceptions import NotFoundError, ValidationError
from flexia.core.logging import get_logger
from flexia.core.permissions import Action, Actor, ensure_can_perform
from flexia.db.base import utcnow
from flexia.db.models import (
    CLAIM_FEE,
    Claim,
    Earning,
    EarningStatus,
    NotificationType,
)
from flexia.services.db_utils import atomic
from flexia.services.notifications import notify

logger = get_logger(__name__)


# Allowed status moves; PAID is terminal
EARNING_TRANSITIONS: dict[EarningStatus, frozenset[EarningStatus]] = {
    EarningStatus.PENDING: frozenset({EarningStatus.PAID, EarningStatus.DISPUTED}),
    EarningStatus.DISPUTED: frozenset({EarningStatus.PENDING, EarningStatus.PAID}),
    EarningStatus.PAID: frozenset(),
}

EDITABLE_FIELDS = ("amount", "type", "description", "earned_date")


class EarningsLedger:
    """Reads and writes earnings on behalf of their owner."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Claim side effects (run inside the caller's transaction)
    # ------------------------------------------------------------------

    def record_claim_fee(self, claim: Claim, adjuster_id: UUID, amount: Decimal) -> Earning:
        """Add the PENDING fee earning created when a claim is assigned."""
        earning = Earning(
            user_id=adjuster_id,
            claim_id=claim.claim_id,
            amount=amount,
            type=CLAIM_FEE,
            description=f"Adjuster fee for claim {claim.claim_number}",
            status=EarningStatus.PENDING,
            earned_date=utcnow(),
        )
        self.db.add(earning)
        self.db.flush()
        return earning

    def reverse_pending_for_claim(self, claim_id: UUID) -> int:
        """Delete the claim's PENDING earnings; PAID and DISPUTED rows are left alone."""
        result = self.db.execute(
            delete(Earning)
            .where(Earning.claim_id == claim_id, Earning.status == EarningStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def detach_claim(self, claim_id: UUID) -> int:
        """Keep the remaining earnings of a deleted claim with no claim reference."""
        result = self.db.execute(
            update(Earning)
            .where(Earning.claim_id == claim_id)
            .values(claim_id=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def get(self, actor: Actor, earning_id: UUID) -> Earning:
        earning = self.db.get(Earning, earning_id)
        if earning is None or earning.user_id != actor.user_id:
            raise NotFoundError("Earning not found")
        ensure_can_perform(actor, Action.EARNING_MANAGE, earning)
        return earning

    def create(
        self,
        actor: Actor,
        amount: Decimal,
        earning_type: str,
        earned_date: datetime,
        description: Optional[str] = None,
        claim_id: Optional[UUID] = None,
    ) -> Earning:
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        if claim_id is not None:
            claim = (
                self.db.query(Claim)
                .filter(Claim.claim_id == claim_id, Claim.adjuster_id == actor.user_id)
                .first()
            )
            if claim is None:
                raise NotFoundError("Claim not found or not assigned to you")

        earning = Earning(
            user_id=actor.user_id,
            claim_id=claim_id,
            amount=amount,
            type=earning_type,
            description=description,
            status=EarningStatus.PENDING,
            earned_date=earned_date,
        )
        with atomic(self.db):
            self.db.add(earning)
            self.db.flush()
            notify(
                self.db,
                actor.user_id,
                NotificationType.EARNING_ADDED,
                "New Earning Added",
                f"Earning of ${amount:.2f} has been recorded",
            )

        self.db.refresh(earning)
        return earning

    def update(self, actor: Actor, earning_id: UUID, changes: dict[str, Any]) -> Earning:
        earning = self.get(actor, earning_id)

        if earning.status == EarningStatus.PAID:
            raise ValidationError("Paid earnings cannot be modified")

        if "amount" in changes and changes["amount"] is not None and changes["amount"] <= 0:
            raise ValidationError("Amount must be greater than zero")

        new_status: Optional[EarningStatus] = changes.get("status")
        status_changed = new_status is not None and new_status != earning.status
        if status_changed and new_status not in EARNING_TRANSITIONS[earning.status]:
            raise ValidationError(
                f"Cannot change earning status from {earning.status.value} to {new_status.value}"
            )

        with atomic(self.db):
            for field in EDITABLE_FIELDS:
                if changes.get(field) is not None:
                    setattr(earning, field, changes[field])

            if status_changed:
                earning.status = new_status
                if new_status == EarningStatus.PAID:
                    earning.paid_date = utcnow()
                notify(
                    self.db,
                    actor.user_id,
                    NotificationType.EARNING_STATUS_CHANGED,
                    "Earning Status Updated",
                    f"Earning of ${earning.amount:.2f} is now {new_status.value}",
                )

        self.db.refresh(earning)
        return earning

    def delete(self, actor: Actor, earning_id: UUID) -> None:
        earning = self.get(actor, earning_id)
        if earning.status == EarningStatus.PAID:
            raise ValidationError("Cannot delete paid earnings")

        with atomic(self.db):
            self.db.delete(earning)
        logger.info(f"Earning {earning_id} deleted by {actor.user_id}")

    def list(
        self,
        user_id: UUID,
        status: Optional[EarningStatus] = None,
        earning_type: Optional[str] = None,
        claim_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Earning], int]:
        query = self.db.query(Earning).filter(Earning.user_id == user_id)
        if status:
            query = query.filter(Earning.status == status)
        if earning_type:
            query = query.filter(Earning.type == earning_type)
        if claim_id:
            query = query.filter(Earning.claim_id == claim_id)
        if start_date:
            query = query.filter(Earning.earned_date >= start_date)
        if end_date:
            query = query.filter(Earning.earned_date <= end_date)

        total = query.count()
        items = (
            query.order_by(Earning.earned_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def summary(self, user_id: UUID, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Totals for a user's earnings.

        Returns overall total, count and average, amount and count per status
        and per type, plus a month-by-month series ("YYYY-MM") covering the
        last twelve months with total, paid, pending and count per month.
        """
        now = now or utcnow()

        by_status = {
            status.value: {"amount": Decimal("0"), "count": 0} for status in EarningStatus
        }
        status_rows = (
            self.db.query(Earning.status, func.sum(Earning.amount), func.count(Earning.earning_id))
            .filter(Earning.user_id == user_id)
            .group_by(Earning.status)
            .all()
        )
        for status, amount, count in status_rows:
            by_status[status.value] = {"amount": Decimal(amount or 0), "count": count}

        type_rows = (
            self.db.query(Earning.type, func.sum(Earning.amount), func.count(Earning.earning_id))
            .filter(Earning.user_id == user_id)
            .group_by(Earning.type)
            .all()
        )
        by_type = {
            earning_type: {"amount": Decimal(amount or 0), "count": count}
            for earning_type, amount, count in type_rows
        }

        monthly: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"total": Decimal("0"), "paid": Decimal("0"), "pending": Decimal("0"), "count": 0}
        )
        recent = (
            self.db.query(Earning.earned_date, Earning.amount, Earning.status)
            .filter(
                Earning.user_id == user_id,
                Earning.earned_date >= now - timedelta(days=365),
            )
            .all()
        )
        for earned_date, amount, status in recent:
            bucket = monthly[earned_date.strftime("%Y-%m")]
            bucket["total"] += Decimal(amount)
            bucket["count"] += 1
            if status == EarningStatus.PAID:
                bucket["paid"] += Decimal(amount)
            elif status == EarningStatus.PENDING:
                bucket["pending"] += Decimal(amount)

        total = sum((entry["amount"] for entry in by_status.values()), Decimal("0"))
        count = sum(entry["count"] for entry in by_status.values())
        return {
            "total": total,
            "count": count,
            "average": (total / count).quantize(Decimal("0.01")) if count else Decimal("0"),
            "by_status": by_status,
            "by_type": by_type,
            "monthly": [{"month": month, **monthly[month]} for month in sorted(monthly)],
        }
