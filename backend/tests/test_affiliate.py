"""
Tests for the affiliate referral and commission pipeline.
"""

import uuid
from decimal import Decimal

import pytest

from flexia.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from flexia.db.models import (
    AffiliateCommission,
    AffiliatePartner,
    AffiliateStatus,
    AuditLog,
    CommissionStatus,
    ReferralStatus,
    User,
    UserRole,
)
from flexia.services.affiliate import (
    AffiliateService,
    calculate_commission,
    generate_affiliate_code,
)


def _partner_totals(db, affiliate):
    db.expire_all()
    partner = db.get(AffiliatePartner, affiliate.affiliate_id)
    return partner.total_referrals, Decimal(partner.total_earnings)


@pytest.fixture
def referral(db, affiliate, referred_user):
    return AffiliateService(db).track_referral(affiliate.affiliate_code, referred_user.user_id)


@pytest.fixture
def converted(db, admin, referral, actor_of):
    """Referral converted on a $100 subscription; yields (referral, commission)."""
    return AffiliateService(db).convert_referral(actor_of(admin), referral.referral_id, Decimal("100"))


class TestCommissionMath:
    """Test code generation and commission rounding."""

    def test_code_format(self):
        code = generate_affiliate_code()
        assert code.startswith("FLEX-")
        assert len(code) == 13
        assert code[5:].isalnum() and code[5:].upper() == code[5:]

    @pytest.mark.parametrize("amount,rate,expected", [
        ("100", "0.20", "20.00"),
        ("49.99", "0.20", "10.00"),
        ("10.05", "0.15", "1.51"),
        ("0.01", "0.50", "0.01"),
    ])
    def test_rounds_half_up_to_cent(self, amount, rate, expected):
        assert calculate_commission(Decimal(amount), Decimal(rate)) == Decimal(expected)


class TestRegistration:
    """Test joining the affiliate program."""

    def test_register(self, client, affiliate_user, affiliate_headers):
        response = client.post(
            "/affiliate/",
            json={"company_name": "Storm Leads LLC", "payment_method": "BANK_TRANSFER"},
            headers=affiliate_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["commission_rate"] == 0.2
        assert data["affiliate_code"].startswith("FLEX-")
        assert data["total_referrals"] == 0

    def test_register_twice_conflicts(self, client, affiliate, affiliate_headers):
        response = client.post("/affiliate/", json={}, headers=affiliate_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "Affiliate partner already exists"

    def test_update_profile(self, client, affiliate, affiliate_headers):
        response = client.put(
            "/affiliate/", json={"website": "https://stormleads.example"}, headers=affiliate_headers
        )
        assert response.status_code == 200
        assert response.json()["website"] == "https://stormleads.example"

    def test_dashboard_without_profile_is_404(self, client, adjuster_headers):
        response = client.get("/affiliate/", headers=adjuster_headers)
        assert response.status_code == 404


class TestReferralTracking:
    """Test public referral lookup and tracking."""

    def test_lookup_is_public_and_case_insensitive(self, client, affiliate):
        response = client.get("/affiliate/referral", params={"code": "flex-test0001"})
        assert response.status_code == 200
        assert response.json() == {
            "affiliate_code": "FLEX-TEST0001",
            "company_name": None,
            "already_referred": False,
        }

    def test_lookup_unknown_code(self, client, affiliate):
        response = client.get("/affiliate/referral", params={"code": "FLEX-NOPE"})
        assert response.status_code == 404
        assert response.json()["error"] == "Invalid affiliate code"

    def test_track_referral_increments_counter(self, client, db, affiliate, referred_user):
        response = client.post(
            "/affiliate/referral",
            json={"affiliate_code": "FLEX-TEST0001", "referred_user_id": str(referred_user.user_id)},
        )
        assert response.status_code == 201
        assert response.json()["status"] == "PENDING"
        assert _partner_totals(db, affiliate) == (1, Decimal("0"))

    def test_duplicate_referral_conflicts(self, client, db, affiliate, referral, referred_user):
        response = client.post(
            "/affiliate/referral",
            json={"affiliate_code": "FLEX-TEST0001", "referred_user_id": str(referred_user.user_id)},
        )
        assert response.status_code == 409
        assert _partner_totals(db, affiliate)[0] == 1

        lookup = client.get(
            "/affiliate/referral",
            params={"code": "FLEX-TEST0001", "user_id": str(referred_user.user_id)},
        )
        assert lookup.json()["already_referred"] is True

    def test_duplicate_referral_service_conflict(self, db, affiliate, referral, referred_user):
        with pytest.raises(ConflictError):
            AffiliateService(db).track_referral(affiliate.affiliate_code, referred_user.user_id)

    def test_inactive_affiliate_rejected(self, db, affiliate, referred_user):
        affiliate.status = AffiliateStatus.SUSPENDED
        db.commit()
        with pytest.raises(ValidationError, match="not active"):
            AffiliateService(db).track_referral(affiliate.affiliate_code, referred_user.user_id)

    def test_self_referral_rejected(self, db, affiliate, affiliate_user):
        with pytest.raises(ValidationError):
            AffiliateService(db).track_referral(affiliate.affiliate_code, affiliate_user.user_id)

    def test_unknown_user_rejected(self, db, affiliate):
        with pytest.raises(NotFoundError):
            AffiliateService(db).track_referral(affiliate.affiliate_code, uuid.uuid4())


class TestConversion:
    """Referral conversion raises a PENDING commission."""

    def test_convert_creates_commission_and_adds_earnings(self, db, affiliate, converted):
        referral, commission = converted

        assert referral.status == ReferralStatus.CONVERTED
        assert referral.conversion_date is not None
        assert commission.amount == Decimal("20.00")
        assert commission.status == CommissionStatus.PENDING
        assert commission.commission_rate == Decimal("0.20")
        assert _partner_totals(db, affiliate) == (1, Decimal("20.00"))

        log = db.query(AuditLog).filter(AuditLog.event_type == "referral.converted").one()
        assert log.resource_id == str(referral.referral_id)

    def test_convert_twice_rejected(self, db, admin, converted, actor_of):
        referral, _ = converted
        with pytest.raises(ValidationError, match="already processed"):
            AffiliateService(db).convert_referral(actor_of(admin), referral.referral_id, Decimal("100"))
        assert db.query(AffiliateCommission).count() == 1

    def test_non_positive_amount_rejected(self, db, admin, referral, actor_of):
        with pytest.raises(ValidationError):
            AffiliateService(db).convert_referral(actor_of(admin), referral.referral_id, Decimal("0"))

    def test_convert_endpoint_requires_admin(self, client, referral, affiliate_headers):
        response = client.put(
            "/affiliate/referral",
            json={"referral_id": str(referral.referral_id), "subscription_amount": 100},
            headers=affiliate_headers,
        )
        assert response.status_code == 403

    def test_convert_endpoint(self, client, referral, admin_headers):
        response = client.put(
            "/affiliate/referral",
            json={"referral_id": str(referral.referral_id), "subscription_amount": 49.99},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["referral"]["status"] == "CONVERTED"
        assert data["commission"]["amount"] == 10.0


class TestCommissionProcessing:
    """Approve, reject, cancel and pay commissions."""

    def test_approve_then_cancel_nets_to_zero(self, db, admin, affiliate, converted, actor_of):
        _, commission = converted
        service = AffiliateService(db)

        approved = service.process_commission(actor_of(admin), commission.commission_id, "APPROVE")
        assert approved.status == CommissionStatus.APPROVED
        assert _partner_totals(db, affiliate)[1] == Decimal("20.00")

        cancelled = service.cancel_commission(actor_of(admin), commission.commission_id)
        assert cancelled.status == CommissionStatus.CANCELLED
        assert _partner_totals(db, affiliate)[1] == Decimal("0")

    def test_cancel_pending_leaves_total(self, db, admin, affiliate, converted, actor_of):
        _, commission = converted
        AffiliateService(db).cancel_commission(actor_of(admin), commission.commission_id)
        assert _partner_totals(db, affiliate)[1] == Decimal("20.00")

    def test_reject_moves_to_cancelled(self, db, admin, converted, actor_of):
        _, commission = converted
        rejected = AffiliateService(db).process_commission(
            actor_of(admin), commission.commission_id, "REJECT"
        )
        assert rejected.status == CommissionStatus.CANCELLED

    def test_process_twice_rejected(self, db, admin, converted, actor_of):
        _, commission = converted
        service = AffiliateService(db)
        service.process_commission(actor_of(admin), commission.commission_id, "APPROVE")
        with pytest.raises(ValidationError, match="already processed"):
            service.process_commission(actor_of(admin), commission.commission_id, "REJECT")

    def test_invalid_action(self, db, admin, converted, actor_of):
        _, commission = converted
        with pytest.raises(ValidationError, match="Invalid action"):
            AffiliateService(db).process_commission(actor_of(admin), commission.commission_id, "REFUND")

    def test_cancel_twice_rejected(self, db, admin, converted, actor_of):
        _, commission = converted
        service = AffiliateService(db)
        service.cancel_commission(actor_of(admin), commission.commission_id)
        with pytest.raises(ValidationError, match="already cancelled"):
            service.cancel_commission(actor_of(admin), commission.commission_id)

    def test_paid_commission_is_terminal(self, db, admin, converted, actor_of):
        _, commission = converted
        service = AffiliateService(db)
        paid = service.pay_commissions(actor_of(admin), [commission.commission_id], "PAYPAL", "TX-1")
        assert paid == 1

        with pytest.raises(ValidationError, match="Cannot cancel paid commission"):
            service.cancel_commission(actor_of(admin), commission.commission_id)
        with pytest.raises(ValidationError, match="already processed"):
            service.process_commission(actor_of(admin), commission.commission_id, "APPROVE")

        row = db.get(AffiliateCommission, commission.commission_id)
        assert row.status == CommissionStatus.PAID
        assert row.payment_date is not None
        assert row.payment_reference == "TX-1"

    def test_non_admin_cannot_process(self, db, affiliate_user, converted, actor_of):
        _, commission = converted
        with pytest.raises(AuthorizationError):
            AffiliateService(db).process_commission(
                actor_of(affiliate_user), commission.commission_id, "APPROVE"
            )


class TestBulkPayment:
    """Bulk payment is all-or-nothing."""

    def _second_commission(self, db, admin, affiliate, actor_of):
        other = User(
            email="second@example.com",
            password_hash="x",
            first_name="Sam",
            last_name="Second",
            role=UserRole.ADJUSTER,
        )
        db.add(other)
        db.commit()
        service = AffiliateService(db)
        referral = service.track_referral(affiliate.affiliate_code, other.user_id)
        _, commission = service.convert_referral(actor_of(admin), referral.referral_id, Decimal("50"))
        return commission

    def test_mixed_batch_rejected_without_changes(self, db, admin, affiliate, converted, actor_of):
        _, first = converted
        second = self._second_commission(db, admin, affiliate, actor_of)
        service = AffiliateService(db)
        service.pay_commissions(actor_of(admin), [second.commission_id], "PAYPAL")

        with pytest.raises(ValidationError, match="Some commissions not found or already processed"):
            service.pay_commissions(
                actor_of(admin), [first.commission_id, second.commission_id], "PAYPAL"
            )

        db.expire_all()
        assert db.get(AffiliateCommission, first.commission_id).status == CommissionStatus.PENDING
        assert db.get(AffiliateCommission, second.commission_id).status == CommissionStatus.PAID

    def test_pay_endpoint(self, client, db, converted, admin_headers):
        _, commission = converted
        response = client.put(
            "/affiliate/commission",
            json={
                "commission_ids": [str(commission.commission_id)],
                "payment_method": "BANK_TRANSFER",
                "payment_reference": "ACH-42",
            },
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["paid"] == 1

    def test_pay_endpoint_mixed_batch_is_400(self, client, db, converted, admin_headers):
        _, commission = converted
        response = client.put(
            "/affiliate/commission",
            json={
                "commission_ids": [str(commission.commission_id), str(uuid.uuid4())],
                "payment_method": "PAYPAL",
            },
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Some commissions not found or already processed"

        db.expire_all()
        assert db.get(AffiliateCommission, commission.commission_id).status == CommissionStatus.PENDING

    def test_empty_batch_is_400(self, client, admin_headers):
        response = client.put(
            "/affiliate/commission",
            json={"commission_ids": [], "payment_method": "PAYPAL"},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_non_admin_gets_403(self, client, converted, affiliate_headers):
        _, commission = converted
        response = client.put(
            "/affiliate/commission",
            json={"commission_ids": [str(commission.commission_id)], "payment_method": "PAYPAL"},
            headers=affiliate_headers,
        )
        assert response.status_code == 403


class TestCommissionEndpoints:
    """Test the commission listing and admin endpoints."""

    def test_partner_sees_own_commissions(self, client, converted, affiliate_headers):
        response = client.get("/affiliate/commission", headers=affiliate_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_process_endpoint(self, client, converted, admin_headers):
        _, commission = converted
        response = client.post(
            "/affiliate/commission",
            json={"commission_id": str(commission.commission_id), "action": "APPROVE"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"

    def test_cancel_endpoint(self, client, converted, admin_headers):
        _, commission = converted
        response = client.delete(
            "/affiliate/commission", params={"id": str(commission.commission_id)}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_dashboard_stats(self, client, converted, affiliate_headers):
        response = client.get("/affiliate/", headers=affiliate_headers)
        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["total_referrals"] == 1
        assert stats["converted_referrals"] == 1
        assert stats["conversion_rate"] == 100.0
        assert stats["commissions"]["PENDING"] == {"amount": 20.0, "count": 1}

    def test_referrals_list(self, client, referral, affiliate_headers):
        response = client.get("/affiliate/referrals", headers=affiliate_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1
