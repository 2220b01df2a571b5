"""
Tests for claims endpoints.
"""

import asyncio
from datetime import date, timedelta

from flexia.db.models import Earning, EarningStatus
from flexia.services.claim_lifecycle import ClaimService


def _claim_payload(**overrides):
    payload = {
        "title": "Burst pipe in basement",
        "description": "Water damage across finished basement",
        "type": "WATER_DAMAGE",
        "priority": "HIGH",
        "estimated_value": 12000,
        "adjuster_fee": 350,
        "address": "9 Lake Rd",
        "city": "Austin",
        "state": "TX",
        "zip_code": "78702",
        "incident_date": (date.today() - timedelta(days=2)).isoformat(),
        "deadline": (date.today() + timedelta(days=10)).isoformat(),
    }
    payload.update(overrides)
    return payload


class TestCreateClaim:
    """Test POST /claims/."""

    def test_firm_admin_creates_claim(self, client, firm, firm_admin_headers):
        response = client.post("/claims/", json=_claim_payload(), headers=firm_admin_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "AVAILABLE"
        assert data["firm_name"] == "Acme Adjusting"
        assert data["adjuster_id"] is None
        assert data["adjuster_fee"] == 350.0
        assert data["claim_number"].startswith("CLM-")

    def test_adjuster_cannot_create(self, client, firm, adjuster_headers):
        response = client.post("/claims/", json=_claim_payload(), headers=adjuster_headers)
        assert response.status_code == 403
        assert "error" in response.json()

    def test_future_incident_date_rejected(self, client, firm, firm_admin_headers):
        payload = _claim_payload(incident_date=(date.today() + timedelta(days=1)).isoformat())
        response = client.post("/claims/", json=payload, headers=firm_admin_headers)
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request data"
        assert any(d["field"] == "incident_date" for d in body["details"])

    def test_deadline_before_incident_rejected(self, client, firm, firm_admin_headers):
        payload = _claim_payload(deadline=(date.today() - timedelta(days=30)).isoformat())
        response = client.post("/claims/", json=payload, headers=firm_admin_headers)
        assert response.status_code == 400

    def test_unknown_claim_type_rejected(self, client, firm, firm_admin_headers):
        response = client.post(
            "/claims/", json=_claim_payload(type="ALIEN_ABDUCTION"), headers=firm_admin_headers
        )
        assert response.status_code == 400

    def test_requires_authentication(self, client, firm):
        response = client.post("/claims/", json=_claim_payload())
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}


class TestListAndGetClaims:
    """Test GET /claims/ and GET /claims/{id}."""

    def test_adjuster_lists_available_claims(self, client, make_claim, adjuster_headers):
        make_claim()
        make_claim()
        response = client.get("/claims/", headers=adjuster_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
        assert len(data["claims"]) == 2

    def test_pagination(self, client, make_claim, adjuster_headers):
        for _ in range(3):
            make_claim()
        response = client.get("/claims/?page=2&limit=2", headers=adjuster_headers)
        data = response.json()
        assert len(data["claims"]) == 1
        assert data["pagination"]["pages"] == 2

    def test_search_matches_city(self, client, make_claim, adjuster_headers):
        make_claim(city="Houston")
        make_claim()
        response = client.get("/claims/?search=houst", headers=adjuster_headers)
        assert response.json()["pagination"]["total"] == 1

    def test_filter_by_status(self, client, make_claim, adjuster, adjuster_headers):
        make_claim()
        make_claim(status="ASSIGNED", adjuster_id=adjuster.user_id)
        response = client.get("/claims/?status=ASSIGNED", headers=adjuster_headers)
        assert response.json()["pagination"]["total"] == 1

    def test_get_available_claim(self, client, claim, adjuster_headers):
        response = client.get(f"/claims/{claim.claim_id}", headers=adjuster_headers)
        assert response.status_code == 200
        assert response.json()["claim_number"] == claim.claim_number

    def test_cannot_view_someone_elses_assigned_claim(
        self, client, make_claim, other_adjuster, adjuster_headers
    ):
        claim = make_claim(status="ASSIGNED", adjuster_id=other_adjuster.user_id)
        response = client.get(f"/claims/{claim.claim_id}", headers=adjuster_headers)
        assert response.status_code == 403

    def test_missing_claim_is_404(self, client, adjuster_headers):
        response = client.get(
            "/claims/00000000-0000-0000-0000-000000000000", headers=adjuster_headers
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Claim not found"}


class TestAssignmentEndpoints:
    """Test POST/DELETE /claims/{id}/assign."""

    def test_self_assign_then_unassign(self, client, db, claim, adjuster, adjuster_headers):
        response = client.post(f"/claims/{claim.claim_id}/assign", headers=adjuster_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ASSIGNED"
        assert data["adjuster_id"] == str(adjuster.user_id)
        assert data["adjuster_name"] == "Alice Adjuster"

        earning = db.query(Earning).one()
        assert earning.status == EarningStatus.PENDING

        response = client.delete(f"/claims/{claim.claim_id}/assign", headers=adjuster_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "AVAILABLE"
        assert response.json()["adjuster_id"] is None
        assert db.query(Earning).count() == 0

    def test_assign_taken_claim_is_409(
        self, client, claim, adjuster_headers, other_adjuster_headers
    ):
        first = client.post(f"/claims/{claim.claim_id}/assign", headers=adjuster_headers)
        assert first.status_code == 200

        second = client.post(f"/claims/{claim.claim_id}/assign", headers=other_adjuster_headers)
        assert second.status_code == 409
        assert second.json()["error"] == "Claim is not available for assignment"

    def test_firm_admin_assigns_connected_adjuster(
        self, client, claim, adjuster, connection, firm_admin_headers
    ):
        response = client.post(
            f"/claims/{claim.claim_id}/assign",
            json={"adjuster_id": str(adjuster.user_id)},
            headers=firm_admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["adjuster_id"] == str(adjuster.user_id)

    def test_firm_admin_unconnected_adjuster_is_400(
        self, client, claim, other_adjuster, firm_admin_headers
    ):
        response = client.post(
            f"/claims/{claim.claim_id}/assign",
            json={"adjuster_id": str(other_adjuster.user_id)},
            headers=firm_admin_headers,
        )
        assert response.status_code == 400

    def test_unassign_unassigned_claim_is_400(self, client, claim, firm_admin_headers):
        response = client.delete(f"/claims/{claim.claim_id}/assign", headers=firm_admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Claim is not assigned"


class TestUpdateAndDelete:
    """Test PATCH and DELETE /claims/{id}."""

    def test_patch_available_to_completed_is_409(self, client, claim, firm_admin_headers):
        response = client.patch(
            f"/claims/{claim.claim_id}", json={"status": "COMPLETED"}, headers=firm_admin_headers
        )
        assert response.status_code == 409

    def test_assignee_drives_claim_to_completion(self, client, claim, adjuster_headers):
        client.post(f"/claims/{claim.claim_id}/assign", headers=adjuster_headers)

        started = client.patch(
            f"/claims/{claim.claim_id}", json={"status": "IN_PROGRESS"}, headers=adjuster_headers
        )
        assert started.status_code == 200
        assert started.json()["status"] == "IN_PROGRESS"

        done = client.patch(
            f"/claims/{claim.claim_id}",
            json={"status": "COMPLETED", "final_value": 9800},
            headers=adjuster_headers,
        )
        assert done.status_code == 200
        assert done.json()["status"] == "COMPLETED"
        assert done.json()["completed_at"] is not None
        assert done.json()["final_value"] == 9800.0

    def test_patch_fields(self, client, claim, firm_admin_headers):
        response = client.patch(
            f"/claims/{claim.claim_id}",
            json={"priority": "URGENT", "title": "Hail damage, roof"},
            headers=firm_admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["priority"] == "URGENT"
        assert response.json()["title"] == "Hail damage, roof"

    def test_delete_available_claim(self, client, claim, firm_admin_headers):
        response = client.delete(f"/claims/{claim.claim_id}", headers=firm_admin_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Claim deleted successfully"}

        response = client.get(f"/claims/{claim.claim_id}", headers=firm_admin_headers)
        assert response.status_code == 404

    def test_delete_in_progress_claim_is_400(
        self, client, make_claim, adjuster, firm_admin_headers
    ):
        claim = make_claim(status="IN_PROGRESS", adjuster_id=adjuster.user_id)
        response = client.delete(f"/claims/{claim.claim_id}", headers=firm_admin_headers)
        assert response.status_code == 400

    def test_other_firm_cannot_delete(self, client, claim, other_firm_admin_headers):
        response = client.delete(f"/claims/{claim.claim_id}", headers=other_firm_admin_headers)
        assert response.status_code == 403


class TestRequestHandling:
    """Test that blocking database work stays off the event loop."""

    def _on_event_loop(self) -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def test_claim_lookup_runs_in_worker_thread(self, client, claim, adjuster_headers, monkeypatch):
        seen = []
        original = ClaimService.get

        def recording_get(service, claim_id, actor):
            seen.append(self._on_event_loop())
            return original(service, claim_id, actor)

        monkeypatch.setattr(ClaimService, "get", recording_get)

        response = client.get(f"/claims/{claim.claim_id}", headers=adjuster_headers)
        assert response.status_code == 200
        assert seen == [False]

    def test_assignment_runs_in_worker_thread(self, client, claim, adjuster_headers, monkeypatch):
        seen = []
        original = ClaimService.assign

        def recording_assign(service, *args, **kwargs):
            seen.append(self._on_event_loop())
            return original(service, *args, **kwargs)

        monkeypatch.setattr(ClaimService, "assign", recording_assign)

        response = client.post(f"/claims/{claim.claim_id}/assign", headers=adjuster_headers)
        assert response.status_code == 200
        assert seen == [False]
