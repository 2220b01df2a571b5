"""
Tests for authentication endpoints.
"""

from fastapi.testclient import TestClient
from starlette.requests import Request

from flexia.core.config import settings
from flexia.services.rate_limiter import get_client_identifier


class TestAuthEndpoints:
    """Test authentication-related API endpoints."""

    def test_signup_success(self, client: TestClient):
        """Test successful adjuster registration."""
        response = client.post(
            "/auth/signup",
            json={
                "email": "NewUser@Example.com",
                "password": "securepass123",
                "first_name": "New",
                "last_name": "User",
                "license_number": "TX-123456",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert "access_token" in data
        assert data["role"] == "ADJUSTER"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.json()["email"] == "newuser@example.com"
        assert me.json()["license_number"] == "TX-123456"

    def test_signup_firm_admin(self, client: TestClient):
        response = client.post(
            "/auth/signup",
            json={
                "email": "firm@example.com",
                "password": "securepass123",
                "first_name": "Firm",
                "last_name": "Owner",
                "role": "FIRM_ADMIN",
            },
        )
        assert response.status_code == 201
        assert response.json()["role"] == "FIRM_ADMIN"

    def test_signup_cannot_claim_admin_role(self, client: TestClient):
        """Test ADMIN accounts cannot be self-registered."""
        response = client.post(
            "/auth/signup",
            json={
                "email": "sneaky@example.com",
                "password": "securepass123",
                "first_name": "S",
                "last_name": "N",
                "role": "ADMIN",
            },
        )
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "role"

    def test_signup_short_password(self, client: TestClient):
        response = client.post(
            "/auth/signup",
            json={"email": "a@example.com", "password": "short", "first_name": "A", "last_name": "B"},
        )
        assert response.status_code == 400

    def test_signup_duplicate_email(self, client: TestClient, adjuster):
        """Test registration with existing email fails."""
        response = client.post(
            "/auth/signup",
            json={
                "email": "adjuster@example.com",
                "password": "securepass123",
                "first_name": "Dup",
                "last_name": "User",
            },
        )
        assert response.status_code == 409
        assert response.json() == {"error": "Email already registered"}

    def test_login_success(self, client: TestClient, adjuster):
        response = client.post(
            "/auth/login",
            json={"email": "adjuster@example.com", "password": "testpass123"},
        )
        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert data["user_id"] == str(adjuster.user_id)

    def test_login_wrong_password(self, client: TestClient, adjuster):
        response = client.post(
            "/auth/login",
            json={"email": "adjuster@example.com", "password": "wrongpassword"},
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}

    def test_login_nonexistent_user(self, client: TestClient):
        response = client.post(
            "/auth/login",
            json={"email": "nonexistent@example.com", "password": "anypassword"},
        )
        assert response.status_code == 401

    def test_login_deactivated_account(self, client: TestClient, db, adjuster):
        adjuster.is_active = False
        db.commit()
        response = client.post(
            "/auth/login",
            json={"email": "adjuster@example.com", "password": "testpass123"},
        )
        assert response.status_code == 403

    def test_deactivated_user_token_rejected(self, client: TestClient, db, adjuster, adjuster_headers):
        """Test an issued token stops working once the account is deactivated."""
        adjuster.is_active = False
        db.commit()
        response = client.get("/auth/me", headers=adjuster_headers)
        assert response.status_code == 401

    def test_me_requires_token(self, client: TestClient):
        response = client.get("/auth/me")
        assert response.status_code == 401


class TestLoginRateLimit:
    """Test the per-client login rate limit."""

    def test_eleventh_attempt_is_throttled(self, client: TestClient, adjuster):
        payload = {"email": "adjuster@example.com", "password": "wrongpassword"}
        for _ in range(10):
            assert client.post("/auth/login", json=payload).status_code == 401

        response = client.post("/auth/login", json=payload)
        assert response.status_code == 429
        assert "Retry-After" in response.headers
        assert "error" in response.json()

    def test_forwarded_for_header_does_not_reset_the_limit(self, client: TestClient, adjuster):
        """A caller rotating X-Forwarded-For values is still counted as one client."""
        payload = {"email": "adjuster@example.com", "password": "wrongpassword"}
        codes = [
            client.post(
                "/auth/login", json=payload, headers={"X-Forwarded-For": f"10.0.0.{i}"}
            ).status_code
            for i in range(11)
        ]
        assert codes[:10] == [401] * 10
        assert codes[10] == 429


class TestClientIdentifier:
    """Test how rate-limited callers are identified."""

    def _request(self, forwarded_for=None) -> Request:
        headers = []
        if forwarded_for:
            headers.append((b"x-forwarded-for", forwarded_for.encode()))
        return Request({"type": "http", "headers": headers, "client": ("203.0.113.7", 51000)})

    def test_uses_socket_peer_by_default(self):
        assert get_client_identifier(self._request("10.0.0.1")) == "ip:203.0.113.7"

    def test_trusted_proxy_uses_first_forwarded_address(self, monkeypatch):
        monkeypatch.setattr(settings, "TRUST_FORWARDED_FOR", True)
        request = self._request("198.51.100.4, 10.0.0.1")
        assert get_client_identifier(request) == "ip:198.51.100.4"

    def test_trusted_proxy_without_header_falls_back_to_peer(self, monkeypatch):
        monkeypatch.setattr(settings, "TRUST_FORWARDED_FOR", True)
        assert get_client_identifier(self._request()) == "ip:203.0.113.7"
