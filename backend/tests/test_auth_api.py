"""Tests for authentication endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from cinepass_auth.core import settings
from cinepass_auth.services.revocation import RevocationLedger
from cinepass_auth.services.tokens import create_access_token

TEST_EMAIL = "moviebuff@example.com"
TEST_PASSWORD = "popcorn123"


async def _login(client, email: str = TEST_EMAIL, password: str = TEST_PASSWORD) -> dict:
    response = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# --- Register ---


@pytest.mark.asyncio
async def test_register_creates_user(async_client):
    response = await async_client.post(
        "/api/auth/register",
        json={"username": "newbie", "email": "newbie@example.com", "password": "password1"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "User registered successfully"
    assert data["user"]["username"] == "newbie"
    assert data["user"]["email"] == "newbie@example.com"
    assert "password" not in str(data)


@pytest.mark.asyncio
async def test_register_duplicate_is_400(async_client, test_user):
    response = await async_client.post(
        "/api/auth/register",
        json={"username": "other", "email": TEST_EMAIL, "password": "password1"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists!"


@pytest.mark.asyncio
async def test_register_validates_input(async_client):
    response = await async_client.post(
        "/api/auth/register",
        json={"username": "ab", "email": "not-an-email", "password": "123"},
    )
    assert response.status_code == 422


# --- Login ---


@pytest.mark.asyncio
async def test_login_returns_token_pair(async_client, test_user):
    data = await _login(async_client)

    assert data["message"] == "Login successful"
    assert data["tokenType"] == "bearer"
    assert data["expiresIn"] == settings.access_token_expire_minutes * 60
    assert data["accessToken"].count(".") == 2
    assert len(data["refreshToken"]) == 128
    assert data["user"]["id"] == str(test_user.id)
    assert data["user"]["username"] == test_user.username


@pytest.mark.asyncio
async def test_login_wrong_password_is_401(async_client, test_user):
    response = await async_client.post(
        "/api/auth/login", json={"email": TEST_EMAIL, "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_unknown_email_is_401(async_client):
    response = await async_client.post(
        "/api/auth/login", json={"email": "nobody@example.com", "password": "whatever"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_rate_limited_after_repeated_failures(async_client, test_user):
    for _ in range(settings.login_rate_limit_attempts):
        response = await async_client.post(
            "/api/auth/login", json={"email": TEST_EMAIL, "password": "wrong-password"}
        )
        assert response.status_code == 401

    response = await async_client.post(
        "/api/auth/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD}
    )
    assert response.status_code == 429


# --- Scenario A: login then use the access token ---


@pytest.mark.asyncio
async def test_login_then_authenticated_request(async_client, test_user):
    data = await _login(async_client)

    response = await async_client.get("/api/auth/me", headers=_bearer(data["accessToken"]))

    assert response.status_code == 200
    profile = response.json()
    assert profile["id"] == str(test_user.id)
    assert profile["email"] == TEST_EMAIL
    assert "createdAt" in profile


# --- Protected routes ---


@pytest.mark.asyncio
async def test_me_without_token_is_401(async_client):
    response = await async_client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "Access denied. No token provided."
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_me_with_malformed_token_is_400(async_client):
    response = await async_client.get("/api/auth/me", headers=_bearer("not.a.jwt"))
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid token."


@pytest.mark.asyncio
async def test_me_with_expired_token_carries_code(async_client, test_user):
    token = create_access_token(
        str(test_user.id), test_user.username, now=datetime.now(UTC) - timedelta(hours=1)
    )
    response = await async_client.get("/api/auth/me", headers=_bearer(token))

    assert response.status_code == 401
    assert response.json() == {
        "detail": "Token expired. Please refresh your token.",
        "code": "TOKEN_EXPIRED",
    }


@pytest.mark.asyncio
async def test_missing_signing_secret_is_500(async_client, test_user, monkeypatch):
    token = create_access_token(str(test_user.id), test_user.username)
    monkeypatch.setattr(settings, "jwt_secret_key", "")

    response = await async_client.get("/api/auth/me", headers=_bearer(token))

    assert response.status_code == 500
    assert response.json()["detail"] == "Authentication service is misconfigured"


# --- Refresh ---


@pytest.mark.asyncio
async def test_refresh_returns_new_access_token(async_client, test_user):
    data = await _login(async_client)

    response = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )

    assert response.status_code == 200
    refreshed = response.json()
    assert refreshed["accessToken"] != data["accessToken"]
    assert refreshed["user"]["id"] == str(test_user.id)
    assert "refreshToken" not in refreshed

    me = await async_client.get("/api/auth/me", headers=_bearer(refreshed["accessToken"]))
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_token_is_401(async_client):
    response = await async_client.post("/api/auth/refresh", json={})
    assert response.status_code == 401
    assert response.json()["detail"] == "Refresh token required"


@pytest.mark.asyncio
async def test_refresh_without_body_is_401(async_client):
    response = await async_client.post("/api/auth/refresh")
    assert response.status_code == 401
    assert response.json()["detail"] == "Refresh token required"


@pytest.mark.asyncio
async def test_refresh_with_unknown_token_is_403(async_client):
    response = await async_client.post("/api/auth/refresh", json={"refreshToken": "f" * 128})
    assert response.status_code == 403
    assert response.json()["detail"] == "Invalid refresh token"


@pytest.mark.asyncio
async def test_refresh_with_expired_token_is_403(async_client, test_user, monkeypatch):
    data = await _login(async_client)
    later = datetime.now(UTC) + timedelta(days=settings.refresh_token_expire_days + 1)

    from cinepass_auth.services import auth as auth_service_module

    real_datetime = auth_service_module.datetime

    class _FrozenDatetime(real_datetime):
        @classmethod
        def now(cls, tz=None):
            return later

    monkeypatch.setattr(auth_service_module, "datetime", _FrozenDatetime)
    response = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Refresh token expired"

    monkeypatch.setattr(auth_service_module, "datetime", real_datetime)
    response = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Invalid refresh token"


# --- Scenario B: logout revokes exactly the presented token ---


@pytest.mark.asyncio
async def test_logout_revokes_presented_token_only(async_client, test_user):
    device_a = await _login(async_client)
    device_b = await _login(async_client)

    response = await async_client.post(
        "/api/auth/logout",
        headers=_bearer(device_a["accessToken"]),
        json={"refreshToken": device_a["refreshToken"]},
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}

    revoked = await async_client.post(
        "/api/auth/validate-token", json={"token": device_a["accessToken"]}
    )
    assert revoked.json() == {"valid": False, "message": "Token has been revoked"}

    still_valid = await async_client.post(
        "/api/auth/validate-token", json={"token": device_b["accessToken"]}
    )
    assert still_valid.json()["valid"] is True

    me = await async_client.get("/api/auth/me", headers=_bearer(device_a["accessToken"]))
    assert me.status_code == 401
    assert me.json()["detail"] == "Token has been revoked. Please log in again."

    refresh = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": device_a["refreshToken"]}
    )
    assert refresh.status_code == 403


@pytest.mark.asyncio
async def test_logout_twice_is_200(async_client, test_user):
    data = await _login(async_client)
    for _ in range(2):
        response = await async_client.post(
            "/api/auth/logout", headers=_bearer(data["accessToken"])
        )
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_logout_with_malformed_bearer_still_succeeds(async_client):
    response = await async_client.post("/api/auth/logout", headers=_bearer("garbage"))
    assert response.status_code == 200
    assert response.json()["message"] == "Logged out successfully"


@pytest.mark.asyncio
async def test_logout_deletes_refresh_token_when_revocation_fails(
    async_client, test_user, monkeypatch
):
    data = await _login(async_client)

    async def failing_revoke(self, token, expires_at):
        raise SQLAlchemyError("revoked_tokens unavailable")

    monkeypatch.setattr(RevocationLedger, "revoke", failing_revoke)
    response = await async_client.post(
        "/api/auth/logout",
        headers=_bearer(data["accessToken"]),
        json={"refreshToken": data["refreshToken"]},
    )
    assert response.status_code == 200

    refresh = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )
    assert refresh.status_code == 403


@pytest.mark.asyncio
async def test_logout_without_bearer_is_401(async_client):
    response = await async_client.post("/api/auth/logout")
    assert response.status_code == 401


# --- Scenario D: logout-all ---


@pytest.mark.asyncio
async def test_logout_all_rejects_other_device_refresh(async_client, test_user):
    device_a = await _login(async_client)
    device_b = await _login(async_client)

    response = await async_client.post(
        "/api/auth/logout-all", headers=_bearer(device_a["accessToken"])
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out from all devices"}

    refresh = await async_client.post(
        "/api/auth/refresh", json={"refreshToken": device_b["refreshToken"]}
    )
    assert refresh.status_code == 403

    current = await async_client.post(
        "/api/auth/validate-token", json={"token": device_a["accessToken"]}
    )
    assert current.json()["valid"] is False


@pytest.mark.asyncio
async def test_logout_all_requires_valid_session(async_client):
    response = await async_client.post("/api/auth/logout-all", headers=_bearer("garbage"))
    assert response.status_code == 400


# --- Validate token (service-to-service) ---


@pytest.mark.asyncio
async def test_validate_token_returns_identity(async_client, test_user):
    data = await _login(async_client)

    response = await async_client.post(
        "/api/auth/validate-token", json={"token": data["accessToken"]}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["user"]["userId"] == str(test_user.id)
    assert body["user"]["username"] == test_user.username
    assert body["user"]["exp"] - body["user"]["iat"] == settings.access_token_expire_minutes * 60
    assert "message" not in body


@pytest.mark.asyncio
async def test_validate_token_missing_is_400(async_client):
    response = await async_client.post("/api/auth/validate-token", json={})
    assert response.status_code == 400
    assert response.json() == {"valid": False, "message": "Token is required"}


@pytest.mark.asyncio
async def test_validate_token_expired_carries_code(async_client, test_user):
    token = create_access_token(
        str(test_user.id), test_user.username, now=datetime.now(UTC) - timedelta(hours=1)
    )
    response = await async_client.post("/api/auth/validate-token", json={"token": token})

    assert response.status_code == 200
    assert response.json() == {
        "valid": False,
        "message": "Token expired",
        "code": "TOKEN_EXPIRED",
    }


@pytest.mark.asyncio
async def test_validate_token_malformed(async_client):
    response = await async_client.post("/api/auth/validate-token", json={"token": "garbage"})
    assert response.status_code == 200
    assert response.json() == {"valid": False, "message": "Invalid token"}


# --- Health ---


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
