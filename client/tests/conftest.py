"""Pytest configuration and fixtures for client tests."""

import asyncio
import json
from uuid import uuid4

import httpx
import jwt
import pytest

SERVER_SECRET = "client-test-secret-" + "0" * 45
TEST_EMAIL = "moviebuff@example.com"
TEST_PASSWORD = "popcorn123"
TEST_USER = {"id": "user-1", "username": "moviebuff", "email": TEST_EMAIL}
TEST_REFRESH_TOKEN = "a1" * 64


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthServer:
    """MockTransport handler standing in for the auth service plus one protected route.

    Access tokens are real HS256 JWTs stamped with the fake clock, so expiry
    is driven by advancing the clock.
    """

    def __init__(self, clock: FakeClock, lifetime: int = 900):
        self.clock = clock
        self.lifetime = lifetime
        self.refresh_calls = 0
        self.resource_tokens: list[str] = []
        self.logout_requests: list[tuple[str, str | None, dict]] = []
        self.refresh_status = 200
        self.reject_resources = False
        self.logout_error: Exception | None = None
        self.logout_status = 200
        # When set, /refresh waits on it before answering
        self.refresh_gate: asyncio.Event | None = None

    def mint(self) -> str:
        iat = int(self.clock())
        claims = {
            "userId": TEST_USER["id"],
            "username": TEST_USER["username"],
            "iat": iat,
            "exp": iat + self.lifetime,
            "jti": uuid4().hex,
        }
        return jwt.encode(claims, SERVER_SECRET, algorithm="HS256")

    def _token_is_live(self, token: str) -> bool:
        try:
            claims = jwt.decode(
                token,
                SERVER_SECRET,
                algorithms=["HS256"],
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError:
            return False
        return claims["exp"] > self.clock()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        # Yield once so concurrent callers interleave as they would on a network
        await asyncio.sleep(0)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        bearer = request.headers.get("Authorization", "").removeprefix("Bearer ") or None

        if path == "/api/auth/login":
            if body.get("email") != TEST_EMAIL or body.get("password") != TEST_PASSWORD:
                return httpx.Response(401, json={"detail": "Invalid credentials"})
            return httpx.Response(
                200,
                json={
                    "message": "Login successful",
                    "accessToken": self.mint(),
                    "refreshToken": TEST_REFRESH_TOKEN,
                    "tokenType": "bearer",
                    "expiresIn": self.lifetime,
                    "user": TEST_USER,
                },
            )

        if path == "/api/auth/refresh":
            self.refresh_calls += 1
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"detail": "Invalid refresh token"})
            if body.get("refreshToken") != TEST_REFRESH_TOKEN:
                return httpx.Response(403, json={"detail": "Invalid refresh token"})
            return httpx.Response(
                200,
                json={
                    "accessToken": self.mint(),
                    "tokenType": "bearer",
                    "expiresIn": self.lifetime,
                    "user": TEST_USER,
                },
            )

        if path in ("/api/auth/logout", "/api/auth/logout-all"):
            self.logout_requests.append((path, bearer, body))
            if self.logout_error is not None:
                raise self.logout_error
            return httpx.Response(self.logout_status, json={"message": "Logged out successfully"})

        if path == "/api/resource":
            self.resource_tokens.append(bearer or "")
            if self.reject_resources or not bearer or not self._token_is_live(bearer):
                return httpx.Response(401, json={"detail": "Token expired"})
            return httpx.Response(200, json={"ok": True})

        return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_server(clock) -> FakeAuthServer:
    return FakeAuthServer(clock)


@pytest.fixture
def http_client(auth_server):
    return httpx.AsyncClient(transport=httpx.MockTransport(auth_server))
