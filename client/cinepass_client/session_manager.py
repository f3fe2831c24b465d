"""Client-side session management for CinePass services.

SessionManager holds the access/refresh token pair for one user and
attaches the access token to outgoing requests. It refreshes the access
token shortly before it expires, and at most once after a 401. Concurrent
callers that need a refresh share a single refresh request.

Expiry is read from the access token without verifying its signature.
That value only decides when to refresh and what to display; the server
re-verifies every token it receives.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
from jwt.exceptions import PyJWTError

from cinepass_client.errors import (
    AuthenticationError,
    NotAuthenticatedError,
    RefreshRejectedError,
)
from cinepass_client.single_flight import SingleFlight
from cinepass_client.token_store import MemoryTokenStore, StoredSession, TokenStore

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/api/auth"
REFRESH_LOOKAHEAD_SECONDS = 60.0
AUTO_REFRESH_INTERVAL_SECONDS = 300.0

_REFRESH_KEY = "refresh"


def read_unverified_claims(token: str) -> dict[str, Any] | None:
    """Decode a JWT payload WITHOUT checking its signature.

    Only for scheduling refreshes and showing the username. Never use the
    result to make an authorization decision.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except PyJWTError:
        return None
    return claims if isinstance(claims, dict) else None


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return default


class SessionManager:
    """Token pair holder and authenticated HTTP helper for one user."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        store: TokenStore | None = None,
        refresh_lookahead: float = REFRESH_LOOKAHEAD_SECONDS,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.refresh_lookahead = refresh_lookahead
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._store = store or MemoryTokenStore()
        self._clock = clock
        self._single_flight: SingleFlight[str] = SingleFlight()
        # Bumped whenever the session is cleared or replaced
        self._generation = 0
        self._auto_refresh_task: asyncio.Task[None] | None = None

        saved = self._store.load()
        self._access_token: str | None = saved.access_token if saved else None
        self._refresh_token: str | None = saved.refresh_token if saved else None
        self._user: dict[str, Any] | None = saved.user if saved else None

    # --- State ---

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    @property
    def user(self) -> dict[str, Any] | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None or self._refresh_token is not None

    @property
    def display_name(self) -> str | None:
        """Username for display, taken from the unverified token if possible."""
        if self._access_token:
            claims = read_unverified_claims(self._access_token)
            if claims and claims.get("username"):
                return str(claims["username"])
        if self._user:
            return self._user.get("username")
        return None

    def _save(self) -> None:
        self._store.save(
            StoredSession(
                access_token=self._access_token,
                refresh_token=self._refresh_token,
                user=self._user,
            )
        )

    def clear(self) -> None:
        """Forget the access token, refresh token and user."""
        self._generation += 1
        self._access_token = None
        self._refresh_token = None
        self._user = None
        self._store.clear()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def needs_refresh(self, token: str | None) -> bool:
        """True when the token is absent, unreadable or expires within the lookahead."""
        if not token:
            return True
        claims = read_unverified_claims(token)
        if not claims:
            return True
        try:
            exp = float(claims["exp"])
        except (KeyError, TypeError, ValueError):
            return True
        return exp < self._clock() + self.refresh_lookahead

    # --- Auth service calls ---

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Log in and keep the returned token pair. Returns the user."""
        response = await self._client.post(
            self._url(f"{AUTH_PREFIX}/login"),
            json={"email": email, "password": password},
        )
        if response.status_code != 200:
            raise AuthenticationError(
                _error_detail(response, "Login failed"), status_code=response.status_code
            )

        data = response.json()
        self._generation += 1
        self._access_token = data["accessToken"]
        self._refresh_token = data["refreshToken"]
        self._user = data.get("user")
        self._save()
        logger.info(f"Logged in as {self.display_name}")
        return self._user or {}

    async def refresh(self) -> str:
        """Exchange the refresh token for a new access token.

        Concurrent calls share one request. On any failure the whole local
        session is cleared and RefreshRejectedError is raised. If the session
        ends or is replaced while the request is out (logout, another login),
        the answer is discarded and the current session is left alone.
        """
        return await self._single_flight.do(_REFRESH_KEY, self._perform_refresh)

    def _fail_refresh(
        self, generation: int, message: str, status_code: int | None = None
    ) -> RefreshRejectedError:
        if generation == self._generation:
            self.clear()
        return RefreshRejectedError(message, status_code=status_code)

    async def _perform_refresh(self) -> str:
        generation = self._generation
        refresh_token = self._refresh_token
        if not refresh_token:
            raise self._fail_refresh(generation, "No refresh token available")

        try:
            response = await self._client.post(
                self._url(f"{AUTH_PREFIX}/refresh"),
                json={"refreshToken": refresh_token},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh failed: {e!r}")
            raise self._fail_refresh(generation, "Token refresh failed") from e

        if generation != self._generation:
            logger.info("Session changed during token refresh; discarding the new token")
            raise RefreshRejectedError("Session ended during token refresh")

        if response.status_code != 200:
            raise self._fail_refresh(
                generation,
                _error_detail(response, "Token refresh rejected"),
                status_code=response.status_code,
            )

        try:
            data = response.json()
            access_token = data["accessToken"]
        except (ValueError, KeyError, TypeError) as e:
            raise self._fail_refresh(generation, "Malformed refresh response") from e

        self._access_token = access_token
        user = data.get("user")
        if user:
            self._user = user
        self._save()
        logger.debug("Access token refreshed")
        return access_token

    async def _send(self, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        return await self._client.request(method, self._url(url), headers=headers, **kwargs)

    async def authenticated_request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with the current access token.

        Refreshes first when the token is missing or about to expire. A 401
        answer triggers one refresh and one retry; a second 401 clears the
        session and raises AuthenticationError.
        """
        if not self.is_authenticated:
            raise NotAuthenticatedError("Not logged in")

        token = self._access_token
        if self.needs_refresh(token):
            token = await self.refresh()

        response = await self._send(method, url, token, **kwargs)
        if response.status_code != 401:
            return response

        # Another caller may already have refreshed while this request was out
        if self._access_token and self._access_token != token:
            token = self._access_token
        else:
            try:
                token = await self.refresh()
            except RefreshRejectedError as e:
                raise AuthenticationError(e.message, status_code=401) from e

        response = await self._send(method, url, token, **kwargs)
        if response.status_code == 401:
            self.clear()
            raise AuthenticationError(
                _error_detail(response, "Request rejected after token refresh"),
                status_code=401,
            )
        return response

    async def _notify_server(self, path: str, access_token: str | None, body: dict) -> None:
        if not access_token:
            return
        try:
            response = await self._client.post(
                self._url(f"{AUTH_PREFIX}/{path}"),
                headers={"Authorization": f"Bearer {access_token}"},
                json=body,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Server {path} failed; local session already cleared: {e!r}")
            return
        if response.status_code != 200:
            logger.warning(
                f"Server {path} returned {response.status_code}; local session already cleared"
            )

    async def logout(self) -> None:
        """Clear the local session, then ask the server to revoke this device's tokens."""
        access_token, refresh_token = self._access_token, self._refresh_token
        self.clear()
        body = {"refreshToken": refresh_token} if refresh_token else {}
        await self._notify_server("logout", access_token, body)

    async def logout_all(self) -> None:
        """Clear the local session, then ask the server to end every session of this user."""
        access_token = self._access_token
        self.clear()
        await self._notify_server("logout-all", access_token, {})

    # --- Background refresh ---

    def start_auto_refresh(
        self, interval: float = AUTO_REFRESH_INTERVAL_SECONDS
    ) -> asyncio.Task[None]:
        """Check the access token every interval seconds and refresh it when due."""
        if self._auto_refresh_task is None or self._auto_refresh_task.done():
            self._auto_refresh_task = asyncio.create_task(
                self._auto_refresh_loop(interval), name="session-auto-refresh"
            )
        return self._auto_refresh_task

    async def stop_auto_refresh(self) -> None:
        task, self._auto_refresh_task = self._auto_refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _auto_refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if not self._refresh_token or not self.needs_refresh(self._access_token):
                continue
            try:
                await self.refresh()
            except RefreshRejectedError as e:
                logger.warning(f"Background token refresh failed; session cleared: {e.message}")

    async def aclose(self) -> None:
        """Stop background refresh and close the HTTP client if this manager created it."""
        await self.stop_auto_refresh()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
