"""Bearer token verification for the favorites service.

VerificationBridge asks the auth service whether a token is valid and
caches positive answers for a short time, never past the token's own
exp claim. When the auth service cannot be reached the request fails
closed with AUTHORITY_UNAVAILABLE: an unreachable authority is never
treated as a valid token, and never as an invalid one either.

LocalTokenVerifier checks only the signature and expiry. It cannot see
revocations and is used only when explicitly configured.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Protocol

import httpx
import jwt
from fastapi import status
from jwt.exceptions import PyJWTError

from cinepass_favorites.validation_cache import ValidationCache

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_CODE = "TOKEN_EXPIRED"
AUTHORITY_UNAVAILABLE_CODE = "AUTHORITY_UNAVAILABLE"

VALIDATE_TOKEN_PATH = "/api/auth/validate-token"


@dataclass(frozen=True)
class Identity:
    """Who a verified token belongs to."""

    user_id: str
    username: str | None
    exp: int
    iat: int


class VerificationFailure(Enum):
    NO_CREDENTIAL = "no_credential"
    REJECTED = "rejected"
    EXPIRED = "expired"
    MALFORMED = "malformed"
    INVALID_STRUCTURE = "invalid_structure"
    AUTHORITY_UNAVAILABLE = "authority_unavailable"


@dataclass(frozen=True)
class VerificationAccepted:
    identity: Identity
    ok: Literal[True] = True


@dataclass(frozen=True)
class VerificationRejected:
    reason: VerificationFailure
    status_code: int
    message: str
    code: str | None = None
    ok: Literal[False] = False


VerificationResult = VerificationAccepted | VerificationRejected

NO_TOKEN = VerificationRejected(
    VerificationFailure.NO_CREDENTIAL,
    status.HTTP_401_UNAUTHORIZED,
    "Access denied. No token provided.",
)
AUTHORITY_UNAVAILABLE = VerificationRejected(
    VerificationFailure.AUTHORITY_UNAVAILABLE,
    status.HTTP_503_SERVICE_UNAVAILABLE,
    "Authentication service temporarily unavailable",
    code=AUTHORITY_UNAVAILABLE_CODE,
)


class TokenVerifier(Protocol):
    async def verify(self, token: str | None) -> VerificationResult: ...


class AuthorityResponseError(Exception):
    """The auth service answered, but not with a usable verdict."""


def _identity_from_payload(user: Any) -> Identity:
    if not isinstance(user, dict) or not user.get("userId"):
        raise AuthorityResponseError("valid response without a user")
    try:
        return Identity(
            user_id=str(user["userId"]),
            username=user.get("username"),
            exp=int(user["exp"]),
            iat=int(user["iat"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise AuthorityResponseError(f"malformed user in response: {e}") from e


class VerificationBridge:
    """Verifies tokens against the auth service's validate-token endpoint."""

    def __init__(
        self,
        authority_url: str,
        cache: ValidationCache[Identity],
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.authority_url = authority_url.rstrip("/")
        # Token exp claims are epoch seconds; the cache may run on another clock
        self._wall_clock = wall_clock
        self.cache = cache
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(timeout=self.timeout)
                self._owns_client = True
            return self._client

    async def close(self) -> None:
        """Drop cached verdicts and close the HTTP client if this bridge created it."""
        self.cache.clear()
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
            self._client = None

    async def _ask_authority(self, token: str) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post(
            f"{self.authority_url}{VALIDATE_TOKEN_PATH}",
            json={"token": token},
            timeout=self.timeout,
        )
        if response.status_code != status.HTTP_200_OK:
            raise AuthorityResponseError(f"unexpected status {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise AuthorityResponseError(f"unparseable body: {e}") from e
        if not isinstance(body, dict) or not isinstance(body.get("valid"), bool):
            raise AuthorityResponseError("response has no boolean 'valid' field")
        return body

    async def verify(self, token: str | None) -> VerificationResult:
        if not token:
            return NO_TOKEN

        cached = self.cache.get(token)
        if cached is not None:
            if cached.exp > self._wall_clock():
                return VerificationAccepted(cached)
            # Past its own expiry; let the auth service give the verdict
            self.cache.discard(token)

        try:
            body = await self._ask_authority(token)
            if body["valid"]:
                identity = _identity_from_payload(body.get("user"))
        except httpx.TimeoutException as e:
            logger.error(f"Auth service timed out after {self.timeout}s: {e!r}")
            return AUTHORITY_UNAVAILABLE
        except httpx.HTTPError as e:
            logger.error(f"Auth service unavailable: {e!r}")
            return AUTHORITY_UNAVAILABLE
        except AuthorityResponseError as e:
            logger.error(f"Auth service returned an unusable response: {e}")
            return AUTHORITY_UNAVAILABLE

        if not body["valid"]:
            code = body.get("code")
            reason = (
                VerificationFailure.EXPIRED
                if code == TOKEN_EXPIRED_CODE
                else VerificationFailure.REJECTED
            )
            return VerificationRejected(
                reason,
                status.HTTP_401_UNAUTHORIZED,
                str(body.get("message") or "Invalid token"),
                code=code,
            )

        self.cache.put(token, identity, ttl_seconds=identity.exp - self._wall_clock())
        return VerificationAccepted(identity)


class LocalTokenVerifier:
    """Signature and expiry check without asking the auth service.

    Revoked tokens are accepted until they expire. Select this only through
    TOKEN_VERIFICATION_MODE=local.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("Local token verification requires JWT_SECRET_KEY")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock

    async def verify(self, token: str | None) -> VerificationResult:
        if not token:
            return NO_TOKEN

        logger.warning("Verifying token locally; revocation is not checked")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "iat"]},
            )
            exp = int(payload["exp"])
            iat = int(payload["iat"])
        except (PyJWTError, TypeError, ValueError) as e:
            logger.info(f"Rejected malformed token: {e}")
            return VerificationRejected(
                VerificationFailure.MALFORMED,
                status.HTTP_400_BAD_REQUEST,
                "Invalid token.",
            )

        if self._clock() >= exp:
            return VerificationRejected(
                VerificationFailure.EXPIRED,
                status.HTTP_401_UNAUTHORIZED,
                "Token expired. Please refresh your token.",
                code=TOKEN_EXPIRED_CODE,
            )

        if not payload.get("userId"):
            return VerificationRejected(
                VerificationFailure.INVALID_STRUCTURE,
                status.HTTP_403_FORBIDDEN,
                "Invalid token structure.",
            )

        return VerificationAccepted(
            Identity(
                user_id=str(payload["userId"]),
                username=payload.get("username"),
                exp=exp,
                iat=iat,
            )
        )
