"""Access and refresh token primitives.

Access tokens are HS256 JWTs carrying the user id and username. Refresh
tokens are opaque random strings with no relation to the signing secret;
their meaning lives entirely in the refresh_tokens table.

Decoding never raises for an expired or tampered token. Callers get a
TokenDecoded or TokenRejected value and must handle both; exceptions are
reserved for misconfiguration (SigningSecretMissingError).
"""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Literal

import jwt
from jwt.exceptions import PyJWTError

from cinepass_auth.core import settings

ACCESS_TOKEN_TYPE = "access"

# 64 random bytes, hex encoded
REFRESH_TOKEN_BYTES = 64


class DecodeFailure(Enum):
    """Why an access token could not be decoded into usable claims."""

    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access token.

    subject_id is None when a correctly signed token lacks the userId
    claim; the session validator rejects such tokens as badly structured.
    """

    subject_id: str | None
    display_name: str | None
    issued_at: datetime
    expires_at: datetime
    token_id: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class TokenDecoded:
    claims: TokenClaims
    ok: Literal[True] = True


@dataclass(frozen=True)
class TokenRejected:
    reason: DecodeFailure
    detail: str = ""
    # Present for EXPIRED so callers can still read who the token was for
    claims: TokenClaims | None = None
    ok: Literal[False] = False


DecodedToken = TokenDecoded | TokenRejected


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def create_access_token(
    subject_id: str,
    display_name: str,
    *,
    now: datetime | None = None,
    lifetime: timedelta | None = None,
) -> str:
    """Sign a new short-lived access token."""
    issued_at = _now(now)
    if lifetime is None:
        lifetime = timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "userId": subject_id,
        "username": display_name,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
        "type": ACCESS_TOKEN_TYPE,
        # Two tokens minted for the same user in the same second must differ
        "jti": secrets.token_hex(16),
    }
    token = jwt.encode(
        payload,
        settings.signing_secret,
        algorithm=settings.jwt_algorithm,
    )
    return str(token)


def generate_refresh_token() -> str:
    """Return a new unguessable opaque refresh token value."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
    subject = payload.get("userId")
    username = payload.get("username")
    return TokenClaims(
        subject_id=str(subject) if subject else None,
        display_name=str(username) if username is not None else None,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        token_id=payload.get("jti"),
    )


def decode_access_token(
    token: str,
    *,
    now: datetime | None = None,
    verify_expiry: bool = True,
) -> DecodedToken:
    """Verify an access token's signature and, optionally, its expiry.

    With verify_expiry=False an expired but authentic token decodes
    successfully; logout uses this to recover the exp claim of a token it
    is about to revoke.
    """
    try:
        # Time claims are checked below against `now` so tests can move the clock
        payload = jwt.decode(
            token,
            settings.signing_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": False, "verify_iat": False, "require": ["exp", "iat"]},
        )
    except PyJWTError as e:
        return TokenRejected(DecodeFailure.MALFORMED, f"Invalid token: {e}")

    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return TokenRejected(DecodeFailure.MALFORMED, "Not an access token")

    try:
        claims = _claims_from_payload(payload)
    except (TypeError, ValueError, OverflowError) as e:
        return TokenRejected(DecodeFailure.MALFORMED, f"Invalid token claims: {e}")

    if verify_expiry and claims.is_expired(_now(now)):
        return TokenRejected(DecodeFailure.EXPIRED, "Token has expired", claims=claims)

    return TokenDecoded(claims)
