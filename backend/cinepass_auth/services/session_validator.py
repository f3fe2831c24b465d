"""Session validation for access tokens presented to the auth service.

The checks run in a fixed order:

1. missing token           -> 401
2. token in revoked ledger -> 401
3. bad signature/structure -> 400
4. expired                 -> 401, code TOKEN_EXPIRED
5. no subject claim        -> 403
6. accepted

The ledger lookup comes before any cryptographic check. A revoked token
whose signature is still valid must never reach the accept branch, even
if it is presented the instant before it would expire.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from cinepass_auth.core.logging import get_logger
from cinepass_auth.services.revocation import RevocationLedger
from cinepass_auth.services.tokens import (
    DecodeFailure,
    TokenClaims,
    TokenRejected,
    decode_access_token,
)

logger = get_logger("session_validator")

TOKEN_EXPIRED_CODE = "TOKEN_EXPIRED"


class RejectionReason(Enum):
    NO_CREDENTIAL = "no_credential"
    REVOKED = "revoked"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    INVALID_STRUCTURE = "invalid_structure"


@dataclass(frozen=True)
class SessionAccepted:
    claims: TokenClaims
    token: str
    ok: Literal[True] = True

    @property
    def subject_id(self) -> str:
        # Accepted sessions always carry a subject
        return self.claims.subject_id  # type: ignore[return-value]


@dataclass(frozen=True)
class SessionRejected:
    reason: RejectionReason
    status_code: int
    message: str
    code: str | None = None
    ok: Literal[False] = False


SessionResult = SessionAccepted | SessionRejected

NO_TOKEN = SessionRejected(
    RejectionReason.NO_CREDENTIAL,
    status.HTTP_401_UNAUTHORIZED,
    "Access denied. No token provided.",
)
REVOKED = SessionRejected(
    RejectionReason.REVOKED,
    status.HTTP_401_UNAUTHORIZED,
    "Token has been revoked. Please log in again.",
)
MALFORMED = SessionRejected(
    RejectionReason.MALFORMED,
    status.HTTP_400_BAD_REQUEST,
    "Invalid token.",
)
EXPIRED = SessionRejected(
    RejectionReason.EXPIRED,
    status.HTTP_401_UNAUTHORIZED,
    "Token expired. Please refresh your token.",
    code=TOKEN_EXPIRED_CODE,
)
INVALID_STRUCTURE = SessionRejected(
    RejectionReason.INVALID_STRUCTURE,
    status.HTTP_403_FORBIDDEN,
    "Invalid token structure.",
)


class SessionValidator:
    """Decides accept/reject for access tokens, consulting the ledger first."""

    def __init__(self, session: AsyncSession):
        self.ledger = RevocationLedger(session)

    async def validate(self, token: str | None, *, now: datetime | None = None) -> SessionResult:
        if not token:
            return NO_TOKEN

        if await self.ledger.is_revoked(token):
            logger.info("Rejected revoked access token")
            return REVOKED

        decoded = decode_access_token(token, now=now)
        if isinstance(decoded, TokenRejected):
            if decoded.reason is DecodeFailure.EXPIRED:
                return EXPIRED
            logger.warning(f"Rejected malformed access token: {decoded.detail}")
            return MALFORMED

        if not decoded.claims.subject_id:
            return INVALID_STRUCTURE

        return SessionAccepted(claims=decoded.claims, token=token)
