# CinePass auth services
from cinepass_auth.services.tokens import (
    TokenDecoded,
    TokenRejected,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
)
from cinepass_auth.services.revocation import RevocationLedger
from cinepass_auth.services.session_validator import (
    SessionAccepted,
    SessionRejected,
    SessionValidator,
)
from cinepass_auth.services.auth import AuthService

__all__ = [
    "AuthService",
    "RevocationLedger",
    "SessionAccepted",
    "SessionRejected",
    "SessionValidator",
    "TokenDecoded",
    "TokenRejected",
    "create_access_token",
    "decode_access_token",
    "generate_refresh_token",
]
