"""Request authentication for the favorites service.

Routes depend on require_identity. The verifier (remote bridge or local
fallback) is created at startup and kept on app.state.verifier.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cinepass_favorites.verification import (
    Identity,
    TokenVerifier,
    VerificationFailure,
    VerificationRejected,
)

logger = logging.getLogger(__name__)


class VerificationRejectedError(Exception):
    def __init__(self, rejection: VerificationRejected):
        self.rejection = rejection
        super().__init__(rejection.message)


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


async def require_identity(request: Request) -> Identity:
    """Dependency that admits only requests with a verified bearer token.

    Raises:
        VerificationRejectedError: 401/400/403 for a rejected token, 503 when
            the auth service could not be asked.
    """
    result = await get_verifier(request).verify(extract_bearer_token(request))
    if isinstance(result, VerificationRejected):
        raise VerificationRejectedError(result)
    request.state.identity = result.identity
    return result.identity


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(VerificationRejectedError)
    async def handle_verification_rejected(request: Request, exc: VerificationRejectedError):
        rejection = exc.rejection
        if rejection.reason is VerificationFailure.AUTHORITY_UNAVAILABLE:
            logger.warning(f"Refusing {request.method} {request.url.path}: auth service unavailable")

        content: dict[str, str] = {"detail": rejection.message}
        if rejection.code:
            content["code"] = rejection.code
        headers = (
            {"WWW-Authenticate": "Bearer"}
            if rejection.status_code == status.HTTP_401_UNAUTHORIZED
            else None
        )
        return JSONResponse(status_code=rejection.status_code, content=content, headers=headers)
