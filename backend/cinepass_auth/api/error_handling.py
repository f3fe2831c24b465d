"""Exception handlers shared by all auth service routes."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cinepass_auth.core.errors import ConfigurationError
from cinepass_auth.core.logging import get_logger
from cinepass_auth.services.session_validator import SessionRejected

logger = get_logger("errors")


class SessionRejectedError(Exception):
    """Raised by route dependencies to turn a rejected session into a response."""

    def __init__(self, rejection: SessionRejected):
        self.rejection = rejection
        super().__init__(rejection.message)


def session_error_response(rejection: SessionRejected) -> JSONResponse:
    content: dict[str, str] = {"detail": rejection.message}
    if rejection.code:
        content["code"] = rejection.code
    headers = (
        {"WWW-Authenticate": "Bearer"}
        if rejection.status_code == status.HTTP_401_UNAUTHORIZED
        else None
    )
    return JSONResponse(status_code=rejection.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SessionRejectedError)
    async def handle_session_rejected(request: Request, exc: SessionRejectedError):
        logger.debug(
            f"Session rejected for {request.method} {request.url.path}: "
            f"{exc.rejection.reason.value}"
        )
        return session_error_response(exc.rejection)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Authentication service is misconfigured"},
        )
