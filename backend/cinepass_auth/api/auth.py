"""Authentication API endpoints."""

import logging
import time
import uuid
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cinepass_auth.api.error_handling import SessionRejectedError
from cinepass_auth.core import get_db, settings
from cinepass_auth.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    TokenIdentity,
    UserResponse,
    UserSummary,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from cinepass_auth.services.auth import (
    AuthService,
    InvalidCredentialsError,
    RefreshTokenError,
    UserExistsError,
)
from cinepass_auth.services.session_validator import (
    RejectionReason,
    SessionAccepted,
    SessionRejected,
    SessionValidator,
)

logger = logging.getLogger(__name__)

# Rate limiting for failed login attempts, keyed by client IP
_login_attempts: dict[str, list[float]] = defaultdict(list)

# Messages returned to other services by /validate-token
_VALIDATION_MESSAGES = {
    RejectionReason.REVOKED: "Token has been revoked",
    RejectionReason.EXPIRED: "Token expired",
    RejectionReason.MALFORMED: "Invalid token",
    RejectionReason.INVALID_STRUCTURE: "Invalid token structure",
}


def _check_login_rate_limit(client_ip: str) -> None:
    """Check if a client IP has exceeded the login attempt rate limit."""
    now = time.monotonic()
    window = settings.login_rate_limit_window_seconds
    attempts = [t for t in _login_attempts[client_ip] if now - t < window]
    _login_attempts[client_ip] = attempts
    if len(attempts) >= settings.login_rate_limit_attempts:
        logger.warning(
            "Login rate limit exceeded for %s", client_ip, extra={"client_ip": client_ip}
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )


def _record_login_attempt(client_ip: str) -> None:
    _login_attempts[client_ip].append(time.monotonic())


router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


def get_session_validator(db: AsyncSession = Depends(get_db)) -> SessionValidator:
    return SessionValidator(db)


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if any."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


async def get_current_session(
    request: Request,
    validator: SessionValidator = Depends(get_session_validator),
) -> SessionAccepted:
    """Dependency that admits only requests carrying a valid access token.

    The accepted session is also stored on request.state.session.
    """
    result = await validator.validate(extract_bearer_token(request))
    if isinstance(result, SessionRejected):
        raise SessionRejectedError(result)
    request.state.session = result
    return result


def owner_id_from_session(session: SessionAccepted) -> uuid.UUID:
    """Parse the token subject as a user id; 403 when it is not a UUID."""
    try:
        return uuid.UUID(session.subject_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token structure.",
        ) from e


def _expires_in() -> int:
    return settings.access_token_expire_minutes * 60


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    """Create a user account."""
    try:
        user = await auth_service.create_user(
            username=request.username,
            email=request.email,
            password=request.password,
        )
    except UserExistsError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return RegisterResponse(
        message="User registered successfully",
        user=UserSummary.model_validate(user),
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Authenticate and get an access/refresh token pair.

    Failed attempts are rate limited per client IP.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    _check_login_rate_limit(client_ip)

    try:
        user = await auth_service.authenticate(request.email, request.password)
    except InvalidCredentialsError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e

    tokens = await auth_service.issue_tokens(user)
    logger.info(
        f"User logged in: {user.username}",
        extra={"user_id": str(user.id), "client_ip": client_ip},
    )
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=_expires_in(),
        user=UserSummary.model_validate(user),
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_access_token(
    request: RefreshRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    """Exchange a refresh token for a new access token.

    The refresh token itself is not rotated.
    """
    if request is None or not request.refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required",
        )

    try:
        access_token, user = await auth_service.rotate_access(request.refresh_token)
    except RefreshTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e

    return RefreshResponse(
        access_token=access_token,
        expires_in=_expires_in(),
        user=UserSummary.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    http_request: Request,
    request: LogoutRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out this device.

    Revokes the presented access token and deletes the given refresh token.
    Once a bearer token is presented the response is always 200: a token
    that cannot be decoded, or a ledger write that fails, is logged and the
    logout still completes for the caller.
    """
    access_token = extract_bearer_token(http_request)
    if access_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    refresh_token = request.refresh_token if request else None
    try:
        await auth_service.logout(access_token, refresh_token)
    except SQLAlchemyError:
        logger.exception("Failed to record logout; continuing")
        await auth_service.session.rollback()

    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Log out of every device by deleting all of the user's refresh tokens."""
    owner_id = owner_id_from_session(session)
    await auth_service.revoke_all_for_owner(owner_id, session.token)
    return MessageResponse(message="Logged out from all devices")


@router.post(
    "/validate-token",
    response_model=ValidateTokenResponse,
    response_model_exclude_none=True,
)
async def validate_token(
    request: ValidateTokenRequest,
    validator: SessionValidator = Depends(get_session_validator),
):
    """Validate an access token on behalf of another service.

    Rejections are answered with 200 and valid=false, so the caller can tell
    an invalid token apart from this service being unreachable.
    """
    if not request.token:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "message": "Token is required"},
        )

    result = await validator.validate(request.token)
    if isinstance(result, SessionRejected):
        return ValidateTokenResponse(
            valid=False,
            message=_VALIDATION_MESSAGES.get(result.reason, result.message),
            code=result.code,
        )

    claims = result.claims
    return ValidateTokenResponse(
        valid=True,
        user=TokenIdentity(
            user_id=result.subject_id,
            username=claims.display_name,
            exp=int(claims.expires_at.timestamp()),
            iat=int(claims.issued_at.timestamp()),
        ),
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Get the current user's profile."""
    try:
        user = await auth_service.get_user_by_id(uuid.UUID(session.subject_id))
    except ValueError:
        user = None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return UserResponse.model_validate(user)
