"""Profile endpoints for the logged-in user."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from cinepass_auth.api.auth import get_auth_service, get_current_session, owner_id_from_session
from cinepass_auth.schemas.auth import (
    MessageResponse,
    ProfileResponse,
    UpdatePasswordRequest,
    UpdateUsernameRequest,
    UserResponse,
)
from cinepass_auth.services.auth import (
    AuthService,
    InvalidCredentialsError,
    UserExistsError,
    UserNotFoundError,
)
from cinepass_auth.services.session_validator import SessionAccepted

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])


def _not_found(e: UserNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=ProfileResponse)
async def get_profile(
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    user = await auth_service.get_user_by_id(owner_id_from_session(session))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return ProfileResponse(
        message="Profile retrieved successfully",
        user=UserResponse.model_validate(user),
    )


@router.put("/username", response_model=ProfileResponse)
async def update_username(
    request: UpdateUsernameRequest,
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Change the username.

    Access tokens issued before the change carry the old name until they
    are refreshed.
    """
    try:
        user = await auth_service.update_username(owner_id_from_session(session), request.username)
    except UserNotFoundError as e:
        raise _not_found(e) from e
    except UserExistsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return ProfileResponse(
        message="Username updated successfully",
        user=UserResponse.model_validate(user),
    )


@router.put("/password", response_model=MessageResponse)
async def update_password(
    request: UpdatePasswordRequest,
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the password. Existing sessions stay logged in."""
    try:
        await auth_service.change_password(
            owner_id_from_session(session),
            request.current_password,
            request.new_password,
        )
    except UserNotFoundError as e:
        raise _not_found(e) from e
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Password updated successfully")


@router.delete("", response_model=MessageResponse)
async def delete_profile(
    session: SessionAccepted = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Delete the account, its refresh tokens and the presenting access token."""
    try:
        await auth_service.delete_user(owner_id_from_session(session), session.token)
    except UserNotFoundError as e:
        raise _not_found(e) from e
    logger.info(
        f"Profile deleted for user {session.subject_id}",
        extra={"user_id": session.subject_id},
    )
    return MessageResponse(message="Profile deleted successfully")
