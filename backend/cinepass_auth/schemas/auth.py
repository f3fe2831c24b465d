"""Pydantic schemas for the authentication API.

Bodies use camelCase on the wire (accessToken, refreshToken, userId) and
accept snake_case field names from Python callers.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    """Request for user registration."""

    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(CamelModel):
    """Request for login."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserSummary(CamelModel):
    """Public user fields returned with tokens."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    username: str
    email: str


class UserResponse(UserSummary):
    """Response with user profile information."""

    created_at: datetime


class RegisterResponse(CamelModel):
    message: str
    user: UserSummary


class LoginResponse(CamelModel):
    """Response with the access/refresh token pair."""

    message: str = "Login successful"
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    user: UserSummary


class RefreshRequest(CamelModel):
    """Request for token refresh. A missing token is answered with 401."""

    refresh_token: str | None = None


class RefreshResponse(CamelModel):
    """Response with a new access token; the refresh token is unchanged."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    user: UserSummary


class LogoutRequest(CamelModel):
    """Request for logout with optional refresh token removal."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token of this device. If provided, it is deleted.",
    )


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class ValidateTokenRequest(CamelModel):
    """Token submitted by another service for validation."""

    token: str | None = None


class TokenIdentity(CamelModel):
    """Identity resolved from a valid access token."""

    user_id: str
    username: str | None = None
    exp: int
    iat: int


class ValidateTokenResponse(CamelModel):
    """Validation verdict for another service."""

    valid: bool
    user: TokenIdentity | None = None
    message: str | None = None
    code: str | None = None


class UpdateUsernameRequest(CamelModel):
    username: str = Field(..., min_length=3, max_length=50)


class UpdatePasswordRequest(CamelModel):
    """Password change; the current password must be supplied."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class ProfileResponse(CamelModel):
    message: str
    user: UserResponse
