"""Pydantic schemas for the CinePass auth API."""

from cinepass_auth.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    ProfileResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    TokenIdentity,
    UpdatePasswordRequest,
    UpdateUsernameRequest,
    UserResponse,
    UserSummary,
    ValidateTokenRequest,
    ValidateTokenResponse,
)

__all__ = [
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "MessageResponse",
    "ProfileResponse",
    "RefreshRequest",
    "RefreshResponse",
    "RegisterRequest",
    "RegisterResponse",
    "TokenIdentity",
    "UpdatePasswordRequest",
    "UpdateUsernameRequest",
    "UserResponse",
    "UserSummary",
    "ValidateTokenRequest",
    "ValidateTokenResponse",
]
