# CinePass auth models
from cinepass_auth.models.base import BaseModel
from cinepass_auth.models.refresh_token import RefreshToken
from cinepass_auth.models.revoked_token import RevokedToken
from cinepass_auth.models.user import User

__all__ = [
    "BaseModel",
    "RefreshToken",
    "RevokedToken",
    "User",
]
