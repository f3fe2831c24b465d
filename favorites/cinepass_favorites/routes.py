"""Favorites service routes."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from cinepass_favorites.auth import require_identity
from cinepass_favorites.verification import Identity

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


class IdentityResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    username: str | None = None
    exp: int
    iat: int


@router.get("/identity", response_model=IdentityResponse)
async def get_identity(identity: Identity = Depends(require_identity)) -> IdentityResponse:
    """Return who the caller's bearer token belongs to."""
    return IdentityResponse(
        user_id=identity.user_id,
        username=identity.username,
        exp=identity.exp,
        iat=identity.iat,
    )


health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check(request: Request) -> dict[str, str | int]:
    """Health check endpoint."""
    verifier = request.app.state.verifier
    cache = getattr(verifier, "cache", None)
    return {
        "status": "healthy",
        "service": "favorites",
        "verification_mode": request.app.state.verification_mode,
        "cached_tokens": len(cache) if cache is not None else 0,
    }
