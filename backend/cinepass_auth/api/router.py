"""CinePass auth API router - aggregates all API routes."""

from fastapi import APIRouter

from cinepass_auth.api import auth, profile

# Main API router - all routes will be prefixed with /api
api_router = APIRouter(prefix="/api")

api_router.include_router(auth.router)
api_router.include_router(profile.router)
