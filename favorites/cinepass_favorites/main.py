"""CinePass favorites service.

A small FastAPI service whose routes are protected by tokens issued by the
auth service. Tokens are verified through the auth service unless
TOKEN_VERIFICATION_MODE=local.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cinepass_favorites.auth import register_exception_handlers
from cinepass_favorites.config import Settings, settings
from cinepass_favorites.routes import health_router, router
from cinepass_favorites.validation_cache import ValidationCache
from cinepass_favorites.verification import (
    Identity,
    LocalTokenVerifier,
    TokenVerifier,
    VerificationBridge,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def _check_security_configuration(config: Settings) -> None:
    """Abort startup when the selected verification mode cannot work."""
    if config.token_verification_mode == "local":
        if not config.jwt_secret_key:
            logger.error("STARTUP FATAL: TOKEN_VERIFICATION_MODE=local requires JWT_SECRET_KEY")
            raise SystemExit("Favorites startup aborted due to configuration errors.")
        logger.warning(
            "SECURITY: TOKEN_VERIFICATION_MODE=local. Tokens are checked by signature "
            "and expiry only; revoked tokens stay usable until they expire."
        )


def build_verifier(config: Settings) -> TokenVerifier:
    """Create the token verifier for the configured mode."""
    if config.token_verification_mode == "local":
        return LocalTokenVerifier(config.jwt_secret_key, config.jwt_algorithm)

    cache: ValidationCache[Identity] = ValidationCache(
        ttl_seconds=config.validation_cache_ttl_seconds,
        max_entries=config.validation_cache_max_entries,
    )
    return VerificationBridge(
        config.auth_service_url,
        cache,
        timeout=config.auth_validation_timeout,
    )


async def _cache_sweep_loop(cache: ValidationCache[Identity], interval: float) -> None:
    """Periodically drop expired entries from the validation cache."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = cache.sweep()
            if removed:
                logger.debug(f"Swept {removed} expired validation cache entries")
        except Exception:
            logger.exception("Error sweeping validation cache")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config: Settings = app.state.settings
    logger.info(
        f"Favorites service starting up (token verification: {app.state.verification_mode})"
    )

    verifier = app.state.verifier
    sweep_task = None
    if isinstance(verifier, VerificationBridge):
        sweep_task = asyncio.create_task(
            _cache_sweep_loop(verifier.cache, config.validation_cache_sweep_seconds),
            name="validation-cache-sweep",
        )

    yield

    logger.info("Favorites service shutting down")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    if isinstance(verifier, VerificationBridge):
        await verifier.close()


def create_app(
    config: Settings | None = None,
    verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create the favorites app; a verifier can be injected for tests."""
    config = config or settings

    app = FastAPI(
        title=config.app_name,
        description="Favorites service protected by CinePass access tokens",
        version=config.app_version,
        lifespan=lifespan,
    )
    app.state.settings = config
    if verifier is None:
        _check_security_configuration(config)
        verifier = build_verifier(config)
    app.state.verifier = verifier
    app.state.verification_mode = (
        "local" if isinstance(verifier, LocalTokenVerifier) else "remote"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(router)
    return app


app = create_app()
