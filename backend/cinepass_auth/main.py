"""CinePass auth service - FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cinepass_auth.api.error_handling import register_exception_handlers
from cinepass_auth.api.health import router as health_router
from cinepass_auth.api.router import api_router
from cinepass_auth.core import async_session_maker, settings, setup_logging
from cinepass_auth.core.database import create_tables
from cinepass_auth.core.errors import SigningSecretMissingError
from cinepass_auth.core.logging import get_logger
from cinepass_auth.services.auth import AuthService

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


def _check_security_configuration() -> None:
    """Refuse to start without a signing secret; log weaker problems."""
    try:
        settings.signing_secret
    except SigningSecretMissingError as e:
        logger.critical(f"SECURITY: {e}")
        raise SystemExit(1) from e

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")


async def run_token_cleanup() -> tuple[int, int]:
    """Delete expired revoked-token and refresh-token rows once."""
    async with async_session_maker() as db:
        revoked, refresh = await AuthService(db).cleanup_expired_tokens()
    if revoked or refresh:
        logger.info(
            f"Cleaned up {revoked} expired revoked tokens and {refresh} expired refresh tokens"
        )
    return revoked, refresh


async def _expired_token_cleanup_loop() -> None:
    """Periodically remove expired rows from the token ledgers."""
    while True:
        await asyncio.sleep(settings.token_cleanup_interval_seconds)
        try:
            await run_token_cleanup()
        except Exception:
            logger.exception("Error cleaning up expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(
        level=settings.log_level,
        format_type="dev" if settings.debug else "structured",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    _check_security_configuration()
    await create_tables()

    cleanup_task = asyncio.create_task(
        _expired_token_cleanup_loop(), name="expired-token-cleanup"
    )
    cleanup_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Token issuing and session validation for CinePass",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router)

    return app


# Application instance
app = create_app()
