"""Revocation ledger: revoked access tokens and live refresh tokens.

Both tables are the only durable shared state of the session system. Every
write is a single-row insert/delete except delete_refresh_tokens_for_user,
which is one DELETE statement so an owner's sessions disappear together.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from cinepass_auth.core.logging import get_logger
from cinepass_auth.models import RefreshToken, RevokedToken

logger = get_logger("revocation")


class RevocationLedger:
    """Database access for revoked access tokens and refresh tokens."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Revoked access tokens
    # ------------------------------------------------------------------

    async def is_revoked(self, token: str) -> bool:
        """Check whether this exact access token string has been revoked.

        Rows past their expiry may still be present until the next sweep;
        treating them as revoked is harmless because the token fails its
        own expiry check anyway.
        """
        result = await self.session.execute(
            select(RevokedToken.token).where(RevokedToken.token == token)
        )
        return result.scalar_one_or_none() is not None

    async def revoke(self, token: str, expires_at: datetime) -> bool:
        """Record an access token as revoked.

        Returns False when the token was already revoked. Duplicates are
        ignored by the database so that two concurrent logouts with the
        same token both succeed without aborting the transaction.
        """
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            if await self.session.get(RevokedToken, token) is not None:
                return False
            self.session.add(RevokedToken(token=token, expires_at=expires_at))
            await self.session.flush()
            return True

        stmt = (
            insert(RevokedToken)
            .values(token=token, expires_at=expires_at)
            .on_conflict_do_nothing(index_elements=[RevokedToken.token])
        )
        result: CursorResult[Any] = await self.session.execute(stmt)  # type: ignore[assignment]
        if result.rowcount == 0:
            logger.debug("Access token was already revoked")
            return False
        return True

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    async def add_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> RefreshToken:
        row = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_refresh_token(self, token: str) -> RefreshToken | None:
        result = await self.session.execute(
            select(RefreshToken).where(RefreshToken.token == token)
        )
        return result.scalar_one_or_none()

    async def delete_refresh_token(self, token: str) -> int:
        """Delete one refresh token by value. Returns rows removed (0 or 1)."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken)
            .where(RefreshToken.token == token)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_refresh_tokens_for_user(self, user_id: uuid.UUID) -> int:
        """Delete every refresh token of a user in one statement."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_expired_refresh_tokens_for_user(
        self, user_id: uuid.UUID, now: datetime | None = None
    ) -> int:
        now = now or datetime.now(UTC)
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken).where(
                RefreshToken.user_id == user_id,
                RefreshToken.expires_at < now,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def purge_expired(self, now: datetime | None = None) -> tuple[int, int]:
        """Delete expired revoked and refresh rows.

        Returns (revoked_removed, refresh_removed).
        """
        now = now or datetime.now(UTC)
        revoked: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RevokedToken)
            .where(RevokedToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        refresh: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(RefreshToken)
            .where(RefreshToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return revoked.rowcount, refresh.rowcount
