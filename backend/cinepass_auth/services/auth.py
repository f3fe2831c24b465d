"""Authentication service: credential checks and the token lifecycle."""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinepass_auth.core import settings
from cinepass_auth.core.logging import get_logger
from cinepass_auth.models import User
from cinepass_auth.models.base import as_utc
from cinepass_auth.services.revocation import RevocationLedger
from cinepass_auth.services.tokens import (
    TokenRejected,
    create_access_token,
    decode_access_token,
    generate_refresh_token,
)

logger = get_logger("auth")

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)


class AuthError(Exception):
    """Base authentication error."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid email or password."""

    pass


class UserExistsError(AuthError):
    """Username or email already registered."""

    pass


class UserNotFoundError(AuthError):
    """The account behind a valid token no longer exists."""

    pass


class RefreshTokenError(AuthError):
    """Refresh token cannot be exchanged for an access token."""

    pass


class RefreshTokenInvalidError(RefreshTokenError):
    """Refresh token is unknown (never issued, logged out, or swept)."""

    pass


class RefreshTokenExpiredError(RefreshTokenError):
    """Refresh token is past its expiry."""

    pass


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except (VerifyMismatchError, InvalidHashError):
        return False


# Computed once so unknown-email logins cost the same as wrong-password ones
_DUMMY_HASH = hash_password("cinepass-dummy-password")


class AuthService:
    """Token issuer and refresh/revocation operations for one DB session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.ledger = RevocationLedger(session)

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(self, username: str, email: str, password: str) -> User:
        """Register a user in the credential store."""
        result = await self.session.execute(
            select(User.id).where((User.email == email.lower()) | (User.username == username))
        )
        if result.first() is not None:
            raise UserExistsError("User already exists!")

        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(username=username, email=email.lower(), password_hash=password_hash)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"Registered user: {username}")
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Check credentials and return the user.

        Raises InvalidCredentialsError for both "user not found" and
        "wrong password" to prevent user enumeration.
        """
        user = await self.get_user_by_email(email)

        if user is None:
            await asyncio.to_thread(verify_password, password, _DUMMY_HASH)
            raise InvalidCredentialsError("Invalid credentials")

        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")

        return user

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    async def update_username(self, user_id: uuid.UUID, username: str) -> User:
        """Rename a user. Access tokens already issued keep the old name until they expire."""
        user = await self._require_user(user_id)
        result = await self.session.execute(
            select(User.id).where(User.username == username, User.id != user_id)
        )
        if result.first() is not None:
            raise UserExistsError("Username is already taken")

        user.username = username
        await self.session.commit()
        await self.session.refresh(user)
        logger.info(f"User {user_id} changed username to {username}")
        return user

    async def change_password(
        self, user_id: uuid.UUID, current_password: str, new_password: str
    ) -> None:
        """Replace a user's password after checking the current one."""
        user = await self._require_user(user_id)
        if not await asyncio.to_thread(verify_password, current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        user.password_hash = await asyncio.to_thread(hash_password, new_password)
        await self.session.commit()
        logger.info(f"User {user_id} changed password")

    async def delete_user(self, user_id: uuid.UUID, current_access_token: str) -> None:
        """Delete an account together with its refresh tokens.

        The presenting access token is revoked; other access tokens fail at
        /me and similar lookups once the user row is gone.
        """
        user = await self._require_user(user_id)
        await self.ledger.delete_refresh_tokens_for_user(user_id)
        await self.revoke_access(current_access_token)
        await self.session.delete(user)
        await self.session.commit()
        logger.info(f"Deleted user {user_id}")

    # ------------------------------------------------------------------
    # Token issuer
    # ------------------------------------------------------------------

    async def issue_tokens(self, user: User, *, now: datetime | None = None) -> IssuedTokens:
        """Mint an access token and persist a new refresh token for a user."""
        now = now or datetime.now(UTC)
        refresh_expires_at = now + timedelta(days=settings.refresh_token_expire_days)
        access_token = create_access_token(str(user.id), user.username, now=now)
        refresh_token = generate_refresh_token()

        await self.ledger.add_refresh_token(refresh_token, user.id, refresh_expires_at)
        removed = await self.ledger.delete_expired_refresh_tokens_for_user(user.id, now)
        await self.session.commit()

        if removed:
            logger.debug(f"Removed {removed} expired refresh tokens for {user.username}")
        return IssuedTokens(access_token, refresh_token, refresh_expires_at)

    async def rotate_access(
        self, refresh_token: str, *, now: datetime | None = None
    ) -> tuple[str, User]:
        """Exchange a refresh token for a new access token.

        The refresh token is not consumed; it stays usable until it expires
        or is deleted by logout.
        """
        now = now or datetime.now(UTC)
        row = await self.ledger.get_refresh_token(refresh_token)
        if row is None:
            raise RefreshTokenInvalidError("Invalid refresh token")

        if as_utc(row.expires_at) < now:
            await self.ledger.delete_refresh_token(refresh_token)
            await self.session.commit()
            raise RefreshTokenExpiredError("Refresh token expired")

        user = await self.get_user_by_id(row.user_id)
        if user is None:
            raise RefreshTokenInvalidError("Invalid refresh token")

        return create_access_token(str(user.id), user.username, now=now), user

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    async def revoke_access(self, access_token: str, *, now: datetime | None = None) -> bool:
        """Add an access token to the revocation ledger, best effort.

        Tokens that cannot be decoded are skipped rather than raising, so a
        logout with a damaged token still completes. Already-expired tokens
        are skipped too; their own exp claim rejects them.
        """
        decoded = decode_access_token(access_token, verify_expiry=False)
        if isinstance(decoded, TokenRejected):
            logger.info(f"Skipping revocation of undecodable token: {decoded.detail}")
            return False

        if decoded.claims.is_expired(now or datetime.now(UTC)):
            return False

        return await self.ledger.revoke(access_token, decoded.claims.expires_at)

    async def logout(self, access_token: str, refresh_token: str | None = None) -> None:
        """Single-device logout: drop one refresh token, revoke the access token.

        The refresh token delete is committed on its own first, so it stands
        even if recording the revocation fails.
        """
        if refresh_token:
            await self.ledger.delete_refresh_token(refresh_token)
            await self.session.commit()
        await self.revoke_access(access_token)
        await self.session.commit()

    async def revoke_all_for_owner(self, owner_id: uuid.UUID, current_access_token: str) -> int:
        """Log a user out of every device.

        All refresh tokens go in one DELETE, committed together with the
        revocation of the current access token. Other access tokens already
        in circulation stay valid until their own expiry.
        """
        removed = await self.ledger.delete_refresh_tokens_for_user(owner_id)
        await self.revoke_access(current_access_token)
        await self.session.commit()

        logger.info(f"Revoked {removed} refresh tokens for user {owner_id}")
        return removed

    async def cleanup_expired_tokens(self, *, now: datetime | None = None) -> tuple[int, int]:
        """Remove expired ledger rows. Returns (revoked_removed, refresh_removed)."""
        counts = await self.ledger.purge_expired(now)
        await self.session.commit()
        return counts
