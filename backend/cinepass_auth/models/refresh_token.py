"""Opaque refresh tokens, one row per logged-in device."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from cinepass_auth.core.database import Base
from cinepass_auth.models.base import utcnow


class RefreshToken(Base):
    """An issued refresh token.

    The token value is random and carries no claims. Holding an unexpired
    row's value is what allows minting a new access token for user_id.
    Rows are deleted on logout, logout-all, use after expiry, and by the
    periodic sweep.
    """

    __tablename__ = "refresh_tokens"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<RefreshToken user={self.user_id} expires={self.expires_at}>"
