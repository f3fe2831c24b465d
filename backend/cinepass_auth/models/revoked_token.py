"""Revoked access tokens - survives process restarts."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from cinepass_auth.core.database import Base


class RevokedToken(Base):
    """An access token rejected before its natural expiry.

    Keyed by the literal token string. expires_at is copied from the
    token's exp claim; once it passes the row is dead weight and the
    sweep deletes it.
    """

    __tablename__ = "revoked_tokens"

    token: Mapped[str] = mapped_column(String(2048), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
