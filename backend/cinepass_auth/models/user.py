"""User account model - the credential store consulted at login."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from cinepass_auth.models.base import BaseModel


class User(BaseModel):
    """A site user.

    Only the password hash is stored. Sessions hang off the user as
    refresh token rows; access tokens are never persisted except when revoked.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
