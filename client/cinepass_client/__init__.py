"""CinePass client: token session handling for calling CinePass services."""

from cinepass_client.errors import (
    AuthenticationError,
    NotAuthenticatedError,
    RefreshRejectedError,
    SessionError,
)
from cinepass_client.session_manager import SessionManager, read_unverified_claims
from cinepass_client.single_flight import SingleFlight
from cinepass_client.token_store import FileTokenStore, MemoryTokenStore, StoredSession

__all__ = [
    "AuthenticationError",
    "FileTokenStore",
    "MemoryTokenStore",
    "NotAuthenticatedError",
    "RefreshRejectedError",
    "SessionError",
    "SessionManager",
    "SingleFlight",
    "StoredSession",
    "read_unverified_claims",
]
