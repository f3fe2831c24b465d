"""Errors raised by the CinePass client session manager."""


class SessionError(Exception):
    """Base error for client session failures."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(SessionError):
    """Credentials or tokens were rejected; local session state is cleared."""

    pass


class RefreshRejectedError(SessionError):
    """The refresh token could not be exchanged; local session state is cleared."""

    pass


class NotAuthenticatedError(SessionError):
    """No session is held; log in first."""

    pass
