"""Errors that are fatal to the auth service rather than part of a token verdict."""


class ConfigurationError(Exception):
    """The service is misconfigured and cannot serve requests."""


class SigningSecretMissingError(ConfigurationError):
    """No access token signing secret is configured."""
