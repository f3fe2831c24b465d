"""Pytest configuration and fixtures for favorites service tests."""

import os

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("AUTH_SERVICE_URL", "http://auth.test")
os.environ.setdefault("TOKEN_VERIFICATION_MODE", "remote")
os.environ.setdefault("LOG_LEVEL", "WARNING")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
