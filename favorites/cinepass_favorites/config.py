"""CinePass favorites service configuration, loaded from the environment."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Favorites service settings.

    TOKEN_VERIFICATION_MODE selects how bearer tokens are checked:
    "remote" asks the auth service (revocation-aware), "local" only checks
    the signature and expiry with JWT_SECRET_KEY.
    """

    app_name: str = "CinePass Favorites"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    auth_service_url: str = "http://localhost:5001"
    auth_validation_timeout: float = 5.0

    validation_cache_ttl_seconds: float = 60.0
    validation_cache_max_entries: int = 10_000
    validation_cache_sweep_seconds: float = 300.0

    token_verification_mode: Literal["remote", "local"] = "remote"
    # Only used in local mode
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"

    cors_origins: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator(
        "auth_validation_timeout",
        "validation_cache_ttl_seconds",
        "validation_cache_sweep_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Durations must be positive")
        return v

    @field_validator("validation_cache_max_entries")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("validation_cache_max_entries must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
