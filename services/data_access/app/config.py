"""Data-access client configuration via environment variables."""

import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Data-access client configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DATA_ACCESS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Client settings
    client_name: str = "data-access"
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Upstream API
    base_url: str = "http://localhost:8000"
    api_version: str = "v1"
    request_timeout: float = 30.0  # seconds
    send_request_id: bool = True

    # Retry/backoff for transient failures
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0

    # Response cache
    cache_default_ttl: float = 300.0  # 5 minutes
    cache_max_entries: int = 1000
    cache_mirror_enabled: bool = False
    cache_mirror_path: str = ".cache/data-access"
    cache_mirror_prefix: str = "api_cache_"

    # Session storage keys
    access_token_key: str = "access_token"
    refresh_token_key: str = "refresh_token"
    user_key: str = "user"
    expires_at_key: str = "token_expires_at"
    login_timestamp_key: str = "login_timestamp"
    session_path: str = ".session/credentials.json"

    # Token lifecycle
    token_expiry_buffer_minutes: int = 5
    default_token_lifetime: float = 900.0  # used when the server sends no expiry
    auto_refresh_tokens: bool = True
    login_path: str = "/login"

    # Field naming conventions
    client_convention: str = "camel"
    server_convention: str = "snake"
    transform_preserve_keys: list[str] = Field(default_factory=lambda: ["sortBy", "sortOrder"])
    transform_skip_patterns: list[str] = Field(
        default_factory=lambda: [
            "/health",
            "/api/reports/*/download",
            "/api/reports/bulk-download",
        ]
    )

    # Long-running job polling
    poll_interval: float = 2.0
    poll_max_attempts: int = 150

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value.rstrip("/")

    @field_validator("request_timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("request_timeout must be at least 1 second")
        return value

    @field_validator("api_version")
    @classmethod
    def _check_api_version(cls, value: str) -> str:
        if not re.match(r"^v\d+$", value):
            raise ValueError("api_version must look like 'v1'")
        return value

    @field_validator("client_convention", "server_convention")
    @classmethod
    def _check_convention(cls, value: str) -> str:
        value = value.lower()
        if value not in {"camel", "snake"}:
            raise ValueError("naming convention must be 'camel' or 'snake'")
        return value

    def should_skip_transformation(self, path: str) -> bool:
        """Check whether a request path bypasses field-name transformation.

        Patterns use `*` as a single path segment wildcard.
        """
        path = path.split("?", 1)[0]
        for pattern in self.transform_skip_patterns:
            regex = "^" + re.escape(pattern).replace(r"\*", "[^/]+") + "$"
            if re.match(regex, path):
                return True
        return False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
