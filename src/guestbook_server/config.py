"""Configuration management for the guestbook server."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCORE_THRESHOLD = 0.5


def _split_csv(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def mask_secret(secret: SecretStr | None) -> str:
    """Render a secret for log output without revealing it."""
    if secret is None:
        return "<not set>"
    raw = secret.get_secret_value()
    if not raw:
        return "<not set>"
    if len(raw) <= 8:
        return "<masked>"
    return f"{raw[:4]}...{raw[-4:]}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # .env.local wins over .env for local development
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",  # nosec B104 - Intentional for Docker container
        description="Bind host",
    )
    port: int = Field(default=8080, description="Listen port")
    environment: str = Field(default="production", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of rotated log files to keep"
    )

    # Akismet (optional spam reputation)
    akismet_api_key: SecretStr | None = Field(default=None, description="Akismet API key")
    akismet_site_url: str = Field(default="", description="Site URL registered with Akismet")

    # reCAPTCHA v3 (human verification)
    recaptcha_secret_key: SecretStr | None = Field(
        default=None, description="reCAPTCHA secret key; unset disables verification"
    )
    recaptcha_score_threshold: float = Field(
        default=DEFAULT_SCORE_THRESHOLD, description="Minimum accepted reCAPTCHA score"
    )
    recaptcha_action: str = Field(
        default="submit", description="Action label the frontend must send"
    )

    # GitHub (entry publishing)
    github_token: SecretStr | None = Field(
        default=None, description="GitHub token used to open entry pull requests"
    )
    github_owner: str = Field(default="", description="Owner of the site repository")
    github_repo: str = Field(default="", description="Name of the site repository")
    github_branch: str = Field(default="main", description="Base branch for pull requests")
    github_api_url: str = Field(
        default="https://api.github.com", description="GitHub API base URL (for enterprise)"
    )

    # CORS / redirects
    allowed_origins_str: str | None = Field(
        default=None,
        alias="ALLOWED_ORIGINS",
        description="Origins allowed to call the API (comma-separated)",
    )
    allowed_redirect_domains_str: str | None = Field(
        default=None,
        alias="ALLOWED_REDIRECT_DOMAINS",
        description="Hostnames the submission may redirect to (comma-separated)",
    )

    # Rate limiting
    rate_limit_requests: int = Field(default=10, description="Requests allowed per window")
    rate_limit_window: int = Field(default=60, description="Rate limit window in seconds")
    rate_limit_sweep_interval: float = Field(
        default=600.0, description="Seconds between idle bucket sweeps"
    )
    trust_forwarded_for: bool = Field(
        default=False, description="Key rate limits on the first X-Forwarded-For hop"
    )

    # Outbound calls
    upstream_timeout_seconds: float = Field(
        default=10.0, description="Timeout for each verification/spam/publish stage"
    )

    @property
    def allowed_origins(self) -> list[str]:
        """Parse and return allowed CORS origins."""
        return _split_csv(self.allowed_origins_str)

    @property
    def allowed_redirect_domains(self) -> list[str]:
        """Parse and return allowed redirect hostnames (lowercased)."""
        return [d.lower() for d in _split_csv(self.allowed_redirect_domains_str)]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def github_configured(self) -> bool:
        """True when a token, owner and repo are all present."""
        token = self.github_token.get_secret_value() if self.github_token else ""
        return bool(token and self.github_owner and self.github_repo)

    @field_validator("akismet_api_key", "recaptcha_secret_key", "github_token", mode="before")
    @classmethod
    def empty_secret_is_unset(cls, v: object) -> object:
        """Treat an empty secret as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("recaptcha_score_threshold")
    @classmethod
    def validate_score_threshold(cls, v: float) -> float:
        """Fall back to the default threshold when unset or non-positive."""
        if v <= 0:
            return DEFAULT_SCORE_THRESHOLD
        if v > 1:
            raise ValueError(f"recaptcha_score_threshold must be at most 1, got: {v}")
        return v

    @field_validator("rate_limit_requests", "rate_limit_window")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Rate limit parameters must be positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator("upstream_timeout_seconds", "rate_limit_sweep_interval")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        """Intervals must be positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
