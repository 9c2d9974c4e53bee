from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class ConfigError(Exception):
    """Raised when required runtime configuration is missing or invalid."""

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or []


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage
    DATABASE_URL: str | None = None
    REDIS_URL: str = "redis://localhost:6379/0"

    # Token encryption (64 hex chars = 32 bytes)
    TOKEN_ENCRYPTION_KEY: str | None = None

    # LinkedIn OAuth settings
    LINKEDIN_CLIENT_ID: str | None = None
    LINKEDIN_CLIENT_SECRET: str | None = None
    LINKEDIN_REDIRECT_URI: str | None = None
    LINKEDIN_API_VERSION: str = "202401"

    # Credential and session lifecycle
    SESSION_TTL_HOURS: int = 24
    TOKEN_REFRESH_SKEW_MINUTES: int = 5

    # Analytics sync
    SYNC_WINDOW_DAYS: int = 7
    SYNC_MAX_CONCURRENCY: int = 5
    SYNC_PRINCIPAL_TIMEOUT_SECONDS: float = 60.0
    SYNC_INTERVAL_MINUTES: int = 60
    SYNC_STALE_AFTER_MINUTES: int = 180
    SYNC_TRIGGER_TOKEN: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("TOKEN_ENCRYPTION_KEY", "LINKEDIN_CLIENT_ID", "LINKEDIN_CLIENT_SECRET")
    @classmethod
    def _strip_secret(cls, value: str | None) -> str | None:
        # Secrets pasted into consoles often pick up trailing newlines
        if value is None:
            return None
        return value.strip() or None

    def linkedin_redirect_uri(self) -> str:
        """Get LinkedIn OAuth redirect URI with fallback."""
        if self.LINKEDIN_REDIRECT_URI:
            return self.LINKEDIN_REDIRECT_URI
        return "http://localhost:8000/auth/linkedin/callback"

    def refresh_skew_ms(self) -> int:
        return self.TOKEN_REFRESH_SKEW_MINUTES * 60 * 1000

    def session_ttl_ms(self) -> int:
        return self.SESSION_TTL_HOURS * 60 * 60 * 1000

    def validate_runtime(self) -> None:
        """
        Validate configuration needed to serve traffic or run the sync worker.

        Raises:
            ConfigError: Listing every missing or invalid value
        """
        problems = []

        if not self.DATABASE_URL:
            problems.append("DATABASE_URL is not configured")
        if not self.TOKEN_ENCRYPTION_KEY:
            problems.append("TOKEN_ENCRYPTION_KEY is not configured")
        else:
            try:
                key_bytes = bytes.fromhex(self.TOKEN_ENCRYPTION_KEY)
            except ValueError:
                problems.append("TOKEN_ENCRYPTION_KEY must be a hex string")
            else:
                if len(key_bytes) != 32:
                    problems.append(
                        f"TOKEN_ENCRYPTION_KEY must decode to 32 bytes, got {len(key_bytes)}"
                    )
        if not self.LINKEDIN_CLIENT_ID:
            problems.append("LINKEDIN_CLIENT_ID is not configured")
        if not self.LINKEDIN_CLIENT_SECRET:
            problems.append("LINKEDIN_CLIENT_SECRET is not configured")

        for name in (
            "SESSION_TTL_HOURS",
            "TOKEN_REFRESH_SKEW_MINUTES",
            "SYNC_WINDOW_DAYS",
            "SYNC_MAX_CONCURRENCY",
            "SYNC_PRINCIPAL_TIMEOUT_SECONDS",
            "SYNC_INTERVAL_MINUTES",
            "SYNC_STALE_AFTER_MINUTES",
        ):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")

        if problems:
            raise ConfigError("Invalid runtime configuration: " + "; ".join(problems), problems)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 5, "timeout": 15.0})

        return config


settings = Settings()
