"""
Single source of truth for application configuration.
All settings are typed and loaded from environment variables.
"""
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    All settings have sensible defaults for local development
    (SQLite file under ./data, server on 0.0.0.0:8080).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # === Server ===
    HOST: str = Field(
        default="0.0.0.0",
        description="Bind address for the HTTP server"
    )
    PORT: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Bind port for the HTTP server"
    )
    ALLOWED_ORIGIN_REGEX: str = Field(
        default=".*",
        description="CORS origin pattern (matching origins are echoed back)"
    )
    SERIALIZE_REQUESTS: bool = Field(
        default=True,
        description="Run every store call under one exclusive lock"
    )

    # === Database ===
    DATABASE_URL: str = Field(
        default="sqlite:///./data/tablekv.db",
        description="SQLAlchemy database URL"
    )
    DB_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Backend busy/connect timeout"
    )
    DB_POOL_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a pooled connection"
    )
    MAX_VALUE_LENGTH: int = Field(
        default=1_048_576,
        ge=1,
        description="Maximum stored value length in characters"
    )

    # === Logging ===
    LOG_LEVEL: str = Field(
        default="DEBUG",
        description="Root log level"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept any casing and reject unknown level names."""
        level = v.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured backend is SQLite."""
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This is the single entry point for all configuration.
    The LRU cache ensures we only parse env vars once.
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Force reload settings from environment.
    Useful for testing or when env vars change at runtime.
    """
    get_settings.cache_clear()
    return get_settings()
