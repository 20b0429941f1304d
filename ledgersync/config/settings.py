"""
Configuration Management for ledgersync

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here:
1. Sync behaviour (timer interval, remote call timeout, push strategy)
2. Firestore connection details
3. Application-level switches (environment, log level)
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Synchronization engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    auto_sync_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Interval of the periodic timer that retries pending changes"
    )
    remote_call_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound for any single remote call"
    )
    push_strategy: Literal["all", "pending"] = Field(
        default="pending",
        description=(
            "'all' upserts every local transaction on each full sync, "
            "'pending' upserts only transactions with unconfirmed changes"
        )
    )
    local_store_path: str = Field(
        default="ledgersync_data.json",
        description="Path of the on-disk local transaction store"
    )


class FirestoreSettings(BaseSettings):
    """Firestore remote transaction service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project hosting the Firestore database"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description=(
            "Path to a service account credentials JSON. "
            "Application default credentials are used when unset."
        )
    )
    users_collection: str = Field(
        default="users",
        description="Top-level collection holding one document per user"
    )
    transactions_collection: str = Field(
        default="transactions",
        description="Per-user sub-collection holding transaction documents"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firestore credentials file not found at {v}. "
                "Make sure it exists before running the sync service."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for the structured log"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a host without Firestore
    # configured can still run against local/in-memory backends.

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry holding the message for each failure.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("sync", "firestore", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
