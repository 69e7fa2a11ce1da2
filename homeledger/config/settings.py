"""
Configuration Management for Home Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirestoreSettings(BaseSettings):
    """Remote authoritative store (Cloud Firestore) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIRESTORE_",
        extra="ignore"
    )

    project_id: str = Field(
        ...,
        description="Google Cloud project that hosts the Firestore database"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account JSON file (ADC is used when unset)"
    )
    database: str = Field(
        default="(default)",
        description="Firestore database name"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firestore credentials file not found at {v}. "
                "Make sure it exists before connecting."
            )
        return v


class LocalMirrorSettings(BaseSettings):
    """Offline local mirror configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_MIRROR_",
        extra="ignore"
    )

    directory: str = Field(
        default=".homeledger",
        description="Directory holding one JSON file per mirror key"
    )


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

    # Environment
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
        description="Logging level"
    )

    # Household defaults
    default_currency: str = Field(
        default="₪",
        description="Currency symbol for newly created households"
    )

    # Remote writes
    write_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="How long to wait for the remote store to acknowledge a write"
    )

    # Derived views
    recent_entries_limit: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Default number of entries shown in the recent list"
    )


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def firestore(self) -> FirestoreSettings:
        return FirestoreSettings()

    @property
    def local_mirror(self) -> LocalMirrorSettings:
        return LocalMirrorSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.firestore
        results["firestore"] = True
    except Exception as e:
        results["firestore"] = False
        results["firestore_error"] = str(e)

    try:
        _ = settings.local_mirror
        results["local_mirror"] = True
    except Exception as e:
        results["local_mirror"] = False
        results["local_mirror_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
