"""
Configuration Management for Budget Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase Authentication and Cloud Firestore configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Firebase web API key"
    )
    project_id: str = Field(
        ...,
        description="Firebase project ID"
    )
    auth_domain: Optional[str] = Field(
        default=None,
        description="Firebase auth domain (informational)"
    )

    # REST endpoints
    identity_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Identity Toolkit REST base URL"
    )
    firestore_base_url: str = Field(
        default="https://firestore.googleapis.com/v1",
        description="Cloud Firestore REST base URL"
    )
    database_id: str = Field(
        default="(default)",
        description="Firestore database ID"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for a single backend request"
    )

    # Collection names within the database
    transactions_collection: str = Field(
        default="transactions",
        description="Collection holding transactions"
    )
    categories_collection: str = Field(
        default="categories",
        description="Collection holding categories"
    )
    audit_collection: str = Field(
        default="auditEvents",
        description="Collection holding persisted audit events"
    )

    @field_validator('api_key', 'project_id')
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Empty values are treated as missing configuration."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @property
    def documents_root(self) -> str:
        """Resource name prefix for documents in this database."""
        return f"projects/{self.project_id}/databases/{self.database_id}/documents"


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

    # Transactions
    transactions_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Default cap on transactions fetched per list call"
    )
    subscription_poll_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Polling interval for transaction subscriptions"
    )

    # Client-side throttling (advisory only)
    rate_limit_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Auth attempts allowed per window"
    )
    rate_limit_window_ms: int = Field(
        default=60000,
        ge=1,
        description="Rate limit sliding window in milliseconds"
    )
    rate_limit_store_path: str = Field(
        default=".budget_tracker/rate_limits.json",
        description="Where rate limit timestamps are kept"
    )

    # Presentation
    currency_symbol: str = Field(
        default="$",
        max_length=3,
        description="Currency symbol shown in the UI"
    )
    notification_duration_ms: int = Field(
        default=3000,
        ge=500,
        description="How long notifications stay on screen"
    )

    # Audit
    persist_audit_events: bool = Field(
        default=False,
        description="Also write audit events to the backend"
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

    # Sub-settings are loaded lazily so the app can start without Firebase

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

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
        _ = settings.firebase
        results["firebase"] = True
    except Exception as e:
        results["firebase"] = False
        results["firebase_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
