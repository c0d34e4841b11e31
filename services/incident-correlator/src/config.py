"""
TicketLink - Incident Correlator Configuration
==============================================

Centralized configuration using Pydantic Settings.
All values come from environment variables (or `.env`) with defaults
suitable for a read-only local run.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service identification
    service_name: str = Field(default="incident-correlator")
    service_version: str = Field(default="0.1.0")

    # Server configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8010)
    debug: bool = Field(default=False)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(default=True, description="Output logs as JSON")

    # Ticket store (Zendesk)
    zendesk_subdomain: str = Field(default="", description="Zendesk account subdomain")
    zendesk_email: str = Field(default="", description="Agent email used for API token auth")
    zendesk_api_token: SecretStr = Field(default=SecretStr(""))
    live_mode: bool = Field(
        default=False,
        description="Write links and notes to the store; dry-run logs them instead"
    )
    request_timeout_seconds: float = Field(default=30.0)
    rate_limit_max_attempts: int = Field(
        default=5,
        description="Attempts per store call when the store answers 429"
    )
    rate_limit_default_wait_seconds: int = Field(
        default=30,
        description="Wait used when a 429 carries no Retry-After header"
    )
    problem_page_size: int = Field(default=25)
    candidate_page_size: int = Field(default=100)

    # Issue tracker
    jira_browse_url: str = Field(
        default="https://jira.example.com/browse",
        description="Base URL used to render linked issue keys"
    )

    # Correlation loop
    poll_interval_seconds: int = Field(default=30, description="Seconds between cycle starts")
    polling_enabled: bool = Field(default=True)
    candidate_window_minutes: int = Field(
        default=120,
        description="Lookback window for candidate tickets"
    )
    recent_event_limit: int = Field(
        default=200,
        description="Audit events kept in memory for the API"
    )

    def zendesk_configured(self) -> bool:
        return bool(
            self.zendesk_subdomain
            and self.zendesk_email
            and self.zendesk_api_token.get_secret_value()
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once and reused for the lifetime of the process.
    """
    return Settings()
