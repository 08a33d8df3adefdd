"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Themis Workflow"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # API
    api_prefix: str = "/api/v1"
    allowed_origins_str: str = Field(
        default="http://localhost:3000",
        alias="ALLOWED_ORIGINS"
    )

    @property
    def allowed_origins(self) -> list[str]:
        """Parse allowed origins from a comma separated string."""
        return [o.strip() for o in self.allowed_origins_str.split(",") if o.strip()]

    # Persistence (key-value table for notifications and dedupe ledger)
    database_url: str = Field(default="sqlite:///./themis_workflow.db")
    database_echo: bool = False  # Log SQL queries

    # Notification poller
    notification_poll_interval_seconds: float = Field(default=60.0, gt=0)

    # Rule windows
    weekly_update_weekday: int = Field(default=3, ge=0, le=6)  # Monday=0, Thursday=3
    meeting_reminder_minutes: int = Field(default=15, ge=1)
    assignment_reminder_hours: int = Field(default=1, ge=1)
    deadline_reminder_hours: int = Field(default=24, ge=1)
    deadline_reminder_window_hours: int = Field(default=1, ge=1)

    # Notification store
    max_notifications_per_user: int = Field(default=50, ge=1)
    deduplicate_notifications: bool = False

    # Alerting for failed poller ticks
    alert_webhook_url: str | None = Field(default=None, alias="ALERT_WEBHOOK_URL")
    slack_alerts_webhook_url: str | None = Field(default=None, alias="SLACK_ALERTS_WEBHOOK_URL")

    @property
    def alerting_enabled(self) -> bool:
        """Check if any alert channel is configured."""
        return bool(self.alert_webhook_url or self.slack_alerts_webhook_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
