from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Leave Ledger"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leave_ledger:leave_ledger@db:5432/leave_ledger"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Adjudication
    escalation_grace_hours: int = 48
    group_override_tiebreak: Literal["most_recent", "highest", "lowest"] = "most_recent"

    # Accrual / carryover
    plan_year_start_month: int = 1
    daily_jobs_hour_utc: int = 0

    # Integration delivery
    integration_max_attempts: int = 5
    integration_backoff_base_seconds: int = 60
    integration_backoff_max_seconds: int = 3600
    integration_batch_size: int = 50
    integration_timeout_seconds: float = 10.0
    integration_sent_timeout_seconds: int = 600
    sync_poll_interval_seconds: int = 30
    payroll_sync_url: str | None = None
    time_sync_url: str | None = None


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
