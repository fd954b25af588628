"""
config.py - Application settings

Every tunable lives here: the alert threshold table, the alert history
size, cron expressions for the built-in tasks, forecasting defaults,
SMTP delivery and logging. Values can be overridden from the environment
(or a .env file) using the HOSTWATCH_ prefix, with "__" separating nested
sections, e.g.

    HOSTWATCH_THRESHOLDS__CPU_USAGE__WARNING=60
    HOSTWATCH_SCHEDULER__METRICS_CRON="*/1 * * * *"
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThresholdLevels(BaseModel):
    """Warning/critical pair for one metric. Both compare with >=."""
    warning: float
    critical: float

    @model_validator(mode="after")
    def _warning_not_above_critical(self) -> "ThresholdLevels":
        if self.warning > self.critical:
            raise ValueError(
                f"warning threshold {self.warning} is above critical threshold {self.critical}"
            )
        return self


class ThresholdTable(BaseModel):
    """Default thresholds - cpu usage, cpu temperature, memory, disk."""
    cpu_usage: ThresholdLevels = ThresholdLevels(warning=70, critical=90)
    cpu_temperature: ThresholdLevels = ThresholdLevels(warning=70, critical=85)
    memory_usage: ThresholdLevels = ThresholdLevels(warning=75, critical=90)
    disk_usage: ThresholdLevels = ThresholdLevels(warning=80, critical=95)


class SmtpSettings(BaseModel):
    """Outgoing mail for alert notifications."""
    enabled: bool = False
    host: str = "localhost"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    sender: str = "hostwatch@localhost"
    use_tls: bool = False
    start_tls: bool = True
    timeout_seconds: float = 10.0


class SchedulerSettings(BaseModel):
    """Cron expressions and timezone for the built-in tasks."""
    timezone: str = "UTC"
    metrics_cron: str = "*/5 * * * *"
    alerts_cron: str = "*/10 * * * *"
    forecast_cron: str = "0 * * * *"
    forecast_enabled: bool = False


class ForecastSettings(BaseModel):
    sensitivity: float = Field(default=0.7, ge=0.0, le=1.0)
    horizon: str = "24h"
    window: str = "24h"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file_path: str = ""


class Settings(BaseSettings):
    """Application settings."""
    debug: bool = False
    database_url: str = "sqlite:///hostwatch.db"
    disk_path: str = "/"

    # Most-recent-N alerts kept in memory
    alert_history_size: int = Field(default=100, ge=1)
    alert_recipients: List[str] = Field(default_factory=lambda: ["admin@example.com"])

    thresholds: ThresholdTable = Field(default_factory=ThresholdTable)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    forecast: ForecastSettings = Field(default_factory=ForecastSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="HOSTWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once per process."""
    return Settings()
