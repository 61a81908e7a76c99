"""Configuration management for appbridge."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from appbridge.types import LogLevel


class Settings(BaseSettings):
    """Runtime settings, read from `APPBRIDGE_*` environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="APPBRIDGE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Level for appbridge's own log output")
    backend_log_level: str = Field(default="info", description="Minimum level for native backend records")
    frontend_log_level: str = Field(default="info", description="Minimum level for hosted frontend records")
    capture_backend_logs: bool = Field(default=True, description="Capture the native backend log stream")
    capture_frontend_logs: bool = Field(default=True, description="Capture the hosted frontend console stream")
    framework_label: str | None = Field(default=None, description="Label used in log tags, defaults to framework")
    log_dir: Path | None = Field(default=None, description="Base directory for standalone log files")

    # Sink Configuration
    sink_retry_attempts: int = Field(default=3, ge=1, description="Write attempts per record before giving up")
    sink_retry_backoff_seconds: float = Field(default=0.05, ge=0, description="Initial retry backoff")
    sink_queue_size: int = Field(default=0, ge=0, description="Pending record limit, 0 for unbounded")

    # Execution Configuration
    execute_timeout_seconds: float = Field(default=30.0, gt=0, description="Default execute/invoke timeout")

    # Discovery Configuration
    cache_binaries: bool = Field(default=True, description="Cache discovery results for the session")

    @field_validator("backend_log_level", "frontend_log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        return LogLevel.parse(value).label

    @property
    def backend_level(self) -> LogLevel:
        return LogLevel.parse(self.backend_log_level)

    @property
    def frontend_level(self) -> LogLevel:
        return LogLevel.parse(self.frontend_log_level)


def get_settings(**overrides: object) -> Settings:
    """Build a settings instance, applying keyword overrides on top of the environment."""

    return Settings(**overrides)
