"""
Core configuration module using Pydantic Settings.

Handles all application configuration with validation and type safety.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    All settings are loaded from environment variables (prefixed with
    ``SYSMON_``) or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYSMON_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    app_name: str = Field(
        default="System Monitor History Store", description="Application name"
    )
    app_env: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # API Configuration
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 route prefix")
    host: str = Field(default="127.0.0.1", description="API host")
    port: int = Field(default=8765, description="API port")
    cors_origins: List[str] = Field(
        default=["http://localhost:1420", "tauri://localhost"],
        description="Allowed CORS origins",
    )

    # Storage Configuration
    database_path: str = Field(
        default="data/system_monitoring.db", description="SQLite database file"
    )
    db_busy_timeout: float = Field(
        default=30.0,
        ge=0,
        le=300,
        description="Seconds a connection waits on a locked database",
    )
    db_echo: bool = Field(
        default=False, description="Echo SQL statements (for debugging)"
    )

    # Query / Export Configuration
    query_max_records: int = Field(
        default=100_000,
        ge=1,
        description="Maximum snapshots materialized by a single range query",
    )
    export_dir: str = Field(default="exports", description="CSV export directory")
    export_batch_size: int = Field(
        default=500, ge=1, le=100_000, description="Rows fetched per export batch"
    )

    # Retention
    retention_enabled: bool = Field(
        default=True, description="Enable scheduled pruning of old snapshots"
    )
    retention_days: int = Field(
        default=7, ge=0, le=3650, description="Days of history to keep"
    )
    retention_interval_minutes: int = Field(
        default=60, ge=1, le=10080, description="Minutes between retention runs"
    )
    scheduler_timezone: str = Field(
        default="UTC", description="Timezone for task scheduler"
    )

    # Logging
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file_path: str = Field(default="logs/app.log", description="Path to log file")
    log_file_max_bytes: int = Field(
        default=10485760, description="Maximum log file size in bytes"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )

    @field_validator("app_env")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of allowed values."""
        allowed = ["development", "staging", "production", "test"]
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the SQLite store file."""
        if self.database_path == ":memory:":
            return "sqlite://"
        return f"sqlite:///{Path(self.database_path).expanduser().resolve()}"

    @property
    def export_path(self) -> Path:
        """Absolute export directory."""
        return Path(self.export_dir).expanduser().resolve()

    def get_sqlalchemy_engine_config(self) -> dict[str, Any]:
        """
        Get SQLAlchemy engine configuration.

        SQLite connections are opened per checkout; ``check_same_thread`` is
        disabled because sessions are used from scheduler and request threads.
        """
        return {
            "echo": self.db_echo,
            "connect_args": {
                "timeout": self.db_busy_timeout,
                "check_same_thread": False,
            },
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    """
    return Settings()
