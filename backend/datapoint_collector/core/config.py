"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/datapoint_collector/core/config.py
# Project root is: backend/datapoint_collector/core/../../../
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: try in backend/ directory if not found in project root
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Datapoint Collector"
    app_env: str = Field(default="development", description="Application environment")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8080, ge=1, le=65535, description="API port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_sqlalchemy: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"datapoint_collector.services": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/datapoint-collector.log",
        description="Path to log file (relative to project root)"
    )
    log_file_rotation: str = Field(
        default="midnight",
        description="Log file rotation: 'midnight' or weekly 'W0'..'W6'"
    )
    log_file_retention: int = Field(
        default=30,
        ge=1,
        description="Number of rotated log files to keep"
    )
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (passwords, tokens) - NOT RECOMMENDED"
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./datapoints.db",
        description="SQLAlchemy URL of the time-series store"
    )
    database_pool_size: int = Field(default=10, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")
    database_auto_create: bool = Field(
        default=True,
        description="Create the accepted/rejected tables on startup if missing"
    )
    query_stream_batch_size: int = Field(
        default=500,
        ge=1,
        description="Rows fetched per round-trip while streaming query results"
    )

    # Producer (data server)
    producer_url: str = Field(
        default="http://localhost:28462",
        description="URL answering GET with one datapoint"
    )
    producer_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single producer request (seconds)"
    )

    # Collection
    collector_enabled: bool = Field(default=True, description="Start the periodic collector with the API")
    poll_interval_ms: int = Field(
        default=1000,
        ge=1,
        description="Interval between two collections (milliseconds)"
    )
    admission_max_age_seconds: int = Field(
        default=3600,
        ge=0,
        description="Datapoints older than this are rejected as stale"
    )
    admission_blocked_tags: str = Field(
        default="system,suspect",
        description="Tags rejecting a datapoint (comma-separated, case-sensitive)"
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only json and text formats are supported"""
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()

    @property
    def poll_interval_seconds(self) -> float:
        """Poll interval as seconds"""
        return self.poll_interval_ms / 1000.0

    @property
    def blocked_tags_list(self) -> List[str]:
        """Parse blocked tags from comma-separated string"""
        return [tag.strip() for tag in self.admission_blocked_tags.split(",") if tag.strip()]

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
