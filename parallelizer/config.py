"""
Application configuration using Pydantic Settings.
Loads configuration from PARALLELIZER_* environment variables with sensible defaults.
"""

import socket
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PARALLELIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Status ledger
    ledger_backend: Literal["dynamodb", "sql"] = "dynamodb"
    dynamodb_table: str = "parallelizer"
    database_url: str = "sqlite+aiosqlite:///parallelizer.db"

    # Queue
    sqs_prefix: str = "parallelizer_"

    # Job archive (disabled unless a bucket is set)
    s3_bucket: str | None = None
    s3_key_prefix: str = ""

    # AWS
    aws_region: str | None = None
    aws_endpoint_url: str | None = None

    # Worker Configuration
    worker_id: str = Field(default_factory=socket.gethostname)
    visibility_timeout_seconds: int = Field(default=30, ge=2, le=43200)
    poll_interval_seconds: float = Field(default=1.0, ge=0)
    ci_annotations: bool = False

    # Enqueue Configuration
    enqueue_batch_size: int = Field(default=10, ge=1, le=10)
    enqueue_concurrency: int = Field(default=2, ge=1)

    # Observability
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "parallelizer"
    metrics_textfile: str | None = None
    log_level: str = "INFO"
    log_format: str = "console"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
