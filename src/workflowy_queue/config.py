"""Configuration settings for Workflowy Queue."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueConfig(BaseModel):
    """Configuration for the batching request queue.

    Controls concurrency, debounce timing, and batch size. Instances are
    frozen so a queue's configuration cannot change underneath it.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(
        default=3,
        ge=1,
        description="Maximum number of batches dispatched at once",
    )
    batch_delay_ms: int = Field(
        default=50,
        ge=0,
        description="Debounce window (ms) before the first batch after idle",
    )
    max_batch_size: int = Field(
        default=20,
        ge=1,
        description="Maximum operations pulled into a single batch",
    )


class RateLimitConfig(BaseModel):
    """Configuration for the default token bucket."""

    requests_per_second: float = Field(
        default=5.0,
        gt=0.0,
        description="Steady-state credits added per second",
    )
    burst_size: int = Field(
        default=10,
        ge=1,
        description="Maximum credits available at once",
    )


class RetryConfig(BaseModel):
    """Configuration for retrying transient API failures.

    Delay for attempt N is min(base * 2**N, max) plus up to jitter_pct% jitter.
    """

    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts including the first",
    )
    base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Backoff base delay in milliseconds",
    )
    max_delay_ms: int = Field(
        default=10000,
        ge=0,
        description="Upper bound on backoff delay in milliseconds",
    )
    retryable_statuses: list[int] = Field(
        default_factory=lambda: [429, 500, 502, 503, 504],
        description="HTTP status codes that are retried",
    )
    jitter_pct: float = Field(
        default=25.0,
        ge=0.0,
        le=100.0,
        description="Maximum random jitter added to each delay (% of delay)",
    )


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Workflowy API
    # --------------------------------------------------------------------------
    workflowy_api_key: str = Field(
        default="",
        description="Workflowy API key",
    )
    workflowy_base_url: str = Field(
        default="https://workflowy.com/api/v1",
        description="Base URL for the Workflowy REST API",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request HTTP timeout",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Queue, Rate Limiting & Retry
    # --------------------------------------------------------------------------
    queue: QueueConfig = Field(
        default_factory=QueueConfig,
        description="Request queue configuration",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Token bucket configuration",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry/backoff configuration",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
