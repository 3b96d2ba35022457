"""
Pydantic configuration models with validation.

Configuration Architecture:
==========================

DatabaseConfig: PostgreSQL connection and asyncpg pool settings
ImportConfig: Streaming import settings (batch sizing band, retry policy,
              statement parameter ceiling, diagnostics sampling, source parsing)
AppConfig: Top-level application configuration (environment + sections)
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum
from typing import Literal, Optional
import re

from ...core.schemas import NAME_MAX_LENGTH


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class DatabaseConfig(BaseModel):
    """Database connection configuration with validation."""

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    user: str = Field(default="postgres", description="Database username")
    password: str = Field(default="postgres", description="Database password")
    database_name: str = Field(default="contacts", description="Database name")
    pool_min_size: int = Field(default=1, ge=1, le=50, description="Minimum size of asyncpg pool")
    pool_max_size: int = Field(default=10, ge=1, le=100, description="Maximum size of asyncpg pool")
    command_timeout: float = Field(
        default=60.0, gt=0, le=3600, description="Statement timeout applied by the driver, in seconds"
    )
    acquire_timeout: Optional[float] = Field(
        default=30.0, gt=0, description="Seconds to wait for a pooled connection"
    )

    @field_validator('host')
    @classmethod
    def validate_host(cls, v):
        if not v.strip():
            raise ValueError('Host cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_pool_sizes(self):
        if self.pool_min_size > self.pool_max_size:
            raise ValueError('pool_min_size cannot exceed pool_max_size')
        return self

    def get_connection_string(self, db_name: Optional[str] = None) -> str:
        """Get PostgreSQL connection string."""
        target_db = db_name or self.database_name
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{target_db}"

    def get_safe_connection_string(self) -> str:
        """Connection string with the password masked, for logs."""
        return f"postgresql://{self.user}:***@{self.host}:{self.port}/{self.database_name}"


DEFAULT_DENYLIST_PATTERN = (
    r"('|\"|;|--|/\*|\*/|@@|\bxp_"
    r"|\b(?:alter|create|cursor|declare|delete|drop|exec|execute|insert|kill"
    r"|select|shutdown|truncate|union|update)\b)"
)


class ImportConfig(BaseModel):
    """Streaming contact import configuration."""

    table_name: str = Field(default="contacts", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")

    # Adaptive flush threshold band
    initial_batch_size: int = Field(default=100, ge=1, le=100000, description="Flush threshold at import start")
    min_batch_size: int = Field(default=50, ge=1, le=100000, description="Threshold floor")
    max_batch_size: int = Field(default=500, ge=1, le=100000, description="Threshold ceiling")
    growth_factor: float = Field(default=1.1, gt=1.0, le=4.0, description="Multiplier applied on sustained success")
    growth_interval: int = Field(default=20, ge=1, le=10000, description="Committed batches between growth steps")
    shrink_factor: float = Field(default=0.7, gt=0.0, lt=1.0, description="Multiplier applied on transient failure")

    # Retry policy
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries per batch for transient failures")
    backoff_base_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    backoff_cap_seconds: float = Field(default=10.0, ge=0.0, le=600.0)
    backoff_jitter_seconds: float = Field(default=0.25, ge=0.0, le=10.0)

    # Bulk upsert executor
    write_mode: Literal["statement", "per_record"] = Field(
        default="statement",
        description="One multi-row statement per chunk, or settled per-record statements"
    )
    max_bind_parameters: int = Field(
        default=65535, ge=3, description="Storage engine hard limit of bound parameters per statement"
    )
    record_concurrency: int = Field(default=8, ge=1, le=256, description="In-flight per-record statements")
    chunk_failure_ratio: float = Field(
        default=0.5, gt=0.0, le=1.0, description="Rejected share of a chunk that fails the whole batch"
    )

    # Diagnostics
    rejection_detail_cap: int = Field(default=10, ge=0, le=10000, description="Rejections kept with full detail")
    rejection_log_interval: int = Field(default=100, ge=1, description="Summary line every N rejections")
    progress_log_interval: int = Field(default=5, ge=1, description="Progress line every N batches")
    stall_notice_seconds: float = Field(
        default=30.0, ge=0.0, description="Seconds between still-running notices (0 disables)"
    )

    # Source parsing and backpressure
    queue_size: int = Field(default=50, ge=1, le=100000, description="Rows buffered between reader and validator")
    read_chunk_size: int = Field(
        default=64, ge=1, le=10000, description="Rows pulled per blocking read, off the event loop"
    )
    delimiter: str = Field(default="auto", description="Field delimiter, or 'auto' to sniff")
    encoding: str = Field(default="utf-8-sig")
    max_field_length: int = Field(
        default=NAME_MAX_LENGTH, ge=1, le=NAME_MAX_LENGTH, description="Bound for name fields, up to the column width"
    )
    denylist_pattern: str = Field(default=DEFAULT_DENYLIST_PATTERN)

    @field_validator('delimiter')
    @classmethod
    def validate_delimiter(cls, v):
        if v != "auto" and len(v) != 1:
            raise ValueError("delimiter must be a single character or 'auto'")
        return v

    @field_validator('denylist_pattern')
    @classmethod
    def validate_denylist(cls, v):
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid denylist pattern: {e}") from e
        return v

    @model_validator(mode='after')
    def validate_batch_band(self):
        if not (self.min_batch_size <= self.initial_batch_size <= self.max_batch_size):
            raise ValueError(
                "Batch sizes must satisfy min_batch_size <= initial_batch_size <= max_batch_size "
                f"(got {self.min_batch_size}, {self.initial_batch_size}, {self.max_batch_size})"
            )
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_cap_seconds cannot be lower than backoff_base_seconds")
        return self

    @property
    def params_per_record(self) -> int:
        # email, first_name, last_name
        return 3


class AppConfig(BaseModel):
    """Main application configuration combining all sections."""

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    importing: ImportConfig = Field(default_factory=ImportConfig)

    @model_validator(mode='after')
    def validate_app_config(self):
        if self.environment == Environment.PRODUCTION and self.importing.max_retries == 0:
            raise ValueError("Retries cannot be disabled in production environment")
        return self
