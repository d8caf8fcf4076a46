"""
Environment-driven configuration using Pydantic v2 Settings.

Values are read from ``LOGGLY_SINK_*`` environment variables with ``__`` as
the nested delimiter, for example ``LOGGLY_SINK_LOGGLY__CUSTOMER_TOKEN`` or
``LOGGLY_SINK_CORE__INTERNAL_LOGGING_ENABLED``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .defaults import (
    DEFAULT_BUFFERING_COUNT,
    DEFAULT_BUFFERING_INTERVAL_SECONDS,
    DEFAULT_MAX_BUFFER_SIZE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)


class CoreSettings(BaseModel):
    """Process-wide behaviour of the sink runtime."""

    internal_logging_enabled: bool = Field(
        default=True,
        description="Emit WARN/DEBUG diagnostics for internal faults",
    )
    enable_metrics: bool = Field(
        default=False,
        description="Export Prometheus counters for delivery outcomes",
    )
    atexit_flush_enabled: bool = Field(
        default=True,
        description="Flush live sinks before disposing them at interpreter exit",
    )
    atexit_flush_timeout_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Upper bound on the per-sink flush at interpreter exit",
    )


class LogglySettings(BaseModel):
    """Sink values; required ones stay optional here and are checked on use."""

    instance_name: str | None = Field(default=None, description="Originating instance")
    connection_string: str | None = Field(
        default=None, description="Base address of the bulk endpoint"
    )
    customer_token: str | None = Field(default=None, description="Loggly token")
    tag: str | None = Field(default=None, description="Tag; defaults to instance name")
    flatten_payload: bool = Field(
        default=False, description="Promote payload fields to Payload_<name> keys"
    )
    buffering_interval_seconds: float = Field(
        default=DEFAULT_BUFFERING_INTERVAL_SECONDS, gt=0.0
    )
    buffering_count: int = Field(default=DEFAULT_BUFFERING_COUNT, ge=0)
    max_buffer_size: int = Field(default=DEFAULT_MAX_BUFFER_SIZE, ge=1)
    on_completed_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Bounded flush wait on completion; unset waits indefinitely",
    )
    request_timeout_seconds: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0.0
    )

    @field_validator("tag", mode="before")
    @classmethod
    def _blank_tag_is_unset(cls, value: str | None) -> str | None:
        if value is None or not str(value).strip():
            return None
        return str(value)


class Settings(BaseSettings):
    """Top-level settings model."""

    core: CoreSettings = Field(default_factory=CoreSettings)
    loggly: LogglySettings = Field(default_factory=LogglySettings)

    model_config = SettingsConfigDict(
        env_prefix="LOGGLY_SINK_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    def to_dict(self) -> dict[str, object]:
        return dict(self.model_dump(exclude_none=True))


# Mark Pydantic validators as used for vulture
_VULTURE_USED: tuple[object, ...] = (LogglySettings._blank_tag_is_unset,)
