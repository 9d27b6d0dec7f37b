"""Configuration management for the offset monitor."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import tomllib


class LoggingConfig(BaseModel):
    """Logging configuration settings."""

    # Logging severity threshold (INFO/DEBUG/etc.).
    level: str = Field(default="INFO", description="Logging level")
    # Emit JSON if True; otherwise emit a human-readable format.
    json_format: bool = Field(default=True, description="Emit JSON logs")
    # Optional file path for log output; if None, logs go to stderr.
    log_file: str | None = Field(default=None, description="Optional log file path")
    # Maximum size (bytes) before log rotation.
    max_bytes: int = Field(default=1_000_000, description="Max log file size before rotation")
    # Number of backup files to retain.
    backup_count: int = Field(default=3, description="Number of rotated log files to keep")


class SamplerConfig(BaseModel):
    """Time-source query settings."""

    # Standard NTP port.
    port: int = Field(default=123, ge=1, le=65535, description="NTP port")
    # Per-source query timeout.
    timeout_s: float = Field(default=2.0, gt=0.0, description="Query timeout (seconds)")
    # Worker threads for the fan-out; None means one per source.
    max_workers: int | None = Field(default=None, ge=1, description="Concurrent query limit")
    # Query through a running HTTP facade instead of direct SNTP when set.
    facade_url: str | None = Field(default=None, description="Base URL of the HTTP facade")


class FacadeConfig(BaseModel):
    """HTTP facade configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3001, ge=0, le=65535, description="Bind port")
    # Value for the Access-Control-Allow-Origin header; None disables it.
    cors_origin: str | None = Field(default="*", description="Allowed CORS origin")


class DisplayConfig(BaseModel):
    """Terminal display settings."""

    # Seconds between refresh cycles in watch mode.
    refresh_interval_s: float = Field(default=60.0, gt=0.0, description="Refresh cycle interval")
    # Seconds between local clock redraws; never triggers sampling.
    tick_interval_s: float = Field(default=0.1, gt=0.0, description="Display tick interval")
    # Fractional second digits shown for clock values.
    clock_digits: int = Field(default=3, ge=1, le=3, description="Clock fractional digits")


class MonitorSettings(BaseSettings):
    """Configuration settings loaded from env or optional TOML."""

    # Environment keys use NTPDIFF_ prefix and "__" nesting.
    model_config = SettingsConfigDict(env_prefix="NTPDIFF_", env_nested_delimiter="__", extra="ignore")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    facade: FacadeConfig = Field(default_factory=FacadeConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    # JSON source list; the bundled list is used when unset.
    sources_path: str | None = Field(default=None, description="Path to ntp_servers.json")
    # A published cycle older than this is reported unhealthy.
    health_freshness_s: float = Field(default=300.0, gt=0.0, description="Health freshness window")

    @classmethod
    def from_toml(cls, path: str | Path) -> "MonitorSettings":
        data = tomllib.loads(Path(path).read_text())
        return cls.model_validate(data)
