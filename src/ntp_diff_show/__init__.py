"""Multi-source NTP offset monitor with outlier-resistant statistics."""

from .api import FacadeServer
from .client import FacadeClient, QueryFailure, QueryOutcome, QuerySuccess, SntpClient, TimeSourceClient
from .config import DisplayConfig, FacadeConfig, LoggingConfig, MonitorSettings, SamplerConfig
from .daemon import DaemonConfig, MonitorDaemon
from .deviation import DeviationView, Direction, SeverityTier, classify, classify_batch, severity_tier
from .logging_utils import JsonFormatter, configure_logging
from .monitor import HealthMonitor, HealthStatus, OffsetMonitor, Snapshot
from .presentation import (
    CSV_HEADER,
    build_csv_rows,
    estimate_current_time,
    graph_bars,
    metadata_rows,
    rank_samples,
    render_csv,
    render_report,
    table_rows,
)
from .registry import ConfigurationError, SourceRegistry, TimeSource, load_registry
from .runtime import MonitorRuntime, build_monitor
from .sampler import OffsetSample, OffsetSampler, SampleBatch
from .stats import Statistics, compute_statistics, filter_offsets

__all__ = [
    "FacadeServer",
    "FacadeClient",
    "QueryFailure",
    "QueryOutcome",
    "QuerySuccess",
    "SntpClient",
    "TimeSourceClient",
    "DisplayConfig",
    "FacadeConfig",
    "LoggingConfig",
    "MonitorSettings",
    "SamplerConfig",
    "DaemonConfig",
    "MonitorDaemon",
    "DeviationView",
    "Direction",
    "SeverityTier",
    "classify",
    "classify_batch",
    "severity_tier",
    "JsonFormatter",
    "configure_logging",
    "HealthMonitor",
    "HealthStatus",
    "OffsetMonitor",
    "Snapshot",
    "CSV_HEADER",
    "build_csv_rows",
    "estimate_current_time",
    "graph_bars",
    "metadata_rows",
    "rank_samples",
    "render_csv",
    "render_report",
    "table_rows",
    "ConfigurationError",
    "SourceRegistry",
    "TimeSource",
    "load_registry",
    "MonitorRuntime",
    "build_monitor",
    "OffsetSample",
    "OffsetSampler",
    "SampleBatch",
    "Statistics",
    "compute_statistics",
    "filter_offsets",
]
