"""Assemble the monitor components from settings."""

from __future__ import annotations

from dataclasses import dataclass

import logging

from .api import FacadeServer
from .client import FacadeClient, SntpClient, TimeSourceClient
from .config import FacadeConfig, MonitorSettings, SamplerConfig
from .logging_utils import configure_logging
from .monitor import HealthMonitor, OffsetMonitor
from .registry import SourceRegistry, load_registry
from .sampler import OffsetSampler


@dataclass
class MonitorRuntime:
    """Structured runtime handles for the CLI and the facade."""

    settings: MonitorSettings
    registry: SourceRegistry
    client: TimeSourceClient
    monitor: OffsetMonitor
    health: HealthMonitor


def build_client(config: SamplerConfig) -> TimeSourceClient:
    """Direct SNTP, or the HTTP facade when a facade URL is configured."""

    if config.facade_url:
        return FacadeClient(config.facade_url, timeout=config.timeout_s)
    return SntpClient(port=config.port, timeout=config.timeout_s)


def build_monitor(
    settings: MonitorSettings | None = None,
    registry: SourceRegistry | None = None,
    client: TimeSourceClient | None = None,
    configure: bool = True,
) -> MonitorRuntime:
    """Create an OffsetMonitor with configured logging, client and sources.

    Raises:
        ConfigurationError: if the source list cannot be loaded.
    """

    settings = settings or MonitorSettings()
    if configure:
        configure_logging(settings.logging)

    registry = registry if registry is not None else load_registry(settings.sources_path)
    client = client or build_client(settings.sampler)
    sampler = OffsetSampler(client, max_workers=settings.sampler.max_workers)
    health = HealthMonitor(freshness_window=settings.health_freshness_s)
    monitor = OffsetMonitor(registry, sampler, health=health, logger=logging.getLogger("ntp_diff_show.monitor"))
    return MonitorRuntime(settings=settings, registry=registry, client=client, monitor=monitor, health=health)


def build_facade(runtime: MonitorRuntime, config: FacadeConfig | None = None, with_health: bool = True) -> FacadeServer:
    """HTTP facade over the runtime's client, reporting the runtime's health."""

    return FacadeServer(
        runtime.client,
        config or runtime.settings.facade,
        health=runtime.health if with_health else None,
    )
