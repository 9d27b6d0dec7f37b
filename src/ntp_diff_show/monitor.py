"""Refresh cycles and atomic publication of batch + statistics."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time

from .deviation import DeviationView, classify_batch
from .registry import SourceRegistry
from .sampler import OffsetSample, OffsetSampler, SampleBatch
from .stats import Statistics, compute_statistics


@dataclass(frozen=True)
class Snapshot:
    """One published cycle: its batch and the statistics derived from it."""

    batch: SampleBatch | None
    statistics: Statistics
    generation: int = 0

    @classmethod
    def pending(cls) -> "Snapshot":
        """State before the first cycle has completed."""

        return cls(batch=None, statistics=Statistics.zero(), generation=0)

    @property
    def loaded(self) -> bool:
        return self.batch is not None

    @property
    def samples(self) -> tuple[OffsetSample, ...]:
        return self.batch.samples if self.batch is not None else ()

    @property
    def is_empty_batch(self) -> bool:
        """True when a cycle completed but no source produced an offset."""

        return self.batch is not None and not self.batch.offsets

    def deviations(self) -> tuple[list[DeviationView], list[OffsetSample]]:
        return classify_batch(self.samples, self.statistics)


@dataclass
class HealthStatus:
    """Health status snapshot."""

    last_update: float
    generation: int
    sources: int
    failures: int
    ok: bool


class HealthMonitor:
    """Track freshness of published refresh cycles."""

    def __init__(self, freshness_window: float = 300.0) -> None:
        self._freshness_window = freshness_window
        self._last_update: float | None = None
        self._generation = 0
        self._sources = 0
        self._failures = 0

    def mark_update(self, snapshot: Snapshot) -> None:
        self._last_update = time.time()
        self._generation = snapshot.generation
        self._sources = len(snapshot.samples)
        self._failures = len(snapshot.batch.failures) if snapshot.batch is not None else 0

    def status(self) -> HealthStatus:
        now = time.time()
        last_update = self._last_update or 0.0
        ok = now - last_update <= self._freshness_window if last_update else False
        # A cycle where nothing answered is published but not healthy.
        if self._sources and self._failures == self._sources:
            ok = False
        return HealthStatus(
            last_update=last_update,
            generation=self._generation,
            sources=self._sources,
            failures=self._failures,
            ok=ok,
        )


class OffsetMonitor:
    """Run refresh cycles and publish each one as a single immutable snapshot.

    Readers only ever see a whole `Snapshot`. When cycles overlap, every
    cycle runs to completion; a cycle that finishes after a newer one has
    already been published is discarded instead of replacing it.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        sampler: OffsetSampler,
        health: HealthMonitor | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._sampler = sampler
        self._health = health
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._generation = 0
        self._snapshot = Snapshot.pending()

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def refresh(self) -> Snapshot:
        """Run one refresh cycle and return the snapshot now published."""

        with self._lock:
            self._generation += 1
            generation = self._generation

        if self._registry.is_empty:
            self._logger.warning("no_sources_configured", extra={"cycle": generation})

        batch = self._sampler.sample(self._registry, cycle=generation)
        snapshot = Snapshot(batch=batch, statistics=compute_statistics(batch.samples), generation=generation)

        with self._lock:
            current = self._snapshot
            if generation < current.generation:
                self._logger.info(
                    "cycle_superseded",
                    extra={"cycle": generation, "published": current.generation},
                )
                return current
            self._snapshot = snapshot
            if self._health is not None:
                self._health.mark_update(snapshot)

        stats = snapshot.statistics
        self._logger.info(
            "cycle_published",
            extra={
                "cycle": generation,
                "mean_ms": stats.mean,
                "sigma_ms": stats.sigma,
                "filtered_mean_ms": stats.filtered_mean,
                "filtered_sigma_ms": stats.filtered_sigma,
                "empty": snapshot.is_empty_batch,
            },
        )
        return snapshot
