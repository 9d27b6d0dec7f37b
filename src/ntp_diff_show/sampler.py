"""Concurrent offset sampling across all registered time sources."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import logging

from .client import QueryFailure, QuerySuccess, TimeSourceClient
from .registry import SourceRegistry, TimeSource

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def offset_between(observed: datetime, local_now: datetime) -> float:
    """Milliseconds by which `observed` is ahead of `local_now`."""

    return (observed - local_now) / timedelta(milliseconds=1)


@dataclass(frozen=True)
class OffsetSample:
    """Result of querying one time source once.

    Attributes:
        source_name: Name of the queried source.
        host: Address the query went to.
        observed_time: Time reported by the source; None on failure.
        offset_ms: observed_time minus the local clock, in ms; None on failure.
        metadata: Extra fields from the query; empty on failure.
        error: Failure reason; None on success.
    """

    source_name: str
    host: str
    observed_time: datetime | None = None
    offset_ms: float | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.observed_time is None) == (self.error is None):
            raise ValueError("exactly one of observed_time or error must be set")
        if (self.offset_ms is None) != (self.observed_time is None):
            raise ValueError("offset_ms must be present iff observed_time is present")

    @classmethod
    def success(
        cls,
        source: TimeSource,
        observed_time: datetime,
        local_now: datetime,
        metadata: Mapping[str, Any] | None = None,
    ) -> "OffsetSample":
        return cls(
            source_name=source.name,
            host=source.host,
            observed_time=observed_time,
            offset_ms=offset_between(observed_time, local_now),
            metadata=dict(metadata or {}),
        )

    @classmethod
    def failure(cls, source: TimeSource, error: str) -> "OffsetSample":
        return cls(source_name=source.name, host=source.host, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SampleBatch:
    """All samples from one refresh cycle, in registry order."""

    samples: tuple[OffsetSample, ...]
    cycle: int = 0
    completed_at: datetime | None = None

    @property
    def successes(self) -> tuple[OffsetSample, ...]:
        return tuple(sample for sample in self.samples if sample.ok)

    @property
    def failures(self) -> tuple[OffsetSample, ...]:
        return tuple(sample for sample in self.samples if not sample.ok)

    @property
    def offsets(self) -> list[float]:
        return [sample.offset_ms for sample in self.samples if sample.offset_ms is not None]

    def __len__(self) -> int:
        return len(self.samples)


class OffsetSampler:
    """Query every source in parallel and join before returning the batch.

    One attempt is made per source per cycle. The local clock is read inside
    each source's task right after its response arrives, so request latency
    of one source does not skew the offset of another.
    """

    def __init__(
        self,
        client: TimeSourceClient,
        clock: Clock = utc_now,
        max_workers: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._clock = clock
        self._max_workers = max_workers
        self._logger = logger or logging.getLogger(__name__)

    def sample(self, registry: SourceRegistry, cycle: int = 0) -> SampleBatch:
        sources = registry.sources
        if not sources:
            return SampleBatch(samples=(), cycle=cycle, completed_at=self._clock())

        workers = self._max_workers or len(sources)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="offset-sampler") as pool:
            futures: list[Future[OffsetSample]] = [pool.submit(self._sample_one, source) for source in sources]
            # Single join point: every query settles before the batch exists.
            samples = tuple(future.result() for future in futures)

        batch = SampleBatch(samples=samples, cycle=cycle, completed_at=self._clock())
        self._logger.info(
            "cycle_sampled",
            extra={"cycle": cycle, "sources": len(samples), "failures": len(batch.failures)},
        )
        return batch

    def _sample_one(self, source: TimeSource) -> OffsetSample:
        try:
            outcome = self._client.query(source.address)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(
                "source_query_raised",
                extra={"source": source.name, "host": source.host, "error": str(exc)},
            )
            return OffsetSample.failure(source, str(exc) or exc.__class__.__name__)
        local_now = self._clock()

        if isinstance(outcome, QuerySuccess):
            try:
                return OffsetSample.success(source, outcome.observed_time, local_now, outcome.metadata)
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "source_response_invalid",
                    extra={"source": source.name, "host": source.host, "error": str(exc)},
                )
                return OffsetSample.failure(source, f"malformed response: {exc}")
        if isinstance(outcome, QueryFailure):
            self._logger.warning(
                "source_query_failed",
                extra={"source": source.name, "host": source.host, "error": outcome.error},
            )
            return OffsetSample.failure(source, outcome.error)
        return OffsetSample.failure(source, f"unexpected query outcome: {outcome!r}")
