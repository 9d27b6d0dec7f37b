"""Per-source deviation scores and severity classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .sampler import OffsetSample
from .stats import Statistics

WARNING_SIGMA = 1.0
CRITICAL_SIGMA = 2.0


class SeverityTier(str, Enum):
    NOMINAL = "nominal"
    WARNING = "warning"
    CRITICAL = "critical"


class Direction(str, Enum):
    """Sign of a deviation: positive means the source reads ahead."""

    AHEAD = "ahead"
    BEHIND = "behind"
    NEUTRAL = "neutral"


def severity_tier(score: float) -> SeverityTier:
    magnitude = abs(score)
    if magnitude >= CRITICAL_SIGMA:
        return SeverityTier.CRITICAL
    if magnitude >= WARNING_SIGMA:
        return SeverityTier.WARNING
    return SeverityTier.NOMINAL


def direction_of(value: float) -> Direction:
    if value > 0:
        return Direction.AHEAD
    if value < 0:
        return Direction.BEHIND
    return Direction.NEUTRAL


def sigma_score(deviation: float, sigma: float) -> float:
    """Deviation in units of sigma, or 0 when sigma is 0."""

    return deviation / sigma if sigma else 0.0


@dataclass(frozen=True)
class DeviationView:
    """How far one source sits from the unfiltered and filtered baselines.

    The unfiltered score is normalised by the unfiltered sigma and the
    filtered score by the filtered sigma; the two are independent views.
    """

    source_name: str
    deviation_from_mean: float
    sigma_score: float
    deviation_from_filtered_mean: float
    filtered_sigma_score: float
    severity_tier: SeverityTier

    @property
    def direction(self) -> Direction:
        return direction_of(self.deviation_from_mean)

    @property
    def filtered_direction(self) -> Direction:
        return direction_of(self.deviation_from_filtered_mean)

    @property
    def filtered_severity_tier(self) -> SeverityTier:
        return severity_tier(self.filtered_sigma_score)


def classify(sample: OffsetSample, stats: Statistics) -> DeviationView | None:
    """Score one sample against the batch statistics; None for failures."""

    if sample.offset_ms is None:
        return None
    deviation = sample.offset_ms - stats.mean
    filtered_deviation = sample.offset_ms - stats.filtered_mean
    score = sigma_score(deviation, stats.sigma)
    return DeviationView(
        source_name=sample.source_name,
        deviation_from_mean=deviation,
        sigma_score=score,
        deviation_from_filtered_mean=filtered_deviation,
        filtered_sigma_score=sigma_score(filtered_deviation, stats.filtered_sigma),
        severity_tier=severity_tier(score),
    )


def classify_batch(
    samples: Iterable[OffsetSample], stats: Statistics
) -> tuple[list[DeviationView], list[OffsetSample]]:
    """Split a batch into deviation views and failed samples, order kept."""

    views: list[DeviationView] = []
    failures: list[OffsetSample] = []
    for sample in samples:
        view = classify(sample, stats)
        if view is None:
            failures.append(sample)
        else:
            views.append(view)
    return views, failures
