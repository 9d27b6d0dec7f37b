"""Outlier-resistant offset statistics.

Statistics are recomputed in full from each cycle's batch. The unfiltered
mean and population standard deviation come first; the filtered pair is
then computed over the offsets within one sigma of the mean (inclusive).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import math

from .sampler import OffsetSample


@dataclass(frozen=True)
class Statistics:
    """Summary statistics for one batch, all in milliseconds."""

    mean: float
    sigma: float
    filtered_mean: float
    filtered_sigma: float

    @classmethod
    def zero(cls) -> "Statistics":
        return cls(mean=0.0, sigma=0.0, filtered_mean=0.0, filtered_sigma=0.0)


def mean_and_sigma(values: Sequence[float]) -> tuple[float, float]:
    """Arithmetic mean and population standard deviation; zeros when empty."""

    if not values:
        return 0.0, 0.0
    count = len(values)
    mean = math.fsum(values) / count
    variance = math.fsum((value - mean) ** 2 for value in values) / count
    return mean, math.sqrt(variance)


def filter_offsets(offsets: Iterable[float], mean: float, sigma: float) -> list[float]:
    """Offsets within `[mean - sigma, mean + sigma]`, boundary included."""

    return [offset for offset in offsets if abs(offset - mean) <= sigma]


def present_offsets(samples: Iterable[Union[OffsetSample, float, None]]) -> list[float]:
    """Offsets of successful samples; plain numbers pass through."""

    offsets: list[float] = []
    for sample in samples:
        if isinstance(sample, OffsetSample):
            if sample.offset_ms is not None:
                offsets.append(sample.offset_ms)
        elif sample is not None:
            offsets.append(float(sample))
    return offsets


def compute_statistics(samples: Iterable[Union[OffsetSample, float, None]]) -> Statistics:
    """Compute unfiltered and filtered offset statistics.

    Args:
        samples: A cycle's samples. Failed samples are ignored; plain offsets
            in milliseconds are also accepted.

    Returns:
        Statistics; all zero if no sample carried an offset. The filtered
        fields are zero if filtering removed every offset.
    """

    offsets = present_offsets(samples)
    if not offsets:
        return Statistics.zero()
    mean, sigma = mean_and_sigma(offsets)
    filtered_mean, filtered_sigma = mean_and_sigma(filter_offsets(offsets, mean, sigma))
    return Statistics(mean=mean, sigma=sigma, filtered_mean=filtered_mean, filtered_sigma=filtered_sigma)
