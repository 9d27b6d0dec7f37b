"""Display and export views derived from a batch and its statistics.

Everything here is a pure function of (samples, statistics[, local time]);
no value is computed that the statistics and samples do not already imply.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Sequence

import csv
import io
import json

from .deviation import Direction, SeverityTier, classify, direction_of, severity_tier
from .monitor import Snapshot
from .sampler import OffsetSample
from .stats import Statistics

CSV_HEADER = (
    "name",
    "host",
    "ntp_time",
    "diff_ms",
    "dev.",
    "sigma",
    "filtered_dev.",
    "filtered_sigma",
    "error",
)

_NO_VALUE = "-"


def estimate_current_time(local_now: datetime, stats: Statistics) -> datetime:
    """Best estimate of true time: local clock plus the filtered mean offset."""

    return local_now + timedelta(milliseconds=stats.filtered_mean)


def rank_samples(samples: Iterable[OffsetSample]) -> list[OffsetSample]:
    """Successful samples by ascending offset, then failed ones in input order."""

    ordered = list(samples)
    successes = sorted((s for s in ordered if s.offset_ms is not None), key=lambda s: s.offset_ms)
    failures = [s for s in ordered if s.offset_ms is None]
    return successes + failures


def format_iso(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. `2024-01-02T03:04:05.678Z`."""

    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def format_ms(value: float) -> str:
    return f"{value:.3f}"


def format_score(value: float) -> str:
    return f"{value:.4f}"


def build_csv_rows(samples: Iterable[OffsetSample], stats: Statistics) -> list[list[str]]:
    """One row per sample, in the order given. Failed rows carry only the error."""

    rows: list[list[str]] = []
    for sample in samples:
        view = classify(sample, stats)
        if view is None or sample.observed_time is None or sample.offset_ms is None:
            rows.append([sample.source_name, sample.host, "", "", "", "", "", "", sample.error or ""])
            continue
        rows.append(
            [
                sample.source_name,
                sample.host,
                format_iso(sample.observed_time),
                format_ms(sample.offset_ms),
                format_ms(view.deviation_from_mean),
                format_score(view.sigma_score),
                format_ms(view.deviation_from_filtered_mean),
                format_score(view.filtered_sigma_score),
                "",
            ]
        )
    return rows


def render_csv(samples: Iterable[OffsetSample], stats: Statistics) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    writer.writerows(build_csv_rows(samples, stats))
    return buffer.getvalue()


def with_sign(value: float | str | None, digits: int = 1) -> str:
    """Fixed-point number with an explicit `+` for positive values."""

    if value is None or value == _NO_VALUE:
        return _NO_VALUE
    try:
        number = float(value)
    except ValueError:
        return str(value)
    if number != number:
        return str(value)
    return ("+" if number > 0 else "") + f"{number:.{digits}f}"


def format_clock(value: datetime | None, digits: int = 3) -> str:
    """Local wall-clock time as HH:MM:SS with 1-3 fractional digits."""

    if value is None:
        return _NO_VALUE
    if not 1 <= digits <= 3:
        raise ValueError("digits must be between 1 and 3")
    local = value.astimezone() if value.tzinfo is not None else value
    fraction = (local.microsecond // 1000) // 10 ** (3 - digits)
    return f"{local:%H:%M:%S}.{fraction:0{digits}d}"


@dataclass(frozen=True)
class TableRow:
    """One display row of the per-source table."""

    name: str
    host: str
    estimated_time: str
    offset_ms: float | None
    deviation: str
    deviation_direction: Direction | None
    sigma: str
    sigma_tier: SeverityTier | None
    filtered_deviation: str
    filtered_direction: Direction | None
    filtered_sigma: str
    filtered_tier: SeverityTier | None
    error: str


def table_rows(samples: Iterable[OffsetSample], stats: Statistics, local_now: datetime) -> list[TableRow]:
    """Ranked table rows; each source's time is shown as local clock + its offset."""

    rows: list[TableRow] = []
    for sample in rank_samples(samples):
        view = classify(sample, stats)
        if view is None or sample.offset_ms is None:
            rows.append(
                TableRow(
                    name=sample.source_name,
                    host=sample.host,
                    estimated_time=_NO_VALUE,
                    offset_ms=None,
                    deviation=_NO_VALUE,
                    deviation_direction=None,
                    sigma=_NO_VALUE,
                    sigma_tier=None,
                    filtered_deviation=_NO_VALUE,
                    filtered_direction=None,
                    filtered_sigma=_NO_VALUE,
                    filtered_tier=None,
                    error=sample.error or "",
                )
            )
            continue
        rows.append(
            TableRow(
                name=sample.source_name,
                host=sample.host,
                estimated_time=format_clock(local_now + timedelta(milliseconds=sample.offset_ms), 1),
                offset_ms=sample.offset_ms,
                deviation=with_sign(view.deviation_from_mean, 1),
                deviation_direction=view.direction,
                sigma=with_sign(view.sigma_score, 2),
                sigma_tier=view.severity_tier,
                filtered_deviation=with_sign(view.deviation_from_filtered_mean, 1),
                filtered_direction=view.filtered_direction,
                filtered_sigma=with_sign(view.filtered_sigma_score, 2),
                filtered_tier=view.filtered_severity_tier,
                error="",
            )
        )
    return rows


@dataclass(frozen=True)
class GraphBar:
    """Bar of the spread graph: height grows with distance from the mean."""

    name: str
    offset_ms: float
    deviation_ms: float
    height: float
    tier: SeverityTier
    direction: Direction
    offset_direction: Direction


def graph_bars(samples: Iterable[OffsetSample], stats: Statistics) -> list[GraphBar]:
    """Bars for successful samples only, ranked by offset."""

    bars: list[GraphBar] = []
    for sample in rank_samples(samples):
        if sample.offset_ms is None:
            continue
        deviation = sample.offset_ms - stats.mean
        score = abs(deviation) / stats.sigma if stats.sigma else 0.0
        bars.append(
            GraphBar(
                name=sample.source_name,
                offset_ms=sample.offset_ms,
                deviation_ms=deviation,
                height=abs(deviation) / 2 + 10,
                tier=severity_tier(score),
                direction=direction_of(deviation),
                offset_direction=direction_of(sample.offset_ms),
            )
        )
    return bars


def metadata_rows(samples: Iterable[OffsetSample], digits: int = 3) -> list[dict[str, Any]]:
    """Query metadata per source, in batch order, with the observed time."""

    rows: list[dict[str, Any]] = []
    for sample in samples:
        row: dict[str, Any] = {"name": sample.source_name}
        for key, value in sample.metadata.items():
            row[key] = json.dumps(value) if isinstance(value, (dict, list)) else value
        row["observed"] = format_clock(sample.observed_time, digits) if sample.observed_time else ""
        rows.append(row)
    return rows


def summary_lines(local_now: datetime, stats: Statistics, digits: int = 3) -> list[str]:
    return [
        f"Estimated time: {format_clock(estimate_current_time(local_now, stats), digits)}"
        "  (local + filtered mean offset)",
        f"Local time:     {format_clock(local_now, digits)}",
        f"Mean offset:    {stats.mean:.1f}ms  (sigma: {stats.sigma:.1f}ms)",
        f"Filtered mean:  {stats.filtered_mean:.1f}ms  (sigma: {stats.filtered_sigma:.1f}ms)",
    ]


_TABLE_HEADER = ("server", "time", "diff(ms)", "dev.", "sigma", "tier", "1σ dev.", "1σ sigma", "error")


def _render_table(header: Sequence[str], rows: Sequence[Sequence[str]]) -> list[str]:
    widths = [len(cell) for cell in header]
    for row in rows:
        widths = [max(width, len(cell)) for width, cell in zip(widths, row)]
    lines = ["  ".join(cell.ljust(width) for cell, width in zip(header, widths)).rstrip()]
    lines.append("  ".join("-" * width for width in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    return lines


def render_report(snapshot: Snapshot, local_now: datetime, digits: int = 3) -> str:
    """Plain-text report of a published snapshot for the terminal."""

    if not snapshot.loaded:
        return f"Local time: {format_clock(local_now, digits)}\nWaiting for the first refresh cycle..."
    if not snapshot.samples:
        return "No sources configured."

    lines = summary_lines(local_now, snapshot.statistics, digits)
    if snapshot.is_empty_batch:
        lines.append("No source returned a usable offset this cycle; statistics are zero.")
    lines.append("")

    cells = [
        (
            row.name,
            row.estimated_time,
            format_ms(row.offset_ms) if row.offset_ms is not None else _NO_VALUE,
            row.deviation,
            row.sigma,
            row.sigma_tier.value if row.sigma_tier else _NO_VALUE,
            row.filtered_deviation,
            row.filtered_sigma,
            row.error,
        )
        for row in table_rows(snapshot.samples, snapshot.statistics, local_now)
    ]
    lines.extend(_render_table(_TABLE_HEADER, cells))

    bars = graph_bars(snapshot.samples, snapshot.statistics)
    if bars:
        lines.append("")
        lines.append("Spread (distance from mean):")
        name_width = max(len(bar.name) for bar in bars)
        for bar in bars:
            length = max(1, round(bar.height / 10))
            lines.append(
                f"{bar.name.ljust(name_width)}  {'#' * length} {with_sign(bar.deviation_ms, 0)}ms [{bar.tier.value}]"
            )

    metadata = metadata_rows(snapshot.samples, digits)
    columns: list[str] = []
    for row in metadata:
        columns.extend(key for key in row if key != "observed" and key not in columns)
    columns.append("observed")
    lines.append("")
    lines.append("Query metadata:")
    lines.extend(
        _render_table(columns, [[_metadata_cell(row.get(column)) for column in columns] for row in metadata])
    )
    return "\n".join(lines)


def _metadata_cell(value: Any) -> str:
    return "" if value is None else str(value)
