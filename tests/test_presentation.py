import csv
import io
from datetime import datetime, timedelta, timezone

import pytest

from ntp_diff_show.deviation import Direction, SeverityTier
from ntp_diff_show.monitor import Snapshot
from ntp_diff_show.presentation import (
    CSV_HEADER,
    build_csv_rows,
    estimate_current_time,
    format_clock,
    format_iso,
    graph_bars,
    metadata_rows,
    rank_samples,
    render_csv,
    render_report,
    table_rows,
    with_sign,
)
from ntp_diff_show.registry import TimeSource
from ntp_diff_show.sampler import OffsetSample, SampleBatch
from ntp_diff_show.stats import Statistics, compute_statistics

BASE = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


def _ok(name: str, offset_ms: float) -> OffsetSample:
    return OffsetSample.success(
        TimeSource(name, f"{name.lower()}.example"),
        BASE + timedelta(milliseconds=offset_ms),
        BASE,
        {"host": f"{name.lower()}.example", "stratum": 1},
    )


def _failed(name: str, error: str = "timeout after 2s") -> OffsetSample:
    return OffsetSample.failure(TimeSource(name, f"{name.lower()}.example"), error)


def _batch() -> list[OffsetSample]:
    return [_ok("B", 102.0), _failed("Down"), _ok("A", 98.0), _ok("C", 100.0), _ok("Far", 5000.0)]


def test_estimate_uses_filtered_mean() -> None:
    stats = Statistics(mean=900.0, sigma=1.0, filtered_mean=-250.0, filtered_sigma=1.0)
    assert estimate_current_time(BASE, stats) == BASE - timedelta(milliseconds=250)


def test_rank_sorts_by_offset_and_puts_failures_last() -> None:
    ranked = rank_samples([_failed("X"), _ok("B", 5.0), _ok("A", -5.0), _failed("Y")])
    assert [sample.source_name for sample in ranked] == ["A", "B", "X", "Y"]


def test_format_iso_is_utc_with_milliseconds() -> None:
    assert format_iso(BASE) == "2024-01-02T03:04:05.678Z"
    tokyo = BASE.astimezone(timezone(timedelta(hours=9)))
    assert format_iso(tokyo) == "2024-01-02T03:04:05.678Z"


def test_csv_header_and_rows() -> None:
    samples = _batch()
    stats = compute_statistics(samples)
    text = render_csv(samples, stats)
    rows = list(csv.reader(io.StringIO(text)))

    assert tuple(rows[0]) == CSV_HEADER
    assert rows[0] == ["name", "host", "ntp_time", "diff_ms", "dev.", "sigma", "filtered_dev.", "filtered_sigma", "error"]
    assert len(rows) == 1 + len(samples)
    assert rows[1][:4] == ["B", "b.example", "2024-01-02T03:04:05.780Z", "102.000"]
    assert rows[2] == ["Down", "down.example", "", "", "", "", "", "", "timeout after 2s"]


def test_csv_values_are_recomputable_from_sample_and_statistics() -> None:
    samples = _batch()
    stats = compute_statistics(samples)
    rows = build_csv_rows(samples, stats)
    for sample, row in zip(samples, rows):
        if sample.offset_ms is None:
            continue
        offset = float(row[3])
        assert offset == pytest.approx(sample.offset_ms)
        assert float(row[4]) == pytest.approx(offset - stats.mean, abs=1e-3)
        assert float(row[5]) == pytest.approx((offset - stats.mean) / stats.sigma, abs=1e-4)
        assert float(row[6]) == pytest.approx(offset - stats.filtered_mean, abs=1e-3)
        assert float(row[7]) == pytest.approx((offset - stats.filtered_mean) / stats.filtered_sigma, abs=1e-4)
    assert build_csv_rows(samples, stats) == rows


def test_csv_quotes_names_with_commas() -> None:
    sample = OffsetSample.failure(TimeSource("Tokyo, JP", "jp.example"), "unreachable: a, b")
    text = render_csv([sample], Statistics.zero())
    assert text.splitlines()[1] == '"Tokyo, JP",jp.example,,,,,,,"unreachable: a, b"'


@pytest.mark.parametrize(
    ("value", "digits", "expected"),
    [(1.234, 1, "+1.2"), (-1.25, 2, "-1.25"), (0, 1, "0.0"), (None, 1, "-"), ("-", 2, "-"), ("3.5", 0, "+4")],
)
def test_with_sign(value: object, digits: int, expected: str) -> None:
    assert with_sign(value, digits) == expected  # type: ignore[arg-type]


def test_format_clock_digits() -> None:
    naive = datetime(2024, 1, 1, 9, 8, 7, 654321)
    assert format_clock(naive, 3) == "09:08:07.654"
    assert format_clock(naive, 2) == "09:08:07.65"
    assert format_clock(naive, 1) == "09:08:07.6"
    assert format_clock(None) == "-"
    with pytest.raises(ValueError):
        format_clock(naive, 4)


def test_table_rows_are_ranked_and_failures_are_inline() -> None:
    samples = _batch()
    stats = compute_statistics(samples)
    rows = table_rows(samples, stats, BASE)

    assert [row.name for row in rows] == ["A", "C", "B", "Far", "Down"]
    far = rows[3]
    assert far.deviation_direction is Direction.AHEAD
    assert far.sigma_tier in (SeverityTier.WARNING, SeverityTier.CRITICAL)
    assert far.filtered_tier is SeverityTier.CRITICAL
    assert far.deviation.startswith("+")
    down = rows[4]
    assert down.offset_ms is None and down.estimated_time == "-" and down.sigma == "-"
    assert down.error == "timeout after 2s"


def test_graph_excludes_failures_and_scales_height() -> None:
    samples = [_ok("A", 0.0), _ok("B", 20.0), _failed("Down")]
    stats = compute_statistics(samples)
    bars = graph_bars(samples, stats)
    assert [bar.name for bar in bars] == ["A", "B"]
    assert bars[0].deviation_ms == pytest.approx(-10.0)
    assert bars[0].height == pytest.approx(15.0)
    assert bars[0].direction is Direction.BEHIND
    assert bars[1].direction is Direction.AHEAD
    assert bars[0].offset_direction is Direction.NEUTRAL
    # Both sit exactly one sigma away.
    assert bars[1].tier is SeverityTier.WARNING


def test_metadata_rows_keep_batch_order() -> None:
    rows = metadata_rows([_ok("A", 0.0), _failed("Down")])
    assert rows[0]["name"] == "A"
    assert rows[0]["stratum"] == 1
    assert rows[0]["observed"]
    assert rows[1] == {"name": "Down", "observed": ""}


def test_render_report_states() -> None:
    assert "Waiting" in render_report(Snapshot.pending(), BASE)

    empty_registry = Snapshot(batch=SampleBatch(samples=()), statistics=Statistics.zero(), generation=1)
    assert render_report(empty_registry, BASE) == "No sources configured."

    all_failed = [_failed("A"), _failed("B")]
    snapshot = Snapshot(batch=SampleBatch(samples=tuple(all_failed)), statistics=compute_statistics(all_failed), generation=1)
    report = render_report(snapshot, BASE)
    assert "No source returned a usable offset" in report
    assert "timeout after 2s" in report

    samples = _batch()
    full = Snapshot(batch=SampleBatch(samples=tuple(samples)), statistics=compute_statistics(samples), generation=2)
    report = render_report(full, BASE)
    assert "Filtered mean:  100.0ms" in report
    assert "Spread" in report
    assert report.index("Far") < report.index("Down")

    metadata_section = report[report.index("Query metadata:"):]
    header = metadata_section.splitlines()[1].split()
    assert header == ["name", "host", "stratum", "observed"]
    assert "far.example" in metadata_section
    assert "Down" in metadata_section
