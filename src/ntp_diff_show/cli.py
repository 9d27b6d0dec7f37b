"""Command-line entry point: show offsets or serve the HTTP facade."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from .config import MonitorSettings
from .daemon import DaemonConfig, MonitorDaemon
from .monitor import Snapshot
from .presentation import rank_samples, render_csv, render_report
from .registry import ConfigurationError
from .runtime import build_facade, build_monitor
from .sampler import utc_now

EXIT_OK = 0
EXIT_CONFIG = 2

_CLEAR_SCREEN = "\033[H\033[2J"


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ntp-diff-show", description="Compare the local clock against NTP sources")
    parser.add_argument("--config", help="Path to TOML configuration file")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Query all sources and print offset statistics")
    show.add_argument("--sources", help="JSON source list (defaults to the bundled list)")
    show.add_argument("--csv", help="Write the CSV export to this path ('-' for stdout)")
    show.add_argument("--watch", action="store_true", help="Keep refreshing and redraw the local clock")
    show.add_argument("--interval", type=float, help="Seconds between refresh cycles in watch mode")

    serve = sub.add_parser("serve", help="Run the /api/ntp HTTP facade")
    serve.add_argument("--host", help="Bind host")
    serve.add_argument("--port", type=int, help="Bind port")
    serve.add_argument("--no-monitor", action="store_true", help="Do not poll sources in the background (disables /health)")
    return parser


def _load_settings(path: str | None) -> MonitorSettings:
    if path is None:
        return MonitorSettings()
    try:
        return MonitorSettings.from_toml(path)
    except (OSError, ValueError, ValidationError) as exc:
        raise ConfigurationError(f"Cannot load configuration {path}: {exc}") from exc


def _write_csv(target: str, snapshot: Snapshot) -> None:
    text = render_csv(rank_samples(snapshot.samples), snapshot.statistics)
    if target == "-":
        sys.stdout.write(text)
    else:
        Path(target).write_text(text, encoding="utf-8")


def _show(args: argparse.Namespace, settings: MonitorSettings) -> int:
    if args.sources:
        settings = settings.model_copy(update={"sources_path": args.sources})
    runtime = build_monitor(settings)
    digits = settings.display.clock_digits
    # CSV on stdout moves the report to stderr.
    report_stream = sys.stderr if args.csv == "-" else sys.stdout

    if runtime.registry.is_empty:
        print("No sources configured.", file=sys.stderr)

    if not args.watch:
        snapshot = runtime.monitor.refresh()
        print(render_report(snapshot, utc_now(), digits), file=report_stream)
        if args.csv:
            _write_csv(args.csv, snapshot)
        return EXIT_OK

    def on_snapshot(snapshot: Snapshot) -> None:
        if args.csv:
            _write_csv(args.csv, snapshot)

    def on_tick(snapshot: Snapshot, now: datetime) -> None:
        report_stream.write(_CLEAR_SCREEN + render_report(snapshot, now, digits) + "\n")
        report_stream.flush()

    config = DaemonConfig(
        refresh_interval_s=args.interval or settings.display.refresh_interval_s,
        tick_interval_s=settings.display.tick_interval_s,
    )
    daemon = MonitorDaemon(runtime.monitor, config, on_snapshot=on_snapshot, on_tick=on_tick)
    try:
        daemon.run()
    except KeyboardInterrupt:
        daemon.stop()
    return EXIT_OK


def _serve(args: argparse.Namespace, settings: MonitorSettings) -> int:
    # The facade itself always speaks SNTP; a facade URL here would loop.
    settings = settings.model_copy(
        update={"sampler": settings.sampler.model_copy(update={"facade_url": None})}
    )
    runtime = build_monitor(settings)
    update = {key: value for key, value in (("host", args.host), ("port", args.port)) if value is not None}
    server = build_facade(runtime, settings.facade.model_copy(update=update), with_health=not args.no_monitor)

    daemon: MonitorDaemon | None = None
    if not args.no_monitor:
        # Feeds /health with fresh refresh cycles.
        daemon = MonitorDaemon(runtime.monitor, DaemonConfig(refresh_interval_s=settings.display.refresh_interval_s))
        daemon.start()
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        if daemon is not None:
            daemon.stop()
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    try:
        settings = _load_settings(args.config)
        if args.command == "serve":
            return _serve(args, settings)
        return _show(args, settings)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
