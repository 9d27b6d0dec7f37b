"""Long-running refresh loop with an independent display tick."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .monitor import OffsetMonitor, Snapshot
from .sampler import Clock, utc_now

SnapshotCallback = Callable[[Snapshot], None]
TickCallback = Callable[[Snapshot, datetime], None]


@dataclass
class DaemonConfig:
    """Configuration for the daemon runtime loops."""

    refresh_interval_s: float = 60.0
    tick_interval_s: float = 0.1
    # Stop after this many refresh cycles; None runs until stopped.
    max_cycles: int | None = None


class MonitorDaemon:
    """Periodically refresh the monitor and redraw the local clock.

    The refresh loop is the only thing that samples sources. The tick loop
    reads whatever snapshot is currently published and never triggers a
    refresh, however often it runs.
    """

    def __init__(
        self,
        monitor: OffsetMonitor,
        config: DaemonConfig,
        on_snapshot: SnapshotCallback | None = None,
        on_tick: TickCallback | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._monitor = monitor
        self._config = config
        self._on_snapshot = on_snapshot
        self._on_tick = on_tick
        self._clock = clock
        self._logger = logging.getLogger(__name__)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self.cycles = 0
        self.failed_cycles = 0

    def start(self) -> None:
        """Start the refresh and tick loops on background threads."""

        self._stop.clear()
        self._threads = [threading.Thread(target=self._refresh_loop, name="refresh-loop", daemon=True)]
        if self._on_tick is not None:
            self._threads.append(threading.Thread(target=self._tick_loop, name="display-tick", daemon=True))
        for thread in self._threads:
            thread.start()
        self._logger.info(
            "daemon_started",
            extra={
                "refresh_interval_s": self._config.refresh_interval_s,
                "tick_interval_s": self._config.tick_interval_s,
            },
        )

    def run(self) -> None:
        """Run until stopped or `max_cycles` is reached."""

        self.start()
        try:
            while self._threads[0].is_alive():
                self._threads[0].join(timeout=0.5)
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop both loops."""

        self._stop.set()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _refresh_loop(self) -> None:
        while not self._stop.is_set():
            self.cycles += 1
            try:
                snapshot = self._monitor.refresh()
                if self._on_snapshot is not None:
                    self._on_snapshot(snapshot)
            except Exception:  # noqa: BLE001
                self.failed_cycles += 1
                self._logger.error("refresh_cycle_failed", extra={"cycle": self.cycles}, exc_info=True)
            if self._config.max_cycles is not None and self.cycles >= self._config.max_cycles:
                self._stop.set()
                break
            self._stop.wait(self._config.refresh_interval_s)

    def _tick_loop(self) -> None:
        assert self._on_tick is not None
        while not self._stop.wait(self._config.tick_interval_s):
            self._on_tick(self._monitor.snapshot, self._clock())
