"""Progress counters and status lines for a copy run."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable, Iterable

from tilecp.tiles import TileRect

LOGGER = logging.getLogger(__name__)

PROGRESS_REPORT_AFTER = 100
PROGRESS_REPORT_EVERY = 2.0


def format_duration(seconds: float) -> str:
    """Format a duration as a compact ``1h 2m 3s`` style string."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


@dataclass
class CopyProgress:
    """Tile counters shared by the fetch workers, writer, and reporting."""

    total: int
    clock: Callable[[], float] = monotonic
    start_time: float = field(init=False)
    _empty: int = field(default=0, init=False, repr=False)
    _non_empty: int = field(default=0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.start_time = self.clock()

    @classmethod
    def from_ranges(
        cls, ranges: Iterable[TileRect], clock: Callable[[], float] = monotonic
    ) -> CopyProgress:
        return cls(total=sum(rect.size() for rect in ranges), clock=clock)

    def add_empty(self) -> int:
        """Count an empty tile and return the new done count."""
        with self._lock:
            self._empty += 1
            return self._empty + self._non_empty

    def add_non_empty(self) -> int:
        """Count a stored tile and return the new done count."""
        with self._lock:
            self._non_empty += 1
            return self._empty + self._non_empty

    @property
    def empty(self) -> int:
        return self._empty

    @property
    def non_empty(self) -> int:
        return self._non_empty

    @property
    def done(self) -> int:
        with self._lock:
            return self._empty + self._non_empty

    @property
    def elapsed(self) -> float:
        return max(0.0, self.clock() - self.start_time)

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return self.done * 100 // self.total

    def speed(self, elapsed: float | None = None) -> float:
        elapsed = self.elapsed if elapsed is None else elapsed
        if elapsed <= 0:
            return 0.0
        return self.done / elapsed

    def eta(self, elapsed: float | None = None) -> str:
        """Return the remaining-time estimate as text."""
        elapsed = self.elapsed if elapsed is None else elapsed
        done = self.done
        left = max(0, self.total - done)
        if left == 0:
            return "done"
        if done == 0:
            return "??? left"
        return f"{format_duration(elapsed * left / done)} left"

    def __str__(self) -> str:
        elapsed = self.elapsed
        return (
            f"[{format_duration(elapsed)}] {float(self.percent):.2f}% "
            f"@ {self.speed(elapsed):.1f}/s | ✓ {self.non_empty} □ {self.empty} "
            f"| {self.eta(elapsed)}"
        )


class ProgressReporter:
    """Decide when a progress line is worth logging."""

    def __init__(
        self,
        progress: CopyProgress,
        *,
        every: int = PROGRESS_REPORT_AFTER,
        interval: float = PROGRESS_REPORT_EVERY,
        logger: logging.Logger = LOGGER,
    ) -> None:
        self.progress = progress
        self.every = max(1, every)
        self.interval = interval
        self.logger = logger
        self._last_reported = progress.clock()

    def maybe_report(self, done: int) -> bool:
        """Log a status line when done hit a boundary and enough time passed."""
        if done % self.every != 0:
            return False
        now = self.progress.clock()
        if now - self._last_reported <= self.interval:
            return False
        self.logger.info("%s", self.progress)
        self._last_reported = now
        return True

    def report_final(self) -> None:
        self.logger.info("%s", self.progress)
