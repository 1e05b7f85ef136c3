"""Timing spans for copy runs."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Iterator


@dataclass(frozen=True)
class PerfSpan:
    """A named, timed piece of work."""

    name: str
    seconds: float


class PerfTracker:
    """Accumulate named timing spans across a copy run."""

    def __init__(self, *, enabled: bool) -> None:
        self.enabled = enabled
        self._totals: dict[str, float] = {}
        self._counts: dict[str, int] = {}
        self._slowest: dict[str, float] = {}
        self._start_time: float | None = None
        self._end_time: float | None = None

    def start(self) -> None:
        if self.enabled:
            self._start_time = perf_counter()

    def stop(self) -> None:
        if self.enabled and self._end_time is None:
            self._end_time = perf_counter()

    @contextmanager
    def span(self, name: str) -> Iterator[None]:
        """Measure a named span of work."""
        if not self.enabled:
            yield
            return
        start = perf_counter()
        try:
            yield
        finally:
            self.record(PerfSpan(name, perf_counter() - start))

    def record(self, span: PerfSpan) -> None:
        self._totals[span.name] = self._totals.get(span.name, 0.0) + span.seconds
        self._counts[span.name] = self._counts.get(span.name, 0) + 1
        self._slowest[span.name] = max(self._slowest.get(span.name, 0.0), span.seconds)

    def summary(self, **extra: Any) -> dict[str, Any]:
        """Return a JSON-serializable summary of captured spans."""
        if not self.enabled:
            return {}
        total_seconds = 0.0
        if self._start_time is not None and self._end_time is not None:
            total_seconds = max(0.0, self._end_time - self._start_time)
        spans = {
            name: {
                "seconds": round(total, 6),
                "count": self._counts[name],
                "max_seconds": round(self._slowest[name], 6),
            }
            for name, total in sorted(self._totals.items())
        }
        payload: dict[str, Any] = {"total_seconds": round(total_seconds, 6), "spans": spans}
        payload.update(extra)
        return payload

    def write(self, path: Path, **extra: Any) -> None:
        """Write the summary as JSON, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.summary(**extra), indent=2), encoding="utf-8")
