"""Elapsed-time helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Optional


def format_elapsed(seconds: float) -> str:
    """
    Format a duration the way Blender reports render times.

    Args:
        seconds: Duration in seconds (>= 0)

    Returns:
        ``MM:SS.hh`` below one hour, ``HH:MM:SS.hh`` otherwise
    """
    if seconds < 0:
        raise ValueError("seconds must be >= 0")

    hundredths = int(round(seconds * 100))
    hours, rest = divmod(hundredths, 360000)
    minutes, rest = divmod(rest, 6000)
    secs, frac = divmod(rest, 100)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}.{frac:02d}"
    return f"{minutes:02d}:{secs:02d}.{frac:02d}"


@dataclass
class Stopwatch:
    """Context manager measuring wall-clock time."""

    started: Optional[float] = None
    stopped: Optional[float] = None
    _clock: object = field(default=time.perf_counter, repr=False)

    def __enter__(self) -> "Stopwatch":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        self.started = self._clock()
        self.stopped = None

    def stop(self) -> float:
        if self.started is None:
            raise RuntimeError("Stopwatch was never started")
        self.stopped = self._clock()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        if self.started is None:
            return 0.0
        end = self.stopped if self.stopped is not None else self._clock()
        return end - self.started

    def format(self) -> str:
        return format_elapsed(self.elapsed)
