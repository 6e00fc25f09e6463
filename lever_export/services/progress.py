"""
Progress tracking for an extraction run.

Both counters only grow. ``total_expected`` is raised page by page while the
top-level collection is still being walked, so ``completed`` may briefly
catch up with a total that is not final yet.
"""
from __future__ import annotations

import logging
import time as _time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    total: int
    completed: int

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * self.completed / self.total


ProgressListener = Callable[[ProgressSnapshot], None]


@dataclass
class Progress:
    """Shared {total_expected, completed} counters with change listeners."""

    total_expected: int = 0
    completed: int = 0
    _listeners: list[ProgressListener] = field(default_factory=list, repr=False)

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def add_total(self, count: int) -> None:
        if count < 0:
            raise ValueError("Progress total can only increase")
        self.total_expected += count
        self._notify()

    def add_completed(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError("Progress completed can only increase")
        self.completed += count
        self._notify()

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(total=self.total_expected, completed=self.completed)

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in self._listeners:
            listener(snap)


class LoggingProgressReporter:
    """Logs progress every ``every`` completed records (and on the last one)."""

    def __init__(self, every: int = 25, label: str = "Lever Data Export") -> None:
        self.every = max(1, every)
        self.label = label
        self._started = _time.monotonic()
        self._last_logged = -1

    def __call__(self, snap: ProgressSnapshot) -> None:
        if snap.completed == self._last_logged:
            return
        if snap.completed % self.every and snap.completed != snap.total:
            return
        self._last_logged = snap.completed
        logger.info(
            "%s: %d/%d entries (%.0f%%), %.1fs elapsed",
            self.label, snap.completed, snap.total,
            snap.percentage, _time.monotonic() - self._started,
        )
