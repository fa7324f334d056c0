"""
Fixed-capacity rolling buffers shared by every history in the engine.

`RollingWindow` holds the most recent N scalar measurements (energy, RMS,
ZCR, confidence) with O(1) push/evict. `DetectionLog` holds timestamped
detection events and evicts by age instead of count.

Usage:
    window = RollingWindow(capacity=20)
    window.push(0.42)
    stats = window.stats()

    log = DetectionLog(horizon_ms=10000)
    log.append(event)
    log.evict(now_ms)
"""

import math
from collections import deque
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class WindowStats:
    """Summary statistics for a rolling window."""
    current: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    variance: float = 0.0
    std_dev: float = 0.0


class RollingWindow:
    """
    Ring buffer of recent float samples.

    Pushing into a full window drops the oldest sample. Statistics use the
    population variance (divide by N) so a single sample has zero spread.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._values: deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest samples."""
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if capacity == self._values.maxlen:
            return
        self._values = deque(self._values, maxlen=capacity)

    def clear(self) -> None:
        self._values.clear()

    def values(self) -> list[float]:
        return list(self._values)

    @property
    def latest(self) -> float:
        return self._values[-1] if self._values else 0.0

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def variance(self) -> float:
        if not self._values:
            return 0.0
        avg = self.mean()
        return sum((v - avg) ** 2 for v in self._values) / len(self._values)

    def std_dev(self) -> float:
        return math.sqrt(self.variance())

    def stats(self) -> WindowStats:
        if not self._values:
            return WindowStats()
        variance = self.variance()
        return WindowStats(
            current=self._values[-1],
            average=self.mean(),
            min=min(self._values),
            max=max(self._values),
            variance=variance,
            std_dev=math.sqrt(variance),
        )

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)


class DetectionLog:
    """
    Time-bounded log of detection events, oldest first.

    Events must expose a `timestamp` in milliseconds and are appended in
    increasing time order, so eviction only ever pops from the left.
    """

    def __init__(self, horizon_ms: float = 10000.0):
        self.horizon_ms = float(horizon_ms)
        self._events: deque = deque()

    def append(self, event) -> None:
        self._events.append(event)

    def evict(self, now_ms: float) -> int:
        """Drop events at or before `now_ms - horizon_ms`. Returns how many were dropped."""
        cutoff = now_ms - self.horizon_ms
        dropped = 0
        while self._events and self._events[0].timestamp <= cutoff:
            self._events.popleft()
            dropped += 1
        return dropped

    def recent(self, now_ms: float, window_ms: float) -> list:
        """Events strictly younger than `window_ms` relative to `now_ms`."""
        return [e for e in self._events if now_ms - e.timestamp < window_ms]

    @property
    def last(self) -> Optional[object]:
        return self._events[-1] if self._events else None

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)
