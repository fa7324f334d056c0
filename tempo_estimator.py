"""
beatscope - Tempo Estimator
BPM from recent kick timestamps via a coarse interval histogram.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from config import TempoConfig


def round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


@dataclass
class TempoState:
    bpm: float = 0.0                        # 0 = unknown
    last_update_ms: Optional[float] = None  # When an update last ran


def histogram_bpm(intervals_ms: Iterable[float], bin_width: float = 5.0,
                  min_members: int = 2) -> tuple[float, int]:
    """Most populated BPM bin among the given intervals.

    Each interval becomes `60000 / interval` BPM and is bucketed at the
    nearest multiple of `bin_width`. Returns (mean BPM of the winning bin,
    member count); the mean is 0 when the winner has fewer than
    `min_members` estimates. Ties go to the lowest BPM bin.
    """
    bins: dict[float, list[float]] = {}
    for interval in intervals_ms:
        if interval <= 0:
            continue
        bpm = 60000.0 / interval
        key = round_half_up(bpm / bin_width) * bin_width
        bins.setdefault(key, []).append(bpm)

    best: list[float] = []
    for _, members in sorted(bins.items()):
        if len(members) > len(best):
            best = members

    if len(best) < min_members:
        return 0.0, len(best)
    return sum(best) / len(best), len(best)


class TempoEstimator:
    """
    Periodic BPM estimate with exponential smoothing.

    Raw beat-to-beat intervals are noisy (snare confusion, missed kicks), so
    the histogram mode is taken first and then blended into the running
    value. Once a BPM is established it is only ever smoothed, never cleared,
    until `reset()`.
    """

    def __init__(self, config: Optional[TempoConfig] = None):
        self.config = config or TempoConfig()
        self.state = TempoState()
        self.last_candidate: float = 0.0
        self.last_bin_members: int = 0

    @property
    def bpm(self) -> float:
        return self.state.bpm

    def due(self, now_ms: float) -> bool:
        last = self.state.last_update_ms
        return last is None or now_ms - last > self.config.update_interval_ms

    def valid_intervals(self, kicks, now_ms: float) -> list[float]:
        """Consecutive intervals between recent kicks inside the plausible range."""
        cfg = self.config
        times = sorted(k.timestamp for k in kicks if now_ms - k.timestamp < cfg.window_ms)
        intervals = []
        for prev, cur in zip(times, times[1:]):
            interval = cur - prev
            if cfg.min_interval_ms <= interval <= cfg.max_interval_ms:
                intervals.append(interval)
        return intervals

    def maybe_update(self, kicks, now_ms: float) -> bool:
        """Re-estimate if the update interval has elapsed. Returns True when BPM changed."""
        if not self.due(now_ms):
            return False
        self.state.last_update_ms = now_ms
        return self.update(kicks, now_ms)

    def update(self, kicks, now_ms: float) -> bool:
        cfg = self.config
        intervals = self.valid_intervals(kicks, now_ms)
        if not intervals:
            self.last_candidate, self.last_bin_members = 0.0, 0
            return False

        candidate, members = histogram_bpm(intervals, cfg.bin_width_bpm, cfg.min_bin_members)
        self.last_candidate, self.last_bin_members = candidate, members
        if candidate <= 0:
            return False

        previous = self.state.bpm
        if previous == 0:
            smoothed = candidate
        else:
            smoothed = previous * (1.0 - cfg.smoothing_factor) + candidate * cfg.smoothing_factor
        self.state.bpm = round_half_up(smoothed)
        return self.state.bpm != previous

    def reset(self) -> None:
        self.state = TempoState()
        self.last_candidate = 0.0
        self.last_bin_members = 0
