"""
beatscope - Confidence Scorer
Kick, snare and tempo reliability scores derived from the detection logs.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from config import ConfidenceConfig
from ring_buffer import RollingWindow


@dataclass
class ConfidenceState:
    kick: float = 0.0
    snare: float = 0.0
    tempo: float = 0.0
    beat: float = 0.0


@dataclass(frozen=True)
class ConfidenceStats:
    overall: float = 0.0
    smoothed: float = 0.0
    kick: float = 0.0
    snare: float = 0.0
    tempo: float = 0.0
    reliability: str = 'unreliable'


def reliability_label(confidence: float) -> str:
    if confidence >= 0.8:
        return 'excellent'
    if confidence >= 0.6:
        return 'good'
    if confidence >= 0.4:
        return 'fair'
    if confidence >= 0.2:
        return 'poor'
    return 'unreliable'


def _mean_std(values: Sequence[float]) -> tuple[float, float]:
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """stddev / mean (population); None when undefined."""
    if not values:
        return None
    mean, std = _mean_std(values)
    if mean == 0:
        return None
    return std / mean


def _intervals(events) -> list[float]:
    times = [e.timestamp for e in events]
    return [b - a for a, b in zip(times, times[1:])]


class ConfidenceScorer:
    """
    Per-frame confidence scores in [0, 1].

    kick  - regularity of inter-kick intervals and kick energies
    snare - regularity of snare intervals and spectral centroid
    tempo - how well recent kick intervals fit the current BPM grid
    beat  - weighted blend of the three, smoothed over a short history
    """

    def __init__(self, config: Optional[ConfidenceConfig] = None):
        self.config = config or ConfidenceConfig()
        self.state = ConfidenceState()
        self._history = RollingWindow(self.config.history_size)

    def kick_confidence(self, kicks, now_ms: float) -> float:
        if len(kicks) < 3:
            return 0.0
        recent = sorted((k for k in kicks if now_ms - k.timestamp < self.config.kick_window_ms),
                        key=lambda k: k.timestamp)
        if len(recent) < 3:
            return 0.0

        interval_cv = coefficient_of_variation(_intervals(recent))
        consistency = max(0.0, 1.0 - 2.0 * interval_cv) if interval_cv is not None else 0.0

        energy_cv = coefficient_of_variation([k.energy for k in recent])
        energy_score = max(0.0, 1.0 - energy_cv) if energy_cv is not None else 0.0

        return consistency * 0.7 + energy_score * 0.3

    def snare_confidence(self, snares, now_ms: float) -> float:
        if len(snares) < 2:
            return 0.0
        recent = sorted((s for s in snares if now_ms - s.timestamp < self.config.snare_window_ms),
                        key=lambda s: s.timestamp)
        if len(recent) < 2:
            return 0.0

        interval_cv = coefficient_of_variation(_intervals(recent))
        consistency = max(0.0, 1.0 - 1.5 * interval_cv) if interval_cv is not None else 0.0

        centroids = [s.spectral_centroid or 0.0 for s in recent]
        _, centroid_std = _mean_std(centroids)
        brightness = max(0.0, 1.0 - centroid_std)

        return consistency * 0.6 + brightness * 0.4

    def tempo_confidence(self, kicks, bpm: float, now_ms: float) -> float:
        cfg = self.config
        if bpm == 0 or len(kicks) < 4:
            return 0.0
        if bpm < cfg.plausible_bpm_min or bpm > cfg.plausible_bpm_max:
            return 0.2

        recent = sorted((k for k in kicks if now_ms - k.timestamp < cfg.tempo_window_ms),
                        key=lambda k: k.timestamp)
        if len(recent) < 4:
            return 0.3

        expected = 60000.0 / bpm
        intervals = _intervals(recent)
        matching = 0
        for interval in intervals:
            for ratio in cfg.tempo_ratios:
                target = expected * ratio
                if abs(interval - target) < target * cfg.tempo_tolerance:
                    matching += 1
                    break

        return min(1.0, matching / len(intervals) * 1.2)

    def update(self, kicks, snares, bpm: float, now_ms: float) -> ConfidenceState:
        """Recompute every score and push the blended value into the history."""
        cfg = self.config
        kick = self.kick_confidence(kicks, now_ms)
        snare = self.snare_confidence(snares, now_ms)
        tempo = self.tempo_confidence(kicks, bpm, now_ms)
        beat = kick * cfg.kick_weight + snare * cfg.snare_weight + tempo * cfg.tempo_weight

        self.state = ConfidenceState(kick=kick, snare=snare, tempo=tempo, beat=beat)
        self._history.push(beat)
        return self.state

    def smoothed(self) -> float:
        return self._history.mean()

    def stats(self) -> ConfidenceStats:
        smoothed = self.smoothed()
        return ConfidenceStats(
            overall=self.state.beat,
            smoothed=smoothed,
            kick=self.state.kick,
            snare=self.state.snare,
            tempo=self.state.tempo,
            reliability=reliability_label(smoothed),
        )

    def reset(self) -> None:
        self.state = ConfidenceState()
        self._history.clear()
