"""
beatscope - Onset Detector
Edge-triggered kick and snare detectors with a cooldown state machine.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ring_buffer import DetectionLog


@dataclass(frozen=True)
class DetectionEvent:
    """A detected kick or snare"""
    timestamp: float                 # Monotonic milliseconds
    energy: float                    # Band energy that triggered the detection
    spectral_flux: float             # Flux at detection time
    spectral_centroid: Optional[float] = None  # Snares only
    threshold: Optional[float] = None          # Kicks only (adaptive threshold)


class DetectorState(Enum):
    ARMED = 'armed'            # Ready to fire
    REFRACTORY = 'refractory'  # Cooling down after a detection


def _finite(*values) -> bool:
    for v in values:
        try:
            if not math.isfinite(float(v)):
                return False
        except (TypeError, ValueError):
            return False
    return True


class OnsetDetector:
    """
    Two-state detector: ARMED -> (fire) -> REFRACTORY -> (cooldown elapsed) -> ARMED.

    The state is derived from the last fire time, so nothing has to tick
    the detector between frames. Subclasses decide whether a frame meets
    the detection criteria; this class owns the cooldown gate and the
    detection log.
    """

    def __init__(self, cooldown_ms: float, history_ms: float = 10000.0):
        self.cooldown_ms = float(cooldown_ms)
        self.log = DetectionLog(history_ms)
        self.last_fire_ms: Optional[float] = None
        self.fire_count = 0

    def state(self, now_ms: float) -> DetectorState:
        if self.last_fire_ms is None:
            return DetectorState.ARMED
        if now_ms - self.last_fire_ms < self.cooldown_ms:
            return DetectorState.REFRACTORY
        return DetectorState.ARMED

    def _fire(self, event: DetectionEvent) -> None:
        self.last_fire_ms = event.timestamp
        self.fire_count += 1
        self.log.append(event)
        self.log.evict(event.timestamp)

    def reset(self) -> None:
        self.log.clear()
        self.last_fire_ms = None
        self.fire_count = 0


class KickDetector(OnsetDetector):
    """Kick: energy above the adaptive threshold plus a flux onset."""

    def __init__(self, cooldown_ms: float = 100.0, onset_threshold: float = 0.05,
                 history_ms: float = 10000.0):
        super().__init__(cooldown_ms, history_ms)
        self.onset_threshold = onset_threshold

    def detect(self, energy: float, spectral_flux: float, threshold: float, now_ms: float) -> bool:
        if self.state(now_ms) is DetectorState.REFRACTORY:
            return False
        if not _finite(energy, spectral_flux, threshold):
            return False

        if energy > threshold and spectral_flux > self.onset_threshold:
            self._fire(DetectionEvent(
                timestamp=now_ms,
                energy=energy,
                spectral_flux=spectral_flux,
                threshold=threshold,
            ))
            return True
        return False


class SnareDetector(OnsetDetector):
    """Snare: fixed energy threshold, stricter flux onset and a brightness gate."""

    def __init__(self, cooldown_ms: float = 120.0, energy_threshold: float = 0.15,
                 onset_threshold: float = 0.05, onset_multiplier: float = 1.2,
                 brightness_gate: float = 0.3, history_ms: float = 10000.0):
        super().__init__(cooldown_ms, history_ms)
        self.energy_threshold = energy_threshold
        self.onset_threshold = onset_threshold
        self.onset_multiplier = onset_multiplier
        self.brightness_gate = brightness_gate

    def detect(self, energy: float, spectral_flux: float, spectral_centroid: float,
               now_ms: float) -> bool:
        if self.state(now_ms) is DetectorState.REFRACTORY:
            return False
        if not _finite(energy, spectral_flux, spectral_centroid):
            return False

        energy_met = energy > self.energy_threshold
        onset_met = spectral_flux > self.onset_threshold * self.onset_multiplier
        bright = spectral_centroid > self.brightness_gate
        if energy_met and onset_met and bright:
            self._fire(DetectionEvent(
                timestamp=now_ms,
                energy=energy,
                spectral_flux=spectral_flux,
                spectral_centroid=spectral_centroid,
            ))
            return True
        return False
