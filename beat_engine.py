"""
beatscope - Beat Engine
Per-frame beat and spectral analysis for audio-reactive renderers.

Consumes byte-valued analyser frames and reports band levels, kick/snare
onsets, tempo and confidence. Single-threaded and pull-based: the driving
loop calls `analyze_frame` once per tick. Use one engine per stream.
"""

import math
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Optional

import numpy as np

from adaptive_threshold import AdaptiveThreshold
from confidence import ConfidenceScorer, ConfidenceStats
from config import (
    Config,
    DETECTION_OPTION_ALIASES,
    DetectionConfig,
    apply_dict_to_dataclass,
    clamp_detection_config,
)
from frequency_bands import FrequencyBands, aggregate_bands
from frequency_utils import extract_dominant_freq
from logging_utils import log_event
from onset_detector import KickDetector, SnareDetector
from spectral_features import (
    SignalHistory,
    SignalStats,
    SpectralFluxTracker,
    kick_energy,
    rms_energy,
    snare_energy,
    spectral_centroid,
    zero_crossing_rate,
)
from tempo_estimator import TempoEstimator


Observer = Callable[[str, dict[str, Any]], None]


def _default_clock() -> float:
    return time.perf_counter() * 1000.0


@dataclass
class SpectralFrame:
    """One analyser snapshot. The engine copies what it needs and never keeps it."""
    frequency_magnitudes: Any          # uint8[N], 0-255 per bin
    time_samples: Any                  # uint8[N], centred at 128
    sample_rate: float
    fft_bin_count: Optional[int] = None  # Defaults to len(frequency_magnitudes)

    @property
    def bin_count(self) -> int:
        if self.fft_bin_count:
            return int(self.fft_bin_count)
        return len(self.frequency_magnitudes) if self.frequency_magnitudes is not None else 0


@dataclass(frozen=True)
class AnalysisResult:
    """Everything the renderer needs for one frame"""
    kick_energy: float = 0.0
    snare_energy: float = 0.0
    spectral_flux: float = 0.0
    spectral_centroid: float = 0.0
    rms_energy: float = 0.0
    zero_crossing_rate: float = 0.0
    kick_detected: bool = False
    snare_detected: bool = False
    current_time: float = 0.0
    adaptive_threshold: float = 0.0
    bpm: float = 0.0
    beat_confidence: float = 0.0
    kick_confidence: float = 0.0
    snare_confidence: float = 0.0
    tempo_confidence: float = 0.0
    bands: FrequencyBands = field(default_factory=FrequencyBands)
    dominant_frequency: float = 0.0

    @classmethod
    def empty(cls, now_ms: float) -> "AnalysisResult":
        return cls(current_time=now_ms)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BeatStats:
    """Detection counters; 'recent' covers the last few seconds"""
    total_kicks: int = 0              # Kicks still in the detection log
    recent_kicks: int = 0
    average_kick_energy: float = 0.0
    last_kick_time: Optional[float] = None
    time_since_last_kick: Optional[float] = None
    total_snares: int = 0
    recent_snares: int = 0
    average_snare_energy: float = 0.0
    last_snare_time: Optional[float] = None
    time_since_last_snare: Optional[float] = None
    bpm: float = 0.0
    cumulative_kicks: int = 0         # Every kick since the last reset
    cumulative_snares: int = 0


def _usable_array(data) -> bool:
    if data is None:
        return False
    try:
        return len(data) > 0
    except TypeError:
        return False


def _frame_is_usable(frame) -> bool:
    if frame is None:
        return False
    mags = getattr(frame, 'frequency_magnitudes', None)
    samples = getattr(frame, 'time_samples', None)
    if not (_usable_array(mags) and _usable_array(samples)):
        return False
    try:
        sample_rate = float(frame.sample_rate)
        bin_count = int(frame.bin_count)
    except (AttributeError, TypeError, ValueError):
        return False
    return math.isfinite(sample_rate) and sample_rate > 0 and bin_count > 0


def _frame_arrays(frame) -> Optional[tuple[np.ndarray, np.ndarray]]:
    """Float copies of the frame arrays, or None when they are unusable."""
    if not _frame_is_usable(frame):
        return None
    try:
        mags = np.asarray(frame.frequency_magnitudes, dtype=np.float64)
        samples = np.asarray(frame.time_samples, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if mags.ndim != 1 or samples.ndim != 1:
        return None
    if not (np.all(np.isfinite(mags)) and np.all(np.isfinite(samples))):
        return None
    return mags, samples


class BeatEngine:
    """
    Beat & spectral analysis engine.

    Silent by default: pass `observer(event, fields)` to receive 'kick',
    'snare', 'bpm', 'config' and 'reset' events (see
    `logging_utils.log_observer`). `clock` returns monotonic milliseconds and
    is only consulted when `analyze_frame` is called without `now_ms`.
    """

    def __init__(self, config: Optional[Config] = None, observer: Optional[Observer] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.config = config or Config()
        self.observer = observer
        self._clock = clock or _default_clock

        det = self.config.detection
        hist = self.config.history
        self.flux_tracker = SpectralFluxTracker()
        self.threshold = AdaptiveThreshold(det.energy_window_size, det.adaptive_multiplier, det.kick_threshold)
        self.kick_detector = KickDetector(det.kick_cooldown_ms, det.onset_threshold, det.detection_history_ms)
        self.snare_detector = SnareDetector(
            cooldown_ms=det.snare_cooldown_ms,
            energy_threshold=det.snare_threshold,
            onset_threshold=det.onset_threshold,
            onset_multiplier=det.snare_onset_multiplier,
            brightness_gate=det.snare_brightness_gate,
            history_ms=det.detection_history_ms,
        )
        self.tempo = TempoEstimator(self.config.tempo)
        self.confidence = ConfidenceScorer(self.config.confidence)
        self.rms_history = SignalHistory(hist.rms_history_size)
        self.zcr_history = SignalHistory(hist.zcr_history_size, classify_noisiness=True)

        self._last_frame_ms: Optional[float] = None
        self.frame_rate: float = 0.0
        self._reset_session_stats()

    # ------------------------------------------------------------------
    # Per-frame analysis
    # ------------------------------------------------------------------
    def analyze_frame(self, frame: Optional[SpectralFrame], now_ms: Optional[float] = None) -> AnalysisResult:
        """Analyze one frame. Missing or malformed frames yield an all-zero result."""
        now = self._clock() if now_ms is None else float(now_ms)
        arrays = _frame_arrays(frame)
        if arrays is None:
            return AnalysisResult.empty(now)
        mags, samples = arrays

        det = self.config.detection
        sample_rate = float(frame.sample_rate)
        bin_count = int(frame.bin_count)
        kick_range = (det.kick_frequency_range.min, det.kick_frequency_range.max)
        snare_range = (det.snare_frequency_range.min, det.snare_frequency_range.max)

        kick_e = kick_energy(mags, sample_rate, bin_count, kick_range)
        snare_e = snare_energy(mags, sample_rate, bin_count, snare_range,
                               det.snare_brightness_cutoff_hz, det.snare_brightness_weight)
        flux = self.flux_tracker.update(mags, sample_rate, bin_count, kick_range)
        centroid = spectral_centroid(mags, sample_rate, bin_count)

        rms = rms_energy(samples)
        zcr = zero_crossing_rate(samples)
        self.rms_history.push(rms)
        self.zcr_history.push(zcr)

        self.threshold.update(kick_e)
        threshold = self.threshold.threshold()

        kick_detected = self.kick_detector.detect(kick_e, flux, threshold, now)
        if kick_detected:
            self._emit('kick', energy=kick_e, flux=flux, threshold=threshold, time=now)

        snare_detected = self.snare_detector.detect(snare_e, flux, centroid, now)
        if snare_detected:
            self._emit('snare', energy=snare_e, flux=flux, brightness=centroid, time=now)

        previous_bpm = self.tempo.bpm
        if self.tempo.maybe_update(self.kick_detector.log, now):
            self._emit('bpm', bpm=self.tempo.bpm, previous=previous_bpm,
                       members=self.tempo.last_bin_members)

        conf = self.confidence.update(self.kick_detector.log, self.snare_detector.log, self.tempo.bpm, now)

        self._update_frame_rate(now)
        self._update_session_stats(rms, kick_e, flux)

        return AnalysisResult(
            kick_energy=kick_e,
            snare_energy=snare_e,
            spectral_flux=flux,
            spectral_centroid=centroid,
            rms_energy=rms,
            zero_crossing_rate=zcr,
            kick_detected=kick_detected,
            snare_detected=snare_detected,
            current_time=now,
            adaptive_threshold=threshold,
            bpm=self.tempo.bpm,
            beat_confidence=conf.beat,
            kick_confidence=conf.kick,
            snare_confidence=conf.snare,
            tempo_confidence=conf.tempo,
            bands=aggregate_bands(mags, sample_rate, bin_count),
            dominant_frequency=extract_dominant_freq(mags, sample_rate, 0.0, sample_rate / 2.0),
        )

    def _emit(self, event: str, **fields_: Any) -> None:
        if self.observer is not None:
            self.observer(event, fields_)

    def _update_frame_rate(self, now: float) -> None:
        if self._last_frame_ms is not None and now > self._last_frame_ms:
            self.frame_rate = 1000.0 / (now - self._last_frame_ms)
        self._last_frame_ms = now

    # ------------------------------------------------------------------
    # Statistics queries
    # ------------------------------------------------------------------
    @property
    def bpm(self) -> float:
        return self.tempo.bpm

    def get_rms_stats(self) -> SignalStats:
        return self.rms_history.stats()

    def get_zcr_stats(self) -> SignalStats:
        return self.zcr_history.stats()

    def get_smoothed_rms(self) -> float:
        return self.rms_history.smoothed()

    def get_smoothed_zcr(self) -> float:
        return self.zcr_history.smoothed()

    def get_confidence_stats(self) -> ConfidenceStats:
        return self.confidence.stats()

    def get_beat_stats(self, now_ms: Optional[float] = None) -> BeatStats:
        now = self._clock() if now_ms is None else float(now_ms)
        window = self.config.history.stats_window_ms
        kicks = self.kick_detector.log.recent(now, window)
        snares = self.snare_detector.log.recent(now, window)
        last_kick = self.kick_detector.last_fire_ms
        last_snare = self.snare_detector.last_fire_ms

        return BeatStats(
            total_kicks=len(self.kick_detector.log),
            recent_kicks=len(kicks),
            average_kick_energy=sum(k.energy for k in kicks) / len(kicks) if kicks else 0.0,
            last_kick_time=last_kick,
            time_since_last_kick=now - last_kick if last_kick is not None else None,
            total_snares=len(self.snare_detector.log),
            recent_snares=len(snares),
            average_snare_energy=sum(s.energy for s in snares) / len(snares) if snares else 0.0,
            last_snare_time=last_snare,
            time_since_last_snare=now - last_snare if last_snare is not None else None,
            bpm=self.tempo.bpm,
            cumulative_kicks=self.kick_detector.fire_count,
            cumulative_snares=self.snare_detector.fire_count,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def get_config(self) -> dict[str, Any]:
        det = self.config.detection
        return {
            'kickFrequencyRange': {'min': det.kick_frequency_range.min, 'max': det.kick_frequency_range.max},
            'kickThreshold': det.kick_threshold,
            'kickCooldownMs': det.kick_cooldown_ms,
            'onsetThreshold': det.onset_threshold,
            'adaptiveMultiplier': det.adaptive_multiplier,
            'energyWindowSize': det.energy_window_size,
        }

    def update_config(self, options: Optional[dict[str, Any]]) -> None:
        """Merge detection options field by field; unknown keys are ignored."""
        if not isinstance(options, dict):
            return
        known = {f.name for f in fields(DetectionConfig)}
        updates = {}
        for key, value in options.items():
            name = DETECTION_OPTION_ALIASES.get(key, key)
            if name in known and value is not None:
                updates[name] = value
        if not updates:
            return

        apply_dict_to_dataclass(self.config.detection, updates)
        clamp_detection_config(self.config.detection)
        self._apply_detection_config()
        self._emit('config', **self.get_config())

    def _apply_detection_config(self) -> None:
        det = self.config.detection
        self.threshold.multiplier = det.adaptive_multiplier
        self.threshold.floor = det.kick_threshold
        self.threshold.resize(det.energy_window_size)

        self.kick_detector.cooldown_ms = float(det.kick_cooldown_ms)
        self.kick_detector.onset_threshold = det.onset_threshold
        self.kick_detector.log.horizon_ms = float(det.detection_history_ms)

        snare = self.snare_detector
        snare.cooldown_ms = float(det.snare_cooldown_ms)
        snare.energy_threshold = det.snare_threshold
        snare.onset_threshold = det.onset_threshold
        snare.onset_multiplier = det.snare_onset_multiplier
        snare.brightness_gate = det.snare_brightness_gate
        snare.log.horizon_ms = float(det.detection_history_ms)

    # ------------------------------------------------------------------
    # Reset / session summary
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Clear every history, detector and tempo estimate."""
        self.flux_tracker.reset()
        self.threshold.reset()
        self.kick_detector.reset()
        self.snare_detector.reset()
        self.tempo.reset()
        self.confidence.reset()
        self.rms_history.clear()
        self.zcr_history.clear()
        self._last_frame_ms = None
        self.frame_rate = 0.0
        self._reset_session_stats()
        self._emit('reset')

    def _reset_session_stats(self) -> None:
        self._session_started_at: Optional[float] = None
        self._session_frame_count = 0
        self._session_rms_min = None
        self._session_rms_max = None
        self._session_kick_energy_min = None
        self._session_kick_energy_max = None
        self._session_flux_min = None
        self._session_flux_max = None
        self._session_rms_sum = 0.0
        self._session_kick_energy_sum = 0.0
        self._session_flux_sum = 0.0

    def _update_session_stats(self, rms: float, kick_e: float, flux: float) -> None:
        if self._session_started_at is None:
            self._session_started_at = self._last_frame_ms
        self._session_frame_count += 1
        self._session_rms_sum += rms
        self._session_kick_energy_sum += kick_e
        self._session_flux_sum += flux
        if self._session_rms_min is None or rms < self._session_rms_min:
            self._session_rms_min = rms
        if self._session_rms_max is None or rms > self._session_rms_max:
            self._session_rms_max = rms
        if self._session_kick_energy_min is None or kick_e < self._session_kick_energy_min:
            self._session_kick_energy_min = kick_e
        if self._session_kick_energy_max is None or kick_e > self._session_kick_energy_max:
            self._session_kick_energy_max = kick_e
        if self._session_flux_min is None or flux < self._session_flux_min:
            self._session_flux_min = flux
        if self._session_flux_max is None or flux > self._session_flux_max:
            self._session_flux_max = flux

    def session_summary(self) -> dict[str, Any]:
        """Level ranges and detection counts since the last reset."""
        frames = self._session_frame_count
        if frames <= 0:
            return {'frames': 0}
        elapsed_ms = 0.0
        if self._session_started_at is not None and self._last_frame_ms is not None:
            elapsed_ms = max(0.0, self._last_frame_ms - self._session_started_at)
        return {
            'frames': frames,
            'seconds': elapsed_ms / 1000.0,
            'frame_rate': self.frame_rate,
            'rms_min': float(self._session_rms_min or 0.0),
            'rms_max': float(self._session_rms_max or 0.0),
            'rms_mean': self._session_rms_sum / frames,
            'kick_energy_min': float(self._session_kick_energy_min or 0.0),
            'kick_energy_max': float(self._session_kick_energy_max or 0.0),
            'kick_energy_mean': self._session_kick_energy_sum / frames,
            'flux_min': float(self._session_flux_min or 0.0),
            'flux_max': float(self._session_flux_max or 0.0),
            'flux_mean': self._session_flux_sum / frames,
            'kicks': self.kick_detector.fire_count,
            'snares': self.snare_detector.fire_count,
            'bpm': self.tempo.bpm,
        }

    def log_session_summary(self) -> None:
        summary = self.session_summary()
        if summary['frames'] <= 0:
            return

        log_event(
            "INFO",
            "Engine",
            "Session summary",
            frames=summary['frames'],
            seconds=f"{summary['seconds']:.1f}",
            rms_min=f"{summary['rms_min']:.6f}",
            rms_max=f"{summary['rms_max']:.6f}",
            rms_mean=f"{summary['rms_mean']:.6f}",
            kick_energy_min=f"{summary['kick_energy_min']:.6f}",
            kick_energy_max=f"{summary['kick_energy_max']:.6f}",
            kick_energy_mean=f"{summary['kick_energy_mean']:.6f}",
            flux_min=f"{summary['flux_min']:.4f}",
            flux_max=f"{summary['flux_max']:.4f}",
            flux_mean=f"{summary['flux_mean']:.4f}",
            kicks=summary['kicks'],
            snares=summary['snares'],
            bpm=f"{summary['bpm']:.0f}",
        )
