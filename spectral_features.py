"""
beatscope - Onset & Energy Analyzer
Per-frame energy, brightness and transient features from byte-valued
analyser data (frequency magnitudes 0-255, time samples centred at 128).
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from frequency_utils import band_bin_range, bin_size_hz, clamp_bin_range
from ring_buffer import RollingWindow


# ZCR below these marks the frame as tonal / mixed, otherwise noisy
TONAL_ZCR = 0.02
MIXED_ZCR = 0.05


def _as_float_array(data) -> np.ndarray:
    if data is None:
        return np.zeros(0, dtype=np.float64)
    return np.asarray(data, dtype=np.float64)


def _range_slice(mags: np.ndarray, sample_rate: float, bin_count: int,
                 freq_range: tuple[float, float]) -> tuple[int, int]:
    size = bin_size_hz(sample_rate, bin_count)
    start, end = band_bin_range(freq_range[0], freq_range[1], size)
    return clamp_bin_range(start, end, len(mags))


def kick_energy(magnitudes, sample_rate: float, bin_count: int,
                freq_range: tuple[float, float] = (20.0, 200.0)) -> float:
    """RMS of the magnitudes inside the kick band, normalized to 0-1."""
    mags = _as_float_array(magnitudes)
    start, end = _range_slice(mags, sample_rate, bin_count, freq_range)
    if end < start:
        return 0.0
    band = mags[start:end + 1]
    return float(np.sqrt(np.mean(band ** 2)) / 255.0)


def snare_energy(magnitudes, sample_rate: float, bin_count: int,
                 freq_range: tuple[float, float] = (200.0, 5000.0),
                 brightness_cutoff_hz: float = 1000.0,
                 brightness_weight: float = 1.5) -> float:
    """Weighted RMS over the snare band; bins above the cutoff count extra."""
    mags = _as_float_array(magnitudes)
    start, end = _range_slice(mags, sample_rate, bin_count, freq_range)
    if end < start:
        return 0.0
    size = bin_size_hz(sample_rate, bin_count)
    band = mags[start:end + 1]
    freqs = np.arange(start, end + 1) * size
    weights = np.where(freqs > brightness_cutoff_hz, brightness_weight, 1.0)
    return float(np.sqrt(np.sum(band ** 2 * weights) / len(band)) / 255.0)


def spectral_centroid(magnitudes, sample_rate: float, bin_count: int) -> float:
    """Magnitude-weighted mean frequency divided by Nyquist (0 on silence)."""
    mags = _as_float_array(magnitudes)
    total = float(np.sum(mags)) if mags.size else 0.0
    size = bin_size_hz(sample_rate, bin_count)
    if total <= 0 or size <= 0:
        return 0.0
    freqs = np.arange(len(mags)) * size
    nyquist = sample_rate / 2.0
    return float(np.sum(freqs * mags) / total / nyquist)


def _normalize_time_samples(time_samples) -> np.ndarray:
    return (_as_float_array(time_samples) - 128.0) / 128.0


def rms_energy(time_samples) -> float:
    samples = _normalize_time_samples(time_samples)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples ** 2)))


def zero_crossing_rate(time_samples) -> float:
    """Fraction of adjacent sample pairs whose sign differs (0 counts as positive)."""
    samples = _normalize_time_samples(time_samples)
    if samples.size < 2:
        return 0.0
    non_negative = samples >= 0
    crossings = int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))
    return crossings / (samples.size - 1)


def windowed_rms(time_samples, window_size: int = 1024, overlap: float = 0.5) -> float:
    """Average RMS over overlapping windows; 0 when no full window fits."""
    samples = _as_float_array(time_samples)
    hop = int(math.floor(window_size * (1.0 - overlap)))
    if window_size <= 0 or hop <= 0 or samples.size < window_size:
        return 0.0
    values = [rms_energy(samples[i:i + window_size])
              for i in range(0, samples.size - window_size + 1, hop)]
    return float(np.mean(values))


def windowed_zcr(time_samples, window_size: int = 1024) -> float:
    """Average ZCR over half-overlapping windows; 0 when no full window fits."""
    samples = _as_float_array(time_samples)
    hop = window_size // 2
    if window_size < 2 or samples.size < window_size:
        return 0.0
    values = [zero_crossing_rate(samples[i:i + window_size])
              for i in range(0, samples.size - window_size + 1, hop)]
    return float(np.mean(values))


def noisiness_label(zcr: float) -> str:
    if zcr < TONAL_ZCR:
        return 'tonal'
    if zcr < MIXED_ZCR:
        return 'mixed'
    return 'noisy'


class SpectralFluxTracker:
    """
    Positive spectral flux over a frequency range.

    Keeps its own copy of the previous frame's magnitudes; the caller's
    array is never retained.
    """

    def __init__(self):
        self._previous: Optional[np.ndarray] = None

    @property
    def has_snapshot(self) -> bool:
        return self._previous is not None

    def update(self, magnitudes, sample_rate: float, bin_count: int,
               freq_range: tuple[float, float] = (20.0, 200.0)) -> float:
        """Compute flux against the previous frame, then store this frame."""
        current = _as_float_array(magnitudes).copy()
        previous = self._previous
        self._previous = current
        if previous is None:
            return 0.0

        size = bin_size_hz(sample_rate, bin_count)
        start, end = band_bin_range(freq_range[0], freq_range[1], size)
        range_bins = end - start + 1
        if range_bins <= 0:
            return 0.0

        length = min(len(current), len(previous))
        lo, hi = clamp_bin_range(start, end, length)
        if hi < lo:
            return 0.0
        diff = current[lo:hi + 1] - previous[lo:hi + 1]
        flux = float(np.sum(np.maximum(0.0, diff)))
        return flux / (range_bins * 255.0)

    def reset(self) -> None:
        self._previous = None


@dataclass(frozen=True)
class SignalStats:
    """Rolling statistics for a per-frame signal measurement"""
    current: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    variance: float = 0.0
    std_dev: float = 0.0
    noisiness: Optional[str] = None   # Only set for zero-crossing rate


class SignalHistory:
    """Rolling history of a scalar signal (RMS or ZCR) with statistics."""

    def __init__(self, capacity: int = 30, classify_noisiness: bool = False):
        self._window = RollingWindow(capacity)
        self._classify_noisiness = classify_noisiness

    def push(self, value: float) -> None:
        self._window.push(value)

    def smoothed(self) -> float:
        return self._window.mean()

    def resize(self, capacity: int) -> None:
        self._window.resize(capacity)

    def clear(self) -> None:
        self._window.clear()

    def __len__(self) -> int:
        return len(self._window)

    def stats(self) -> SignalStats:
        if not len(self._window):
            return SignalStats(noisiness='unknown' if self._classify_noisiness else None)
        s = self._window.stats()
        return SignalStats(
            current=s.current,
            average=s.average,
            min=s.min,
            max=s.max,
            variance=s.variance,
            std_dev=s.std_dev,
            noisiness=noisiness_label(s.current) if self._classify_noisiness else None,
        )
