import math

import numpy as np


def bin_size_hz(sample_rate: float, bin_count: int) -> float:
    """Width of one FFT bin in Hz (Nyquist / bin count); 0 when undefined."""
    if bin_count <= 0 or sample_rate <= 0:
        return 0.0
    return (sample_rate / 2.0) / bin_count


def band_bin_range(freq_low: float, freq_high: float, bin_size: float) -> tuple[int, int]:
    """Inclusive bin range covering [freq_low, freq_high] Hz, before clamping."""
    if bin_size <= 0:
        return 0, -1
    return int(math.floor(freq_low / bin_size)), int(math.floor(freq_high / bin_size))


def clamp_bin_range(start: int, end: int, length: int) -> tuple[int, int]:
    """Clamp an inclusive bin range to an array of `length` bins."""
    return max(0, start), min(end, length - 1)


def frequency_for_bin(bin_index: int, sample_rate: float, bin_count: int) -> float:
    return bin_index * bin_size_hz(sample_rate, bin_count)


def bin_for_frequency(frequency: float, sample_rate: float, bin_count: int) -> int:
    size = bin_size_hz(sample_rate, bin_count)
    if size <= 0:
        return 0
    return int(math.floor(frequency / size))


def extract_dominant_freq(
    spectrum: np.ndarray | None,
    sample_rate: int,
    freq_low: float,
    freq_high: float,
) -> float:
    """Extract dominant frequency from a specific Hz range of the spectrum."""
    if spectrum is None or len(spectrum) == 0:
        return 0.0

    freq_per_bin = bin_size_hz(sample_rate, len(spectrum))
    if freq_per_bin <= 0:
        return 0.0

    low_bin = max(0, int(freq_low / freq_per_bin))
    high_bin = min(len(spectrum) - 1, int(freq_high / freq_per_bin))
    if low_bin >= high_bin:
        return 0.0

    band = np.asarray(spectrum[low_bin:high_bin + 1])
    if not np.any(band):
        return 0.0
    peak_bin = low_bin + int(np.argmax(band))
    return peak_bin * freq_per_bin
