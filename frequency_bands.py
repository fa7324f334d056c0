"""Six-band frequency aggregation for renderer-facing band levels."""

from dataclasses import asdict, dataclass

import numpy as np

from frequency_utils import band_bin_range, bin_size_hz, clamp_bin_range


# Band name -> (low Hz, high Hz)
BAND_RANGES: dict[str, tuple[float, float]] = {
    'sub_bass': (20.0, 60.0),
    'bass': (60.0, 250.0),
    'low_mids': (250.0, 500.0),
    'mids': (500.0, 2000.0),
    'high_mids': (2000.0, 4000.0),
    'treble': (4000.0, 20000.0),
}


@dataclass(frozen=True)
class FrequencyBands:
    """Average magnitude (0-255) per named band"""
    sub_bass: float = 0.0
    bass: float = 0.0
    low_mids: float = 0.0
    mids: float = 0.0
    high_mids: float = 0.0
    treble: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def _band_average(magnitudes: np.ndarray, low_hz: float, high_hz: float, bin_size: float) -> float:
    start, end = band_bin_range(low_hz, high_hz, bin_size)
    start, end = clamp_bin_range(start, end, len(magnitudes))
    if end < start:
        return 0.0
    return float(np.mean(magnitudes[start:end + 1]))


def aggregate_bands(magnitudes, sample_rate: float, bin_count: int) -> FrequencyBands:
    """Average the byte magnitudes inside each band of BAND_RANGES.

    Bands whose bin range falls outside the array report 0 instead of raising.
    """
    if magnitudes is None:
        return FrequencyBands()
    mags = np.asarray(magnitudes, dtype=np.float64)
    size = bin_size_hz(sample_rate, bin_count)
    if mags.size == 0 or size <= 0:
        return FrequencyBands()

    return FrequencyBands(**{
        name: _band_average(mags, low, high, size)
        for name, (low, high) in BAND_RANGES.items()
    })
