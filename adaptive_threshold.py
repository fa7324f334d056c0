import math

from ring_buffer import RollingWindow


class AdaptiveThreshold:
    """
    Rolling mean + k*stddev detection threshold with a fixed floor.

    Fed one kick-band energy value per frame. Loud passages raise the
    threshold (fewer false positives), quiet passages let it fall back to
    the floor so sensitivity recovers.
    """
    __slots__ = ('multiplier', 'floor', '_window')

    def __init__(self, window_size: int = 20, multiplier: float = 1.2, floor: float = 0.1):
        self.multiplier = multiplier
        self.floor = floor
        self._window = RollingWindow(window_size)

    @property
    def window_size(self) -> int:
        return self._window.capacity

    def update(self, energy: float) -> None:
        """Feed one energy sample; NaN/inf samples are ignored."""
        try:
            value = float(energy)
        except (TypeError, ValueError):
            return
        if not math.isfinite(value):
            return
        self._window.push(value)

    def threshold(self) -> float:
        if not len(self._window):
            return self.floor
        adaptive = self._window.mean() + self.multiplier * self._window.std_dev()
        return max(adaptive, self.floor)

    def resize(self, window_size: int) -> None:
        self._window.resize(window_size)

    def reset(self) -> None:
        self._window.clear()

    def __len__(self) -> int:
        return len(self._window)
