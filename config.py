# beatscope Configuration
# All default values and constants

import math
from dataclasses import dataclass, field, fields, is_dataclass

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1


@dataclass
class FrequencyRange:
    """Inclusive frequency range in Hz"""
    min: float = 20.0
    max: float = 200.0


@dataclass
class DetectionConfig:
    """Kick/snare onset detection parameters"""
    kick_frequency_range: FrequencyRange = field(default_factory=lambda: FrequencyRange(20.0, 200.0))
    kick_threshold: float = 0.1         # Floor for the adaptive kick threshold (very sensitive)
    kick_cooldown_ms: int = 100         # Refractory period after a kick
    onset_threshold: float = 0.05       # Minimum spectral flux to count as an onset
    adaptive_multiplier: float = 1.2    # threshold = mean + multiplier * stddev
    energy_window_size: int = 20        # Kick energy samples kept for the adaptive threshold

    snare_frequency_range: FrequencyRange = field(default_factory=lambda: FrequencyRange(200.0, 5000.0))
    snare_threshold: float = 0.15       # Fixed snare energy threshold
    snare_cooldown_ms: int = 120        # Refractory period after a snare
    snare_onset_multiplier: float = 1.2  # Snare flux must exceed onset_threshold * this
    snare_brightness_gate: float = 0.3   # Minimum normalized spectral centroid for a snare
    snare_brightness_cutoff_hz: float = 1000.0  # Bins above this get the brightness weight
    snare_brightness_weight: float = 1.5

    detection_history_ms: int = 10000   # How long detection events are kept


@dataclass
class TempoConfig:
    """BPM estimation from kick intervals"""
    update_interval_ms: int = 1000      # Re-estimate at most this often
    window_ms: int = 10000              # Only kicks this recent are used
    min_interval_ms: float = 200.0      # Shorter intervals are double triggers
    max_interval_ms: float = 2000.0     # Longer intervals are dropouts
    bin_width_bpm: float = 5.0          # Histogram bin width (bins anchored at multiples)
    min_bin_members: int = 2            # Winning bin needs at least this many estimates
    smoothing_factor: float = 0.3       # Weight of a new candidate against the running BPM


@dataclass
class ConfidenceConfig:
    """Beat confidence scoring"""
    kick_window_ms: int = 8000
    snare_window_ms: int = 8000
    tempo_window_ms: int = 6000
    tempo_tolerance: float = 0.15       # Fractional tolerance against the expected interval
    tempo_ratios: tuple = (0.25, 0.5, 1.0, 2.0, 4.0)  # Accepted subdivisions/multiples
    plausible_bpm_min: float = 60.0
    plausible_bpm_max: float = 200.0
    kick_weight: float = 0.4
    snare_weight: float = 0.3
    tempo_weight: float = 0.3
    history_size: int = 20              # Confidence values kept for smoothing


@dataclass
class HistoryConfig:
    """Rolling signal histories"""
    rms_history_size: int = 30
    zcr_history_size: int = 30
    stats_window_ms: int = 5000         # "Recent" window for beat statistics


@dataclass
class AudioConfig:
    """Reference frame provider settings (file/live capture)"""
    sample_rate: int = 44100
    fft_size: int = 2048                # Bin count is fft_size / 2
    smoothing_time_constant: float = 0.8
    min_decibels: float = -90.0
    max_decibels: float = -10.0
    frame_rate: float = 60.0            # Analysis ticks per second
    block_size: int = 512               # Live capture block size (frames)
    # Device index - None means use system default
    device_index: int | None = None


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    tempo: TempoConfig = field(default_factory=TempoConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)

    # Global
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; scalar fields are coerced to their current type
    when possible, lists become tuples for tuple fields."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARN", "Config", "Expected a section object, keeping default", key=key)
            continue

        if value is None:
            setattr(target, key, value)
            continue

        if isinstance(current, tuple) and isinstance(value, (list, tuple)):
            setattr(target, key, tuple(value))
            continue

        if isinstance(current, (bool, int, float)):
            try:
                setattr(target, key, type(current)(value))
                continue
            except (TypeError, ValueError):
                log_event("WARN", "Config", "Could not convert value, keeping default",
                          key=key, expected=type(current).__name__)
                continue

        setattr(target, key, value)


def _sanitize_section(section, defaults) -> None:
    """Replace None or non-finite numbers with the section defaults."""
    for f in fields(section):
        value = getattr(section, f.name)
        default = getattr(defaults, f.name)
        if is_dataclass(default):
            if not is_dataclass(value):
                setattr(section, f.name, default)
            else:
                _sanitize_section(value, default)
            continue
        if value is None and default is not None:
            setattr(section, f.name, default)
        elif isinstance(value, float) and not math.isfinite(value):
            setattr(section, f.name, default)


def clamp_detection_config(det: DetectionConfig) -> None:
    """Clamp window sizes, cooldowns and history to usable values; swap inverted ranges."""
    det.energy_window_size = max(1, int(det.energy_window_size))
    det.kick_cooldown_ms = max(0, int(det.kick_cooldown_ms))
    det.snare_cooldown_ms = max(0, int(det.snare_cooldown_ms))
    det.detection_history_ms = max(1, int(det.detection_history_ms))
    for rng in (det.kick_frequency_range, det.snare_frequency_range):
        if rng.min > rng.max:
            rng.min, rng.max = rng.max, rng.min


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Restores defaults for missing values, clamps ranges and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    defaults = Config()
    for name in ("detection", "tempo", "confidence", "history", "audio"):
        _sanitize_section(getattr(config, name), getattr(defaults, name))

    if version < 1:
        if not config.confidence.tempo_ratios:
            config.confidence.tempo_ratios = defaults.confidence.tempo_ratios

    clamp_detection_config(config.detection)

    tempo = config.tempo
    tempo.smoothing_factor = max(0.0, min(1.0, float(tempo.smoothing_factor)))
    tempo.bin_width_bpm = max(0.1, float(tempo.bin_width_bpm))
    tempo.min_bin_members = max(1, int(tempo.min_bin_members))

    config.confidence.history_size = max(1, int(config.confidence.history_size))
    config.history.rms_history_size = max(1, int(config.history.rms_history_size))
    config.history.zcr_history_size = max(1, int(config.history.zcr_history_size))

    audio = config.audio
    audio.smoothing_time_constant = max(0.0, min(1.0, float(audio.smoothing_time_constant)))
    audio.frame_rate = max(1.0, float(audio.frame_rate))
    if audio.min_decibels >= audio.max_decibels:
        audio.min_decibels = defaults.audio.min_decibels
        audio.max_decibels = defaults.audio.max_decibels

    if config.log_level is None:
        config.log_level = "INFO"

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()

# Option names accepted by BeatEngine.update_config, mapped to DetectionConfig fields
DETECTION_OPTION_ALIASES = {
    'kickFrequencyRange': 'kick_frequency_range',
    'kickThreshold': 'kick_threshold',
    'kickCooldownMs': 'kick_cooldown_ms',
    'kickCooldown': 'kick_cooldown_ms',
    'onsetThreshold': 'onset_threshold',
    'adaptiveMultiplier': 'adaptive_multiplier',
    'energyWindowSize': 'energy_window_size',
}
