"""
beatscope - Frame Sources
Turns raw audio into the byte-valued analyser frames BeatEngine consumes.

AnalyserFrameSource mimics a browser-style analyser node: Blackman-windowed
FFT, temporal smoothing, dB-to-byte mapping for magnitudes and 128-centred
bytes for the time-domain samples. WAV files are read with scipy and live
input comes from sounddevice.
"""

import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
from scipy.io import wavfile
from scipy.signal import get_window

from beat_engine import SpectralFrame
from config import AudioConfig
from logging_utils import log_event


def to_mono_float(data: np.ndarray) -> np.ndarray:
    """Convert PCM data of any common dtype to mono float32 in [-1, 1]."""
    data = np.asarray(data)
    if data.dtype == np.uint8:
        samples = (data.astype(np.float32) - 128.0) / 128.0
    elif data.dtype == np.int16:
        samples = data.astype(np.float32) / 32768.0
    elif data.dtype == np.int32:
        samples = data.astype(np.float32) / 2147483648.0
    else:
        samples = data.astype(np.float32)

    if samples.ndim > 1:
        samples = np.mean(samples, axis=1)
    return samples


class AnalyserFrameSource:
    """
    Rolling analyser over a mono float stream.

    Feed samples with `push_samples`, then call `frame()` once per tick.
    The most recent `fft_size` samples are analysed; the magnitude array
    has `fft_size // 2` bins.
    """

    def __init__(self, audio_config: Optional[AudioConfig] = None):
        self.config = audio_config or AudioConfig()
        size = int(self.config.fft_size)
        if size < 2:
            raise ValueError(f"fft_size must be >= 2, got {size}")
        self.fft_size = size
        self.bin_count = size // 2
        self._window = get_window('blackman', size).astype(np.float64)
        self._buffer = np.zeros(size, dtype=np.float64)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)

    def push_samples(self, samples) -> None:
        samples = np.asarray(samples, dtype=np.float64).ravel()
        if samples.size == 0:
            return
        if samples.size >= self.fft_size:
            self._buffer = samples[-self.fft_size:].copy()
            return
        self._buffer = np.roll(self._buffer, -samples.size)
        self._buffer[-samples.size:] = samples

    def frequency_bytes(self) -> np.ndarray:
        cfg = self.config
        spectrum = np.abs(np.fft.rfft(self._buffer * self._window))[:self.bin_count] / self.fft_size
        tau = cfg.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * spectrum

        with np.errstate(divide='ignore'):
            db = 20.0 * np.log10(self._smoothed)
        span = cfg.max_decibels - cfg.min_decibels
        scaled = (db - cfg.min_decibels) * (255.0 / span)
        scaled = np.nan_to_num(scaled, nan=0.0, neginf=0.0, posinf=255.0)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def time_bytes(self) -> np.ndarray:
        """Newest `bin_count` samples as bytes centred on 128."""
        scaled = np.floor(128.0 * (1.0 + self._buffer[-self.bin_count:]))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def frame(self) -> SpectralFrame:
        return SpectralFrame(
            frequency_magnitudes=self.frequency_bytes(),
            time_samples=self.time_bytes(),
            sample_rate=float(self.config.sample_rate),
            fft_bin_count=self.bin_count,
        )

    def reset(self) -> None:
        self._buffer[:] = 0.0
        self._smoothed[:] = 0.0


def iter_wav_frames(path, audio_config: Optional[AudioConfig] = None) -> Iterator[tuple[float, SpectralFrame]]:
    """Yield (timestamp_ms, frame) pairs at the configured frame rate.

    Timestamps are the audio position of each frame, so a file is analysed
    deterministically regardless of wall-clock speed.
    """
    path = Path(path)
    sample_rate, data = wavfile.read(str(path))
    mono = to_mono_float(data)
    cfg = replace(audio_config or AudioConfig(), sample_rate=int(sample_rate))
    log_event("INFO", "Source", "Reading WAV", path=path, sample_rate=sample_rate,
              seconds=f"{len(mono) / sample_rate:.1f}")

    source = AnalyserFrameSource(cfg)
    hop = sample_rate / cfg.frame_rate
    index = 0
    while True:
        start = int(index * hop)
        end = int((index + 1) * hop)
        if end > len(mono) or end <= start:
            break
        source.push_samples(mono[start:end])
        yield end * 1000.0 / sample_rate, source.frame()
        index += 1


def list_input_devices() -> list[dict]:
    """Input-capable audio devices as reported by sounddevice."""
    import sounddevice as sd

    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info['max_input_channels'] <= 0:
            continue
        devices.append({
            'index': index,
            'name': info['name'],
            'channels': info['max_input_channels'],
            'default_samplerate': info['default_samplerate'],
        })
    return devices


class LiveCapture:
    """
    Live input capture feeding an AnalyserFrameSource.

    The sounddevice callback runs on the audio thread; `read_frame` is called
    from the analysis loop. Both touch the source under a lock.
    """

    def __init__(self, audio_config: Optional[AudioConfig] = None):
        self.config = audio_config or AudioConfig()
        self.source = AnalyserFrameSource(self.config)
        self._lock = threading.Lock()
        self._stream = None
        self.running = False

    def start(self) -> None:
        if self.running:
            return
        import sounddevice as sd

        cfg = self.config
        self._stream = sd.InputStream(
            samplerate=cfg.sample_rate,
            blocksize=cfg.block_size,
            device=cfg.device_index,
            channels=1,
            dtype='float32',
            callback=self._audio_callback,
        )
        self._stream.start()
        self.running = True
        log_event("INFO", "Capture", "Input capture started",
                  device=cfg.device_index if cfg.device_index is not None else "default",
                  sample_rate=cfg.sample_rate)

    def _audio_callback(self, indata, frames, time_info, status) -> None:
        if status:
            log_event("WARN", "Capture", "Input stream status", status=status)
        mono = to_mono_float(indata)
        with self._lock:
            self.source.push_samples(mono)

    def read_frame(self) -> SpectralFrame:
        with self._lock:
            return self.source.frame()

    def stop(self) -> None:
        self.running = False
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            log_event("INFO", "Capture", "Stopped")

    def __enter__(self) -> "LiveCapture":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
