import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
from scipy.io import wavfile

from config import AudioConfig
from frame_source import AnalyserFrameSource, LiveCapture, iter_wav_frames, to_mono_float


class TestAnalyserFrameSource(unittest.TestCase):
    def test_silence_maps_to_zero_and_centre(self):
        source = AnalyserFrameSource()
        frame = source.frame()
        self.assertEqual(frame.bin_count, 1024)
        self.assertEqual(len(frame.frequency_magnitudes), 1024)
        self.assertFalse(np.any(frame.frequency_magnitudes))
        self.assertTrue(np.all(frame.time_samples == 128))
        self.assertEqual(len(frame.time_samples), frame.bin_count)
        self.assertEqual(frame.sample_rate, 44100.0)

    def test_sine_peaks_at_its_bin(self):
        cfg = AudioConfig(smoothing_time_constant=0.0)
        source = AnalyserFrameSource(cfg)
        freq = 100 * cfg.sample_rate / cfg.fft_size
        t = np.arange(cfg.fft_size) / cfg.sample_rate
        source.push_samples(0.5 * np.sin(2 * np.pi * freq * t))

        mags = source.frame().frequency_magnitudes
        self.assertEqual(int(np.argmax(mags)), 100)
        self.assertGreater(int(mags[100]), 200)

    def test_short_pushes_roll_the_buffer(self):
        source = AnalyserFrameSource(AudioConfig(fft_size=8))
        source.push_samples([0.5, 0.5])
        samples = source.time_bytes()
        self.assertEqual(samples.tolist(), [128, 128, 192, 192])

    def test_reset(self):
        source = AnalyserFrameSource(AudioConfig(fft_size=8))
        source.push_samples(np.ones(8))
        source.reset()
        self.assertTrue(np.all(source.time_bytes() == 128))


class TestWavFrames(unittest.TestCase):
    def test_frames_follow_audio_position(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "silence.wav"
            wavfile.write(str(path), 8000, np.zeros((8000, 2), dtype=np.int16))

            frames = list(iter_wav_frames(path, AudioConfig(frame_rate=50.0)))

        self.assertEqual(len(frames), 50)
        self.assertAlmostEqual(frames[0][0], 20.0)
        self.assertAlmostEqual(frames[-1][0], 1000.0)
        self.assertEqual(frames[0][1].sample_rate, 8000.0)

    def test_to_mono_float(self):
        self.assertAlmostEqual(float(to_mono_float(np.array([128], dtype=np.uint8))[0]), 0.0)
        stereo = np.array([[16384, -16384], [16384, 16384]], dtype=np.int16)
        self.assertEqual(to_mono_float(stereo).tolist(), [0.0, 0.5])


class TestLiveCapture(unittest.TestCase):
    def test_stream_feeds_frames(self):
        fake_sd = mock.MagicMock()
        with mock.patch.dict(sys.modules, {"sounddevice": fake_sd}):
            capture = LiveCapture(AudioConfig(fft_size=8, block_size=4))
            capture.start()

            _, kwargs = fake_sd.InputStream.call_args
            self.assertEqual(kwargs["blocksize"], 4)
            self.assertEqual(kwargs["channels"], 1)
            self.assertTrue(capture.running)

            kwargs["callback"](np.full((4, 1), 0.5, dtype=np.float32), 4, None, None)
            frame = capture.read_frame()
            self.assertEqual(frame.time_samples.tolist(), [192] * 4)

            capture.stop()

        stream = fake_sd.InputStream.return_value
        stream.start.assert_called_once()
        stream.stop.assert_called_once()
        stream.close.assert_called_once()
        self.assertFalse(capture.running)


if __name__ == "__main__":
    unittest.main()
