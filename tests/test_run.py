import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import numpy as np
from scipy.io import wavfile

import run


def write_click_track(path: Path, sample_rate: int = 8000, seconds: float = 4.0, bpm: float = 120.0):
    """Low thumps on every beat over silence."""
    total = int(sample_rate * seconds)
    data = np.zeros(total, dtype=np.float32)
    period = int(sample_rate * 60.0 / bpm)
    t = np.arange(int(sample_rate * 0.05)) / sample_rate
    thump = (0.9 * np.sin(2 * np.pi * 60.0 * t) * np.exp(-t * 40.0)).astype(np.float32)
    for start in range(period // 2, total - len(thump), period):
        data[start:start + len(thump)] = thump
    wavfile.write(str(path), sample_rate, (data * 32767).astype(np.int16))


class TestRun(unittest.TestCase):
    def test_requires_input(self):
        with redirect_stdout(io.StringIO()), mock.patch("sys.stderr", new=io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                run.main([])
        self.assertEqual(ctx.exception.code, 2)

    def test_analyses_wav_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            wav = Path(tmpdir) / "clicks.wav"
            cfg = Path(tmpdir) / "config.json"
            write_click_track(wav)

            out = io.StringIO()
            with redirect_stdout(out), mock.patch("run.log_event"), \
                    mock.patch("beat_engine.log_event") as summary_mock:
                with self.assertRaises(SystemExit) as ctx:
                    run.main([str(wav), "--config", str(cfg), "--seconds", "2"])

        self.assertEqual(ctx.exception.code, 0)
        summary_mock.assert_called_once()
        _, kwargs = summary_mock.call_args
        self.assertGreater(kwargs["frames"], 100)

    def test_unreadable_file_exits_non_zero(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            missing = Path(tmpdir) / "missing.wav"
            cfg = Path(tmpdir) / "config.json"
            with mock.patch("run.log_event") as log_event_mock, mock.patch("beat_engine.log_event"):
                with self.assertRaises(SystemExit) as ctx:
                    run.main([str(missing), "--config", str(cfg)])

        self.assertEqual(ctx.exception.code, 1)
        levels = [call.args[0] for call in log_event_mock.call_args_list]
        self.assertIn("ERROR", levels)

    def test_list_devices(self):
        devices = [{'index': 3, 'name': 'Mic', 'channels': 2, 'default_samplerate': 48000.0}]
        out = io.StringIO()
        with redirect_stdout(out), mock.patch("frame_source.list_input_devices", return_value=devices):
            with self.assertRaises(SystemExit) as ctx:
                run.main(["--list-devices"])

        self.assertEqual(ctx.exception.code, 0)
        self.assertIn("[3] Mic", out.getvalue())


if __name__ == "__main__":
    unittest.main()
