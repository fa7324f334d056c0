#!/usr/bin/env python3
"""
beatscope - Beat & spectral analysis

Runs the beat engine over a WAV file or live input and prints kick/snare
detections, tempo and confidence as they happen.
"""

import argparse
import cProfile
import sys
import time
from pathlib import Path

from beat_engine import AnalysisResult, BeatEngine
from config_persistence import get_config_file, load_config
from logging_utils import log_event, log_observer, set_log_level


class _Reporter:
    """Prints detections as they happen and a status line once per second."""

    def __init__(self, engine: BeatEngine):
        self.engine = engine
        self._last_status_ms: float | None = None

    def __call__(self, result: AnalysisResult) -> None:
        _report(result)
        now = result.current_time
        if self._last_status_ms is None or now - self._last_status_ms >= 1000.0:
            self._last_status_ms = now
            stats = self.engine.get_confidence_stats()
            log_event("INFO", "Status", f"{now / 1000.0:.1f}s",
                      bpm=f"{result.bpm:.0f}",
                      confidence=f"{stats.smoothed:.2f}",
                      reliability=stats.reliability,
                      noisiness=self.engine.get_zcr_stats().noisiness,
                      fps=f"{self.engine.frame_rate:.0f}")


def _report(result: AnalysisResult) -> None:
    if result.kick_detected or result.snare_detected:
        hits = "+".join(name for name, hit in (("KICK", result.kick_detected),
                                               ("SNARE", result.snare_detected)) if hit)
        print(
            f"{result.current_time / 1000.0:8.2f}s  {hits:<10} "
            f"bpm={result.bpm:5.0f}  conf={result.beat_confidence:.2f}  "
            f"kick={result.kick_energy:.3f}  flux={result.spectral_flux:.3f}",
            flush=True,
        )


def _print_devices() -> int:
    from frame_source import list_input_devices

    print("Available Input Devices:\n")
    for device in list_input_devices():
        print(f"[{device['index']}] {device['name']}")
        print(f"    Input: {device['channels']} channels, Default SR: {device['default_samplerate']} Hz")
    return 0


def run_file(engine: BeatEngine, path: Path, seconds: float | None) -> int:
    from frame_source import iter_wav_frames

    report = _Reporter(engine)
    try:
        for timestamp, frame in iter_wav_frames(path, engine.config.audio):
            if seconds is not None and timestamp > seconds * 1000.0:
                break
            report(engine.analyze_frame(frame, timestamp))
    except (OSError, ValueError) as e:
        log_event("ERROR", "Run", "Could not read audio file", path=path, error=e)
        return 1
    return 0


def run_live(engine: BeatEngine, seconds: float | None) -> int:
    from frame_source import LiveCapture

    report = _Reporter(engine)
    interval = 1.0 / engine.config.audio.frame_rate
    started = time.perf_counter()
    try:
        with LiveCapture(engine.config.audio) as capture:
            while seconds is None or time.perf_counter() - started < seconds:
                tick = time.perf_counter()
                report(engine.analyze_frame(capture.read_frame()))
                time.sleep(max(0.0, interval - (time.perf_counter() - tick)))
    except KeyboardInterrupt:
        print()
    except Exception as e:
        log_event("ERROR", "Run", "Live capture failed", error=e)
        return 1
    return 0


def run_app(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config) if args.config else None)
    set_log_level(args.log_level or config.log_level)
    if args.device is not None:
        config.audio.device_index = args.device
    if args.fps is not None:
        config.audio.frame_rate = max(1.0, args.fps)

    engine = BeatEngine(config, observer=log_observer())
    log_event("INFO", "Run", "Engine ready", config=args.config or get_config_file())

    try:
        if args.live:
            return run_live(engine, args.seconds)
        return run_file(engine, Path(args.file), args.seconds)
    finally:
        engine.log_session_summary()
        stats = engine.get_confidence_stats()
        log_event("INFO", "Run", "Final confidence", smoothed=f"{stats.smoothed:.2f}",
                  reliability=stats.reliability)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run beatscope beat & spectral analysis")
    parser.add_argument("file", nargs="?", help="WAV file to analyse")
    parser.add_argument("--live", action="store_true", help="Analyse live input instead of a file")
    parser.add_argument("--device", type=int, default=None, help="Input device index for --live")
    parser.add_argument("--list-devices", action="store_true", help="List input devices and exit")
    parser.add_argument("--config", default=None, help="Path to a JSON config (default: ~/.beatscope/config.json)")
    parser.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR (DEBUG traces every detection)")
    parser.add_argument("--fps", type=float, default=None, help="Analysis frame rate")
    parser.add_argument("--seconds", type=float, default=None, help="Stop after this many seconds")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable cProfile and save stats to --profile-out",
    )
    parser.add_argument(
        "--profile-out",
        default="profile.prof",
        help="Path to save cProfile stats (default: profile.prof)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_devices:
        sys.exit(_print_devices())
    if not args.live and not args.file:
        parser.error("a WAV file or --live is required")

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_app(args)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_app(args)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
