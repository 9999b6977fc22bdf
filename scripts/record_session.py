"""Record from the default input device and print the session transcript."""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path

from mobile.segscribe.app import RecorderApp
from mobile.segscribe.config import PipelineSettings, get_settings
from mobile.segscribe.errors import SegscribeError
from mobile.segscribe.services.logger import configure_logging


def build_settings(args: argparse.Namespace) -> PipelineSettings:
    overrides = {}
    if args.data_dir is not None:
        overrides["data_dir"] = str(args.data_dir)
    if args.segment_seconds is not None:
        overrides["segment_seconds"] = args.segment_seconds
    if args.quality is not None:
        overrides["audio_quality"] = args.quality
    if args.language is not None:
        overrides["language"] = args.language
    base = get_settings()
    if not overrides:
        return base
    return PipelineSettings(**{**base.model_dump(), **overrides})


def main() -> int:
    parser = argparse.ArgumentParser(description="Record a segmented session and transcribe it.")
    parser.add_argument("--title", default=None, help="Optional session title.")
    parser.add_argument("--data-dir", type=Path, default=None, help="Where segments and state are stored.")
    parser.add_argument(
        "--segment-seconds",
        type=int,
        choices=(15, 30, 60, 120),
        default=None,
        help="Nominal segment duration.",
    )
    parser.add_argument("--quality", choices=("low", "medium", "high"), default=None)
    parser.add_argument("--language", default=None, help="Language hint sent to the remote endpoint.")
    parser.add_argument(
        "--drain-timeout",
        type=float,
        default=600.0,
        help="Seconds to wait for pending transcriptions after recording stops (default: 600).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    configure_logging(args.verbose)
    app = RecorderApp(build_settings(args))
    app.start()
    try:
        session = app.start_recording(args.title)
    except SegscribeError as exc:
        print(f"Could not start recording: {exc}", file=sys.stderr)
        app.shutdown()
        return 1

    print("Recording... press Ctrl-C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass

    app.stop_recording()
    if not app.scheduler.wait_idle(args.drain_timeout):
        print("Timed out waiting for transcriptions; remaining work resumes on next start.", file=sys.stderr)
    transcript = app.session_transcript(session.id)
    progress = app.session_progress(session.id)
    app.shutdown()

    print(f"\nSession {session.id} ({progress:.0%} transcribed)")
    print(transcript or "(no transcript)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
