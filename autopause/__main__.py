"""Command line entry point: ``python -m autopause``."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

from .audio.capture import MicrophoneCapture, iter_wav_blocks
from .config import get_settings
from .errors import AutopauseError
from .session import RecordingSession
from .store.segment_log import SegmentStatus

LOGGER = logging.getLogger("autopause.cli")


def _print_status(event) -> None:
    index, status = event
    if status in (SegmentStatus.COMPLETED, SegmentStatus.FAILED):
        LOGGER.info("segment %d -> %s", index, status.value)


def _print_interim(text: str) -> None:
    print(f"... {text}", file=sys.stderr)


def _transcribe(session: RecordingSession, args: argparse.Namespace) -> int:
    session.recover_pending_segments()
    session.interim_text_updates.subscribe(_print_interim)
    session.start()
    for block in iter_wav_blocks(Path(args.file), sample_rate=session.settings.sample_rate):
        session.process_samples(block)
    session.stop()
    print(session.transcript())
    return 0


def _record(session: RecordingSession, args: argparse.Namespace) -> int:
    session.recover_pending_segments()
    session.interim_text_updates.subscribe(_print_interim)
    capture = MicrophoneCapture(session.process_samples, sample_rate=session.settings.sample_rate)
    done = threading.Event()
    session.start()
    capture.start()
    try:
        done.wait(args.seconds)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; finishing the last chunk")
    finally:
        capture.stop()
    session.stop()
    print(session.transcript())
    return 0


def _recover(session: RecordingSession, args: argparse.Namespace) -> int:
    count = session.recover_pending_segments()
    session.wait_idle(session.settings.drain_timeout_s)
    print(f"recovered {count} segment(s)")
    return 0


def _cleanup(session: RecordingSession, args: argparse.Namespace) -> int:
    removed = session.cleanup(timedelta(days=args.days))
    print(f"removed {removed} segment record(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="autopause", description="Chunk speech at pauses and transcribe it.")
    parser.add_argument("--log-level", default="INFO", help="Python logging level (default: INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    transcribe = sub.add_parser("transcribe", help="Run an audio file through the live pipeline.")
    transcribe.add_argument("file", help="Mono 16-bit audio file at the configured sample rate.")
    transcribe.set_defaults(handler=_transcribe)

    record = sub.add_parser("record", help="Transcribe the default microphone until Ctrl-C.")
    record.add_argument("--seconds", type=float, default=None, help="Stop after this many seconds.")
    record.set_defaults(handler=_record)

    recover = sub.add_parser("recover", help="Finish segments left over from an earlier run.")
    recover.set_defaults(handler=_recover)

    cleanup = sub.add_parser("cleanup", help="Delete finished segment records and unreferenced audio.")
    cleanup.add_argument("--days", type=float, default=7.0, help="Age threshold in days (default: 7).")
    cleanup.set_defaults(handler=_cleanup)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        session = RecordingSession(get_settings())
    except AutopauseError as exc:
        LOGGER.error("%s", exc)
        return 2
    session.segment_status_changed.subscribe(_print_status)
    try:
        return args.handler(session, args)
    except AutopauseError as exc:
        LOGGER.error("%s", exc)
        return 1
    finally:
        session.dispatcher.stop(drain=True, timeout=session.settings.drain_timeout_s)


if __name__ == "__main__":
    sys.exit(main())
