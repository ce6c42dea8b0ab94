"""Append-only transcript archive for completed segments."""

from __future__ import annotations

import os
import threading
from pathlib import Path

from ..audio.pcm import SAMPLE_WIDTH
from .segment_log import PersistedSegment


class TranscriptStore:
    """Persist segment transcripts as SRT cues timed from the session start."""

    def __init__(self, path: Path, sample_rate: int = 16_000) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.sample_rate = sample_rate
        self._lock = threading.Lock()

    def append(self, segment: PersistedSegment) -> None:
        text = (segment.transcribed_text or "").strip()
        if not text:
            return
        start_ms = (segment.byte_offset // SAMPLE_WIDTH) * 1000 // self.sample_rate
        end_ms = start_ms + segment.sample_count * 1000 // self.sample_rate
        label = f"{segment.session_id}: " if segment.session_id else ""
        lines = [
            str(segment.sequence_index),
            f"{self._format_timestamp(start_ms)} --> {self._format_timestamp(end_ms)}",
            f"{label}{text}",
            "",
        ]
        with self._lock, self.path.open("a", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
            handle.flush()
            os.fsync(handle.fileno())

    @staticmethod
    def _format_timestamp(value_ms: int) -> str:
        hours, rest = divmod(max(0, int(value_ms)), 3_600_000)
        minutes, rest = divmod(rest, 60_000)
        seconds, millis = divmod(rest, 1000)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


__all__ = ["TranscriptStore"]
