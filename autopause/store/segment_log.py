"""Durable log of chunks queued for transcription."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidTransition, SegmentNotFound
from ..metrics import SEGMENT_TRANSITIONS

LOGGER = logging.getLogger("autopause.segment_log")


class SegmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def terminal(self) -> bool:
        return self in (SegmentStatus.COMPLETED, SegmentStatus.FAILED)

    def can_become(self, target: "SegmentStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: Dict[SegmentStatus, frozenset] = {
    SegmentStatus.PENDING: frozenset({SegmentStatus.PROCESSING, SegmentStatus.FAILED}),
    SegmentStatus.PROCESSING: frozenset(
        {SegmentStatus.COMPLETED, SegmentStatus.FAILED, SegmentStatus.INTERRUPTED}
    ),
    SegmentStatus.INTERRUPTED: frozenset({SegmentStatus.PROCESSING, SegmentStatus.FAILED}),
    SegmentStatus.COMPLETED: frozenset(),
    SegmentStatus.FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PersistedSegment(BaseModel):
    """One chunk queued for (or finished by) transcription.

    Instances are immutable; status changes go through ``SegmentLog`` which
    swaps in the copy returned by ``transition``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    sequence_index: int
    session_id: str = ""
    audio_file_path: str
    byte_offset: int = Field(ge=0)
    sample_count: int = Field(ge=0)
    status: SegmentStatus = SegmentStatus.PENDING
    transcribed_text: Optional[str] = None
    failure_reason: Optional[str] = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def transition(self, target: SegmentStatus, **changes) -> "PersistedSegment":
        if not self.status.can_become(target):
            raise InvalidTransition(self.sequence_index, self.status.value, target.value)
        return self.model_copy(update={"status": target, **changes})


class SegmentLog:
    """JSON-backed segment records keyed by ``sequence_index``.

    Every mutation rewrites the document through a temp file, fsync and
    ``os.replace``, so a record is on disk before the call returns.
    """

    version = 1

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        # Indices owned by this process: enqueued here or already handed out by recovery.
        self._claimed: set[int] = set()
        self._next_index, self._segments = self._load()

    def enqueue(
        self,
        audio_file_path: str,
        byte_offset: int,
        sample_count: int,
        *,
        session_id: str = "",
    ) -> PersistedSegment:
        with self._lock:
            segment = PersistedSegment(
                sequence_index=self._next_index,
                session_id=session_id,
                audio_file_path=str(audio_file_path),
                byte_offset=byte_offset,
                sample_count=sample_count,
            )
            self._segments[segment.sequence_index] = segment
            self._next_index += 1
            self._claimed.add(segment.sequence_index)
            self._persist()
        SEGMENT_TRANSITIONS.labels(status=SegmentStatus.PENDING.value).inc()
        return segment

    def get(self, index: int) -> PersistedSegment:
        with self._lock:
            try:
                return self._segments[index]
            except KeyError:
                raise SegmentNotFound(f"no segment with index {index}") from None

    def list(self, status: SegmentStatus | None = None) -> List[PersistedSegment]:
        with self._lock:
            items = sorted(self._segments.values(), key=lambda item: item.sequence_index)
        if status is None:
            return items
        return [item for item in items if item.status is status]

    def mark_processing(self, index: int) -> PersistedSegment:
        with self._lock:
            current = self.get(index)
            return self._transition(index, SegmentStatus.PROCESSING, attempts=current.attempts + 1)

    def mark_completed(self, index: int, text: str) -> PersistedSegment:
        return self._transition(
            index,
            SegmentStatus.COMPLETED,
            transcribed_text=text,
            completed_at=_utcnow(),
        )

    def mark_failed(self, index: int, reason: str) -> PersistedSegment:
        return self._transition(
            index,
            SegmentStatus.FAILED,
            failure_reason=reason[-200:],
            completed_at=_utcnow(),
        )

    def _transition(self, index: int, target: SegmentStatus, **changes) -> PersistedSegment:
        with self._lock:
            updated = self.get(index).transition(target, **changes)
            self._segments[index] = updated
            self._persist()
        SEGMENT_TRANSITIONS.labels(status=target.value).inc()
        return updated

    def load_recoverable(self) -> List[PersistedSegment]:
        """Return segments a previous process left unfinished, oldest first.

        A ``processing`` record at this point means its process died mid-call,
        so it is relabelled ``interrupted``. Returned segments are claimed:
        calling again without new work yields nothing.
        """
        with self._lock:
            relabelled = 0
            for index, segment in list(self._segments.items()):
                if segment.status is SegmentStatus.PROCESSING and index not in self._claimed:
                    self._segments[index] = segment.transition(SegmentStatus.INTERRUPTED)
                    relabelled += 1
            if relabelled:
                self._persist()
                SEGMENT_TRANSITIONS.labels(status=SegmentStatus.INTERRUPTED.value).inc(relabelled)
                LOGGER.warning("Marked %d in-flight segment(s) as interrupted", relabelled)
            recoverable = [
                segment
                for segment in self.list()
                if segment.status in (SegmentStatus.PENDING, SegmentStatus.INTERRUPTED)
                and segment.sequence_index not in self._claimed
            ]
            self._claimed.update(segment.sequence_index for segment in recoverable)
        return recoverable

    def cleanup(self, older_than: timedelta) -> List[PersistedSegment]:
        """Drop finished records whose results were absorbed downstream."""
        cutoff = _utcnow() - older_than
        with self._lock:
            removed = [
                segment
                for segment in self._segments.values()
                if segment.status.terminal
                and segment.completed_at is not None
                and segment.completed_at <= cutoff
            ]
            for segment in removed:
                del self._segments[segment.sequence_index]
                self._claimed.discard(segment.sequence_index)
            if removed:
                self._persist()
        if removed:
            LOGGER.info("Cleaned up %d finished segment(s)", len(removed))
        return sorted(removed, key=lambda item: item.sequence_index)

    def referenced_audio(self) -> set[str]:
        with self._lock:
            return {segment.audio_file_path for segment in self._segments.values()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._segments)

    def _load(self) -> tuple[int, Dict[int, PersistedSegment]]:
        if not self.path.exists():
            return 1, {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            backup = self.path.with_name(f"{self.path.name}.corrupt-{int(time.time())}")
            LOGGER.error("Segment log %s unreadable (%s); moved to %s", self.path, exc, backup.name)
            os.replace(self.path, backup)
            return 1, {}
        segments: Dict[int, PersistedSegment] = {}
        for item in raw.get("segments", []):
            try:
                segment = PersistedSegment.model_validate(item)
            except ValidationError as exc:
                LOGGER.error("Skipping malformed segment record %r: %s", item, exc)
                continue
            segments[segment.sequence_index] = segment
        highest = max(segments, default=0)
        next_index = max(int(raw.get("next_index", 1)), highest + 1)
        return next_index, segments

    def _persist(self) -> None:
        document = {
            "version": self.version,
            "next_index": self._next_index,
            "segments": [segment.model_dump(mode="json") for segment in self.list()],
        }
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(document, handle, ensure_ascii=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, self.path)


__all__ = ["PersistedSegment", "SegmentLog", "SegmentStatus"]
