"""Background worker that drains finalized chunks into the transcription engine."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import EngineError, InvalidTransition
from ..metrics import TRANSCRIPTION_LATENCY
from ..store.segment_log import PersistedSegment, SegmentLog, SegmentStatus
from ..store.transcript_store import TranscriptStore
from .engine import TranscriptionEngine

LOGGER = logging.getLogger("autopause.dispatcher")

EMPTY_TRANSCRIPTION = "empty transcription"


@dataclass(slots=True, frozen=True)
class SegmentJob:
    sequence_index: int
    pcm: bytes


class SegmentDispatcher:
    """Transcribes persisted segments one at a time, in submission order.

    ``submit`` never blocks: the queue is bounded, and a segment that does not
    fit stays ``pending`` in the log for the next recovery pass. Engine
    failures are retried with exponential backoff up to ``retry_limit``
    attempts before the segment is marked failed.
    """

    def __init__(
        self,
        engine: TranscriptionEngine,
        log: SegmentLog,
        *,
        transcripts: TranscriptStore | None = None,
        on_status: Optional[Callable[[int, SegmentStatus], None]] = None,
        max_queue: int = 64,
        retry_limit: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 60.0,
    ) -> None:
        self.engine = engine
        self.log = log
        self.transcripts = transcripts
        self.on_status = on_status
        self.retry_limit = max(1, int(retry_limit))
        self.backoff_base = max(0.0, float(backoff_base))
        self.backoff_max = max(0.0, float(backoff_max))
        self._queue: "queue.Queue[SegmentJob]" = queue.Queue(maxsize=max_queue)
        self._stop_event = threading.Event()
        self._abort_event = threading.Event()
        self._idle = threading.Condition()
        self._outstanding = 0
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._abort_event.clear()
        self._thread = threading.Thread(target=self._run, name="autopause-dispatcher", daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def submit(self, job: SegmentJob, *, block: bool = False) -> bool:
        """Queue ``job``; with ``block`` wait for room instead of giving up."""
        with self._idle:
            self._outstanding += 1
        try:
            if block:
                self._queue.put(job)
            else:
                self._queue.put_nowait(job)
        except queue.Full:
            with self._idle:
                self._outstanding -= 1
                self._idle.notify_all()
            LOGGER.error(
                "Dispatch queue full; segment %d stays pending until recovery",
                job.sequence_index,
            )
            return False
        return True

    def join(self, timeout: float | None = None) -> bool:
        """Wait until every submitted job has reached a decision."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._outstanding:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stop(self, *, drain: bool = True, timeout: float | None = None) -> None:
        if drain:
            self.join(timeout)
        else:
            self._abort_event.set()
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout if timeout is not None else 5)

    def pending(self) -> int:
        with self._idle:
            return self._outstanding

    def _run(self) -> None:
        while not self._stop_event.is_set() or not self._queue.empty():
            if self._abort_event.is_set():
                break
            try:
                job = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            try:
                self._process(job)
            except Exception:
                LOGGER.exception("Segment %d: dispatch aborted", job.sequence_index)
            finally:
                self._queue.task_done()
                with self._idle:
                    self._outstanding -= 1
                    self._idle.notify_all()

    def _process(self, job: SegmentJob) -> None:
        index = job.sequence_index
        try:
            self.log.mark_processing(index)
        except InvalidTransition as exc:
            LOGGER.error("Refusing to transcribe segment %d: %s", index, exc)
            return
        self._notify(index, SegmentStatus.PROCESSING)

        last_error = "transcription failed"
        for attempt in range(1, self.retry_limit + 1):
            try:
                with TRANSCRIPTION_LATENCY.labels(path="final").time():
                    result = self.engine.transcribe(job.pcm)
            except EngineError as exc:
                last_error = str(exc) or exc.__class__.__name__
                LOGGER.warning(
                    "Segment %d attempt %d/%d failed: %s", index, attempt, self.retry_limit, last_error
                )
                if attempt < self.retry_limit and self._abort_event.wait(self._backoff(attempt)):
                    LOGGER.warning("Dispatcher aborted; segment %d left in processing", index)
                    return
                continue
            except Exception as exc:
                LOGGER.exception("Segment %d: unexpected engine error", index)
                self._fail(index, f"unexpected engine error: {exc}")
                return
            text = result.text.strip()
            if not text:
                self._fail(index, EMPTY_TRANSCRIPTION)
                return
            self._complete(index, text)
            return
        self._fail(index, last_error)

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_max, self.backoff_base * (2 ** (attempt - 1)))

    def _complete(self, index: int, text: str) -> None:
        segment = self.log.mark_completed(index, text)
        LOGGER.info("Segment %d done: %r", index, text[:80])
        self._archive(segment)
        self._notify(index, SegmentStatus.COMPLETED)

    def _fail(self, index: int, reason: str) -> None:
        self.log.mark_failed(index, reason)
        LOGGER.error("Segment %d failed: %s", index, reason)
        self._notify(index, SegmentStatus.FAILED)

    def _archive(self, segment: PersistedSegment) -> None:
        if not self.transcripts:
            return
        try:
            self.transcripts.append(segment)
        except OSError:
            LOGGER.exception("Transcript archive write failed for segment %d", segment.sequence_index)

    def _notify(self, index: int, status: SegmentStatus) -> None:
        if self.on_status:
            self.on_status(index, status)


__all__ = ["EMPTY_TRANSCRIPTION", "SegmentDispatcher", "SegmentJob"]
