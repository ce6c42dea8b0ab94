"""Recording session: wires capture, chunking, persistence and transcription."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .audio.chunker import ChunkBoundaryEngine
from .audio.noise_filter import HighPassFilter
from .audio.pcm import SAMPLE_WIDTH, PcmDecoder, PcmInput
from .audio.types import AudioChunk, ChunkerStats, ChunkInfo
from .config import PipelineSettings, build_engine, get_settings
from .errors import SegmentNotFound, SessionError, StorageMissing
from .events import EventStream
from .services.dispatcher import SegmentDispatcher, SegmentJob
from .services.engine import TranscriptionEngine
from .services.interim import RollingInterimTranscriber
from .store.audio_store import AudioStore, SessionAudioWriter
from .store.segment_log import SegmentLog, SegmentStatus
from .store.transcript_store import TranscriptStore
from .text import join_segments, remove_overlap

LOGGER = logging.getLogger("autopause.session")

AUDIO_SOURCE_MISSING = "audio source missing"


@dataclass(slots=True, frozen=True)
class SessionStats:
    active: bool
    session_id: Optional[str]
    chunker: ChunkerStats
    rolling_buffer_samples: int
    interim_in_flight: bool
    interim_skipped_ticks: int
    dispatch_pending: int
    seconds_since_audio: Optional[float]
    stream_healthy: bool


class RecordingSession:
    """One capture session over a shared segment log and transcription engine.

    ``process_samples`` runs on the caller's (capture) thread and never waits
    on the engine: finalized chunks are made durable in the segment log and
    then handed to the dispatcher's bounded queue. Interim text comes from a
    separate timer owned by this session.
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        *,
        engine: TranscriptionEngine | None = None,
        segment_log: SegmentLog | None = None,
        audio_store: AudioStore | None = None,
        transcripts: TranscriptStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        cfg = self.settings
        self.engine = engine or build_engine(cfg)
        self.segment_log = segment_log or SegmentLog(cfg.segment_log_file)
        self.audio_store = audio_store or AudioStore(cfg.audio_path, cfg.sample_rate)
        self.transcripts = transcripts or TranscriptStore(cfg.transcript_file, cfg.sample_rate)

        self.interim_text_updates: EventStream[str] = EventStream("interim_text_updates")
        self.chunk_finalized: EventStream[ChunkInfo] = EventStream("chunk_finalized")
        self.segment_status_changed: EventStream[Tuple[int, SegmentStatus]] = EventStream(
            "segment_status_changed"
        )
        self.speech_activity: EventStream[bool] = EventStream("speech_activity")

        self.chunker = ChunkBoundaryEngine(
            cfg.sample_rate,
            on_chunk=self._handle_chunk,
            energy_threshold=cfg.energy_threshold,
            silence_threshold_ms=cfg.silence_threshold_ms,
            min_chunk_ms=cfg.min_chunk_ms,
            max_chunk_ms=cfg.max_chunk_ms,
            min_speech_ms=cfg.min_speech_ms,
        )
        self.interim = RollingInterimTranscriber(
            self.engine,
            cfg.sample_rate,
            retention_ms=cfg.retention_ms,
            transcription_ms=cfg.transcription_ms,
            overlap_ms=cfg.overlap_ms,
            interval_s=cfg.interim_interval_s,
            is_speech=lambda: self.chunker.vad.is_speaking,
            on_text=self.interim_text_updates.publish,
        )
        self.dispatcher = SegmentDispatcher(
            self.engine,
            self.segment_log,
            transcripts=self.transcripts,
            on_status=self._publish_status,
            max_queue=cfg.dispatch_queue_size,
            retry_limit=cfg.retry_limit,
            backoff_base=cfg.retry_backoff_s,
            backoff_max=cfg.retry_backoff_max_s,
        )
        self._filter = (
            HighPassFilter(cfg.sample_rate, cfg.highpass_cutoff_hz) if cfg.highpass_cutoff_hz else None
        )
        self._decoder = PcmDecoder()
        self._lock = threading.RLock()
        self._active = False
        self._session_id: Optional[str] = None
        self._writer: Optional[SessionAudioWriter] = None
        self._base_offset = 0
        self._last_audio_at: Optional[float] = None
        self._segments: List[int] = []
        self._texts: Dict[int, str] = {}
        self._texts_lock = threading.Lock()
        self._speaking = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def segment_indices(self) -> List[int]:
        with self._lock:
            return list(self._segments)

    def recover_pending_segments(self) -> int:
        """Replay segments a previous process left unfinished; returns how many were queued."""
        with self._lock:
            if self._active:
                raise SessionError("recovery must run before capture starts")
            recoverable = self.segment_log.load_recoverable()
            if not recoverable:
                return 0
            self.dispatcher.start()
            recovered = 0
            for segment in recoverable:
                index = segment.sequence_index
                try:
                    pcm = self.audio_store.read_samples(
                        segment.audio_file_path, segment.byte_offset, segment.sample_count
                    )
                except StorageMissing as exc:
                    LOGGER.error("Segment %d cannot be recovered: %s", index, exc)
                    self.segment_log.mark_failed(index, f"{AUDIO_SOURCE_MISSING}: {segment.audio_file_path}")
                    self._publish_status(index, SegmentStatus.FAILED)
                    continue
                if self.dispatcher.submit(SegmentJob(index, pcm), block=True):
                    recovered += 1
            LOGGER.info("Recovered %d of %d unfinished segment(s)", recovered, len(recoverable))
            return recovered

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._session_id = self.audio_store.new_session_id()
            self._writer = self.audio_store.open_session(self._session_id)
            self._base_offset = self._writer.offset
            self._segments = []
            self._speaking = False
            self.chunker.reset()
            self.interim.reset()
            self._decoder.reset()
            if self._filter:
                self._filter.reset()
            self.dispatcher.start()
            if self.settings.interim_enabled:
                self.interim.start()
            self._last_audio_at = time.monotonic()
            self._active = True
        LOGGER.info("Recording session %s started", self._session_id)

    def process_samples(self, data: PcmInput) -> None:
        with self._lock:
            if not self._active or self._writer is None:
                raise SessionError("process_samples called outside an active session")
            samples = self._decoder.decode(data)
            if samples.size == 0:
                return
            if self._filter:
                samples = self._filter.apply(samples)
            self._last_audio_at = time.monotonic()
            self._writer.append(samples)
            # Rolling buffer first, so a finalize in this batch trims it to the overlap.
            self.interim.append(samples)
            self.chunker.process_samples(samples)
            speaking = self.chunker.vad.is_speaking
            if speaking != self._speaking:
                self._speaking = speaking
                self.speech_activity.publish(speaking)

    def _handle_chunk(self, chunk: AudioChunk) -> None:
        writer = self._writer
        if writer is None:
            raise SessionError("chunk finalized without an open session file")
        writer.sync()
        segment = self.segment_log.enqueue(
            str(writer.path),
            self._base_offset + chunk.start_sample * SAMPLE_WIDTH,
            chunk.sample_count,
            session_id=self._session_id or "",
        )
        index = segment.sequence_index
        self._segments.append(index)
        self.interim.on_finalize()
        LOGGER.info(
            "Chunk %d queued (%s): %d ms audio, %d ms speech",
            index,
            chunk.reason,
            chunk.total_ms,
            chunk.speech_ms,
        )
        self.chunk_finalized.publish(
            ChunkInfo(
                sequence_index=index,
                sample_count=chunk.sample_count,
                speech_ms=chunk.speech_ms,
                total_ms=chunk.total_ms,
                reason=chunk.reason,
            )
        )
        self._publish_status(index, SegmentStatus.PENDING)
        self.dispatcher.submit(SegmentJob(index, chunk.to_bytes()))

    def stop(self, *, timeout: float | None = None) -> Optional[Path]:
        """Flush the final chunk and wait for queued segments to finish.

        Returns the session's audio file (or its FLAC export when enabled).
        """
        if not self._active:
            return None
        # The last interim pass waits on the engine; ingest keeps running meanwhile.
        if self.settings.interim_enabled:
            self.interim.finish(self.settings.silence_pad_ms)
            self.interim.stop()
        with self._lock:
            if not self._active or self._writer is None:
                return None
            self.chunker.flush()
            self._active = False
            writer = self._writer
            writer.close()
            self._writer = None
        wait = self.settings.drain_timeout_s if timeout is None else timeout
        if not self.dispatcher.join(wait):
            LOGGER.warning("Timed out after %.1fs waiting for %d segment(s)", wait, self.dispatcher.pending())
        LOGGER.info("Recording session %s stopped with %d segment(s)", self._session_id, len(self._segments))
        if self.settings.export_recordings and writer.offset > self._base_offset:
            return self.audio_store.export(writer.path, writer.path.with_suffix(".flac"))
        return writer.path

    def cancel(self) -> None:
        """Stop capture without flushing; buffered audio is dropped."""
        with self._lock:
            if not self._active:
                return
            self.interim.stop()
            self.chunker.reset()
            self._active = False
            if self._writer:
                self._writer.close()
                self._writer = None
        LOGGER.info("Recording session %s cancelled", self._session_id)

    def close(self, *, timeout: float | None = None) -> None:
        self.stop(timeout=timeout)
        self.dispatcher.stop(drain=True, timeout=timeout)

    def __enter__(self) -> "RecordingSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.cancel()
            self.dispatcher.stop(drain=False)

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self.dispatcher.join(timeout)

    def cleanup(self, older_than: timedelta) -> int:
        """Drop finished records and the audio files nothing references anymore."""
        removed = self.segment_log.cleanup(older_than)
        with self._lock:
            keep = [str(self._writer.path)] if self._writer else []
        self.audio_store.delete_unreferenced(self.segment_log.referenced_audio(), keep)
        return len(removed)

    def transcript(self) -> str:
        texts = []
        for index in self.segment_indices:
            with self._texts_lock:
                text = self._texts.get(index)
            if text is None:
                try:
                    segment = self.segment_log.get(index)
                except SegmentNotFound:
                    continue
                if segment.status is not SegmentStatus.COMPLETED:
                    continue
                text = segment.transcribed_text or ""
            texts.append(text)
        return join_segments(texts)

    def display_text(self) -> str:
        confirmed = self.transcript()
        interim = self.interim.interim_text
        if not interim:
            return confirmed
        last = confirmed.rsplit("\n\n", 1)[-1] if confirmed else ""
        return join_segments([confirmed, remove_overlap(last, interim)])

    def stats(self) -> SessionStats:
        since = None if self._last_audio_at is None else time.monotonic() - self._last_audio_at
        healthy = not self._active or (since is not None and since < self.settings.stream_stall_s)
        return SessionStats(
            active=self._active,
            session_id=self._session_id,
            chunker=self.chunker.stats(),
            rolling_buffer_samples=self.interim.buffer_samples,
            interim_in_flight=self.interim.busy,
            interim_skipped_ticks=self.interim.skipped_ticks,
            dispatch_pending=self.dispatcher.pending(),
            seconds_since_audio=since,
            stream_healthy=healthy,
        )

    def _publish_status(self, index: int, status: SegmentStatus) -> None:
        if status is SegmentStatus.COMPLETED:
            text = self.segment_log.get(index).transcribed_text or ""
            with self._texts_lock:
                self._texts[index] = text
        self.segment_status_changed.publish((index, status))


__all__ = ["AUDIO_SOURCE_MISSING", "RecordingSession", "SessionStats"]
