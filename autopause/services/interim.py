"""Best-effort interim text from periodic re-transcription of recent audio."""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Deque, Optional

import numpy as np

from ..audio.pcm import PcmInput, as_int16, ms_to_samples, to_bytes
from ..errors import ConfigurationError, EngineError
from ..metrics import INTERIM_TICKS, TRANSCRIPTION_LATENCY
from .engine import TranscriptionEngine

LOGGER = logging.getLogger("autopause.interim")


class RollingInterimTranscriber:
    """Keep a rolling window of audio and re-transcribe its tail every few seconds.

    The window holds at most ``retention_ms`` of audio. When the chunker
    finalizes, only the last ``overlap_ms`` is kept so the next interim pass
    has context without re-reading finalized speech. Ticks run only while
    ``is_speech()`` is true, and a tick that finds a request still running is
    skipped. Results are published through ``on_text`` and never persisted.
    """

    def __init__(
        self,
        engine: TranscriptionEngine,
        sample_rate: int = 16_000,
        *,
        retention_ms: int = 30_000,
        transcription_ms: int = 15_000,
        overlap_ms: int = 5_000,
        interval_s: float = 3.0,
        is_speech: Optional[Callable[[], bool]] = None,
        on_text: Optional[Callable[[str], None]] = None,
    ) -> None:
        if transcription_ms <= 0:
            raise ConfigurationError("transcription_ms must be positive")
        if retention_ms < transcription_ms:
            raise ConfigurationError("retention_ms must be at least transcription_ms")
        if not 0 <= overlap_ms <= retention_ms:
            raise ConfigurationError("overlap_ms must be between 0 and retention_ms")
        if interval_s <= 0:
            raise ConfigurationError("interval_s must be positive")
        self.engine = engine
        self.sample_rate = sample_rate
        self.retention_samples = ms_to_samples(retention_ms, sample_rate)
        self.transcription_samples = ms_to_samples(transcription_ms, sample_rate)
        self.overlap_samples = ms_to_samples(overlap_ms, sample_rate)
        self.interval_s = float(interval_s)
        self.is_speech = is_speech
        self.on_text = on_text

        self._lock = threading.Lock()
        self._chunks: Deque[np.ndarray] = deque()
        self._length = 0
        self._text = ""
        self._generation = 0
        self._active = False
        self._busy = False
        self._idle = threading.Event()
        self._idle.set()
        self._skipped = 0
        self._stop_event = threading.Event()
        self._ticker: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None

    def append(self, samples: PcmInput) -> None:
        data = as_int16(samples)
        if data.size == 0:
            return
        with self._lock:
            self._chunks.append(np.array(data, dtype=np.int16, copy=True))
            self._length += int(data.size)
            self._trim_locked(self.retention_samples)

    def on_finalize(self) -> None:
        with self._lock:
            self._trim_locked(self.overlap_samples)

    def _trim_locked(self, limit: int) -> None:
        excess = self._length - limit
        while excess > 0 and self._chunks:
            head = self._chunks[0]
            if head.size <= excess:
                self._chunks.popleft()
                self._length -= int(head.size)
                excess -= int(head.size)
            else:
                self._chunks[0] = head[excess:]
                self._length -= excess
                excess = 0

    def snapshot(self, max_samples: int | None = None) -> np.ndarray:
        with self._lock:
            return self._snapshot_locked(max_samples)

    def _snapshot_locked(self, max_samples: int | None) -> np.ndarray:
        if not self._chunks:
            return np.zeros(0, dtype=np.int16)
        audio = np.concatenate(list(self._chunks))
        if max_samples is not None and audio.size > max_samples:
            audio = audio[-max_samples:]
        return audio

    @property
    def buffer_samples(self) -> int:
        with self._lock:
            return self._length

    @property
    def interim_text(self) -> str:
        with self._lock:
            return self._text

    @property
    def skipped_ticks(self) -> int:
        return self._skipped

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def reset(self) -> None:
        with self._lock:
            self._chunks.clear()
            self._length = 0
            self._text = ""

    def start(self, *, run_timer: bool = True) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            self._generation += 1
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="autopause-interim")
        self._stop_event.clear()
        if run_timer:
            self._ticker = threading.Thread(target=self._loop, name="autopause-interim-timer", daemon=True)
            self._ticker.start()

    def stop(self) -> None:
        """Cancel the timer; late results from an abandoned request are dropped."""
        with self._lock:
            self._active = False
            self._generation += 1
        self._stop_event.set()
        if self._ticker and self._ticker is not threading.current_thread():
            self._ticker.join(timeout=2)
        self._ticker = None
        if self._executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            self.tick()

    def tick(self) -> bool:
        """Submit one interim request if speech is active and none is running."""
        if self.is_speech is not None and not self.is_speech():
            INTERIM_TICKS.labels(outcome="skipped_silent").inc()
            return False
        with self._lock:
            if not self._active or self._executor is None:
                return False
            if self._busy:
                self._skipped += 1
                INTERIM_TICKS.labels(outcome="skipped_busy").inc()
                LOGGER.debug("Interim request still running; tick skipped")
                return False
            audio = self._snapshot_locked(self.transcription_samples)
            if audio.size == 0:
                return False
            self._busy = True
            self._idle.clear()
            generation = self._generation
            future = self._executor.submit(self._request, audio, generation)
        future.add_done_callback(self._release_if_cancelled)
        INTERIM_TICKS.labels(outcome="submitted").inc()
        return True

    def _release_if_cancelled(self, future: Future) -> None:
        # A request cancelled by stop() never reaches the finally in _request.
        if future.cancelled():
            with self._lock:
                self._busy = False
                self._idle.set()

    def _request(self, audio: np.ndarray, generation: int) -> Optional[str]:
        try:
            with TRANSCRIPTION_LATENCY.labels(path="interim").time():
                result = self.engine.transcribe(to_bytes(audio))
        except EngineError as exc:
            INTERIM_TICKS.labels(outcome="error").inc()
            LOGGER.warning("Interim transcription failed: %s", exc)
            return None
        except Exception:
            INTERIM_TICKS.labels(outcome="error").inc()
            LOGGER.exception("Interim transcription raised unexpectedly")
            return None
        else:
            return self._publish(result.text.strip(), generation)
        finally:
            with self._lock:
                self._busy = False
                self._idle.set()

    def _publish(self, text: str, generation: int) -> Optional[str]:
        with self._lock:
            if generation != self._generation or not self._active:
                LOGGER.debug("Discarding interim result from a stopped session")
                return None
            self._text = text
        if self.on_text:
            self.on_text(text)
        return text

    def finish(self, pad_ms: int = 2000, *, timeout: float | None = 10.0) -> Optional[str]:
        """Pad the window with silence and run one last interim pass synchronously.

        Some engines drop the final words of a clip unless silence follows them.
        """
        if pad_ms > 0:
            self.append(np.zeros(ms_to_samples(pad_ms, self.sample_rate), dtype=np.int16))
        if not self._idle.wait(timeout):
            LOGGER.warning("Outstanding interim request did not finish; skipping final pass")
            return None
        with self._lock:
            if not self._active or self._busy:
                return None
            audio = self._snapshot_locked(self.transcription_samples)
            if audio.size == 0:
                return None
            self._busy = True
            self._idle.clear()
            generation = self._generation
        return self._request(audio, generation)


__all__ = ["RollingInterimTranscriber"]
