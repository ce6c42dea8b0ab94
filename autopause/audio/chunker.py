"""Speech-bounded chunking on top of the energy VAD."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import numpy as np

from ..errors import ConfigurationError
from ..metrics import CHUNKS_DISCARDED, CHUNKS_FINALIZED
from .pcm import PcmInput, as_int16, ms_to_samples, samples_to_ms
from .types import AudioChunk, ChunkerStats
from .vad import VoiceActivityDetector

LOGGER = logging.getLogger("autopause.chunker")

REASON_MAX_DURATION = "max_duration"
REASON_SILENCE = "silence"
REASON_FLUSH = "flush"


class ChunkBoundaryEngine:
    """Accumulate audio and cut it into chunks at pauses in speech.

    Samples are buffered as they arrive and fed to the VAD in 10 ms frames; a
    partial trailing frame waits for the next call. After each call the buffer
    is finalized when it reaches ``max_chunk_ms``, or when the VAD reports a
    long enough pause after at least ``min_speech_ms`` of speech. Requiring
    real speech keeps near-silent chunks, which make Whisper-style engines
    hallucinate, away from the transcription engine.
    """

    def __init__(
        self,
        sample_rate: int = 16_000,
        *,
        on_chunk: Optional[Callable[[AudioChunk], None]] = None,
        energy_threshold: float = 100.0,
        silence_threshold_ms: int = 1000,
        min_chunk_ms: int = 500,
        max_chunk_ms: int = 30_000,
        min_speech_ms: int = 1000,
        vad: VoiceActivityDetector | None = None,
    ) -> None:
        if sample_rate <= 0 or sample_rate % 100:
            raise ConfigurationError(f"sample_rate {sample_rate} cannot be split into 10 ms frames")
        if min_chunk_ms <= 0:
            raise ConfigurationError("min_chunk_ms must be positive")
        if max_chunk_ms <= min_chunk_ms:
            raise ConfigurationError("max_chunk_ms must be greater than min_chunk_ms")
        if min_speech_ms < 0:
            raise ConfigurationError("min_speech_ms must not be negative")
        self.sample_rate = sample_rate
        self.frame_size = sample_rate // 100
        self.on_chunk = on_chunk
        self.min_chunk_ms = min_chunk_ms
        self.max_chunk_ms = max_chunk_ms
        self.min_speech_ms = min_speech_ms
        self.vad = vad or VoiceActivityDetector(
            sample_rate,
            energy_threshold=energy_threshold,
            frame_ms=10,
            silence_threshold_ms=silence_threshold_ms,
        )
        if self.vad.samples_per_frame != self.frame_size:
            raise ConfigurationError("VAD frame size must be 10 ms")
        self._min_chunk_samples = ms_to_samples(min_chunk_ms, sample_rate)
        self._max_chunk_samples = ms_to_samples(max_chunk_ms, sample_rate)
        self.reset()

    def process_samples(self, samples: PcmInput) -> AudioChunk | None:
        """Buffer ``samples``, run the VAD, and finalize a chunk if one is due."""
        data = as_int16(samples)
        if data.size == 0:
            return None
        self._buffer.append(np.array(data, dtype=np.int16, copy=True))
        self._buffered += int(data.size)
        self._ingested += int(data.size)

        framed = np.concatenate([self._partial, data]) if self._partial.size else data
        full = framed.size // self.frame_size
        for idx in range(full):
            start = idx * self.frame_size
            self.vad.process_frame(framed[start : start + self.frame_size])
        self._partial = np.array(framed[full * self.frame_size :], dtype=np.int16, copy=True)
        return self._check_and_chunk()

    def _check_and_chunk(self) -> AudioChunk | None:
        if self._buffered >= self._max_chunk_samples:
            LOGGER.info("Max chunk duration reached (%d ms); forcing chunk", self.buffer_ms)
            return self._finalize(REASON_MAX_DURATION)
        if (
            self.vad.should_chunk()
            and self._buffered >= self._min_chunk_samples
            and self.vad.speech_ms >= self.min_speech_ms
        ):
            LOGGER.debug(
                "Pause detected: %d ms buffer, %d ms speech, %d ms silence",
                self.buffer_ms,
                self.vad.speech_ms,
                self.vad.silence_ms,
            )
            return self._finalize(REASON_SILENCE)
        return None

    def flush(self) -> AudioChunk | None:
        """Finalize the remaining buffer if it holds enough speech, else drop it."""
        if not self._buffered:
            return None
        if self.vad.speech_ms >= self.min_speech_ms:
            LOGGER.info("Flushing final chunk with %d ms of speech", self.vad.speech_ms)
            return self._finalize(REASON_FLUSH)
        LOGGER.info(
            "Discarding final buffer: %d ms speech in %d ms",
            self.vad.speech_ms,
            self.buffer_ms,
        )
        self._clear()
        self._discarded += 1
        CHUNKS_DISCARDED.inc()
        return None

    def _finalize(self, reason: str) -> AudioChunk:
        samples = np.concatenate(self._buffer) if len(self._buffer) > 1 else self._buffer[0]
        samples.setflags(write=False)
        speech_ms = self.vad.speech_ms
        chunk = AudioChunk(
            samples=samples,
            speech_ms=speech_ms,
            total_ms=samples_to_ms(samples.size, self.sample_rate),
            start_sample=self._ingested - self._buffered,
            reason=reason,
        )
        self._clear()
        self._last_chunk_at = time.monotonic()
        self._total_speech_ms += speech_ms
        self._emitted += 1
        CHUNKS_FINALIZED.labels(reason=reason).inc()
        if self.on_chunk:
            self.on_chunk(chunk)
        return chunk

    def _clear(self) -> None:
        self._buffer: list[np.ndarray] = []
        self._buffered = 0
        # Samples held for framing already belong to the finalized buffer.
        self._partial = np.zeros(0, dtype=np.int16)
        self.vad.reset()

    def reset(self) -> None:
        self._clear()
        self._ingested = 0
        self._total_speech_ms = 0
        self._emitted = 0
        self._discarded = 0
        self._last_chunk_at = time.monotonic()

    @property
    def buffer_ms(self) -> int:
        return samples_to_ms(self._buffered, self.sample_rate)

    @property
    def last_chunk_at(self) -> float:
        return self._last_chunk_at

    def stats(self) -> ChunkerStats:
        return ChunkerStats(
            buffer_ms=self.buffer_ms,
            buffer_samples=self._buffered,
            total_speech_ms=self._total_speech_ms,
            seconds_since_chunk=time.monotonic() - self._last_chunk_at,
            chunks_emitted=self._emitted,
            chunks_discarded=self._discarded,
            vad=self.vad.stats,
        )


__all__ = [
    "ChunkBoundaryEngine",
    "REASON_FLUSH",
    "REASON_MAX_DURATION",
    "REASON_SILENCE",
]
