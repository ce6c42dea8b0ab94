"""Dataclasses shared across audio helpers."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(slots=True, frozen=True)
class VADStats:
    """Snapshot of the detector counters."""

    silence_ms: int
    speech_ms: int
    consecutive_silence: int
    consecutive_speech: int
    is_speaking: bool


@dataclass(slots=True, frozen=True)
class AudioChunk:
    """Finalized span of audio, ready for transcription.

    ``samples`` is a read-only int16 array. ``start_sample`` is the offset of the
    first sample counted from the beginning of the chunker's input stream.
    """

    samples: np.ndarray
    speech_ms: int
    total_ms: int
    start_sample: int
    reason: str

    @property
    def sample_count(self) -> int:
        return int(self.samples.size)

    def to_bytes(self) -> bytes:
        return self.samples.astype("<i2", copy=False).tobytes()


@dataclass(slots=True, frozen=True)
class ChunkInfo:
    """Metadata published when a chunk has been queued for transcription."""

    sequence_index: int
    sample_count: int
    speech_ms: int
    total_ms: int
    reason: str


@dataclass(slots=True, frozen=True)
class ChunkerStats:
    buffer_ms: int
    buffer_samples: int
    total_speech_ms: int
    seconds_since_chunk: float
    chunks_emitted: int
    chunks_discarded: int
    vad: VADStats


__all__ = ["AudioChunk", "ChunkInfo", "ChunkerStats", "VADStats"]
