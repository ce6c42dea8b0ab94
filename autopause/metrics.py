"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

CHUNKS_FINALIZED = Counter(
    "autopause_chunks_finalized_total",
    "Chunks handed to the transcription path",
    labelnames=("reason",),
)

CHUNKS_DISCARDED = Counter(
    "autopause_chunks_discarded_total",
    "Buffers dropped at flush for lack of speech",
)

SEGMENT_TRANSITIONS = Counter(
    "autopause_segment_transitions_total",
    "Persisted segment status changes",
    labelnames=("status",),
)

INTERIM_TICKS = Counter(
    "autopause_interim_ticks_total",
    "Interim transcription timer ticks by outcome",
    labelnames=("outcome",),
)

TRANSCRIPTION_LATENCY = Histogram(
    "autopause_transcription_latency_seconds",
    "Transcription engine call latency",
    labelnames=("path",),
)

__all__ = [
    "CHUNKS_DISCARDED",
    "CHUNKS_FINALIZED",
    "INTERIM_TICKS",
    "SEGMENT_TRANSITIONS",
    "TRANSCRIPTION_LATENCY",
]
