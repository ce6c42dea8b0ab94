"""Audio framing, voice activity detection and chunking."""

from .chunker import ChunkBoundaryEngine
from .noise_filter import HighPassFilter
from .types import AudioChunk, ChunkerStats, ChunkInfo, VADStats
from .vad import VoiceActivityDetector

__all__ = [
    "AudioChunk",
    "ChunkBoundaryEngine",
    "ChunkInfo",
    "ChunkerStats",
    "HighPassFilter",
    "VADStats",
    "VoiceActivityDetector",
]
