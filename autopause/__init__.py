"""Speech-aware chunking and durable transcription of live audio."""

from .config import PipelineSettings, get_settings
from .errors import (
    AutopauseError,
    ConfigurationError,
    EngineError,
    InvalidTransition,
    SegmentNotFound,
    SessionError,
    StorageMissing,
)
from .session import RecordingSession, SessionStats
from .store.segment_log import PersistedSegment, SegmentLog, SegmentStatus

__version__ = "0.1.0"

__all__ = [
    "AutopauseError",
    "ConfigurationError",
    "EngineError",
    "InvalidTransition",
    "PersistedSegment",
    "PipelineSettings",
    "RecordingSession",
    "SegmentLog",
    "SegmentNotFound",
    "SegmentStatus",
    "SessionError",
    "SessionStats",
    "StorageMissing",
    "get_settings",
]
