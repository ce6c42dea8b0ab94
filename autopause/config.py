"""Pipeline settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .errors import ConfigurationError
from .services.engine import (
    HttpTranscriptionEngine,
    OpenAITranscriptionEngine,
    TranscriptionEngine,
    WhisperEngine,
)

ENGINES = ("mock", "whisper", "http", "openai")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


class PipelineSettings(BaseModel):
    sample_rate: int = Field(default=int(os.getenv("AUTOPAUSE_SAMPLE_RATE", "16000")))
    frame_ms: int = Field(default=int(os.getenv("AUTOPAUSE_FRAME_MS", "10")))
    # 100.0 suits a clean signal; most microphones need 400-800.
    energy_threshold: float = Field(default=float(os.getenv("AUTOPAUSE_ENERGY_THRESHOLD", "100.0")))
    highpass_cutoff_hz: Optional[float] = Field(default=_env_optional_float("AUTOPAUSE_HIGHPASS_HZ"))

    silence_threshold_ms: int = Field(default=int(os.getenv("AUTOPAUSE_SILENCE_MS", "1000")))
    min_chunk_ms: int = Field(default=int(os.getenv("AUTOPAUSE_MIN_CHUNK_MS", "500")))
    max_chunk_ms: int = Field(default=int(os.getenv("AUTOPAUSE_MAX_CHUNK_MS", "30000")))
    min_speech_ms: int = Field(default=int(os.getenv("AUTOPAUSE_MIN_SPEECH_MS", "1000")))

    interim_enabled: bool = Field(default=_env_bool("AUTOPAUSE_INTERIM", "true"))
    retention_ms: int = Field(default=int(os.getenv("AUTOPAUSE_RETENTION_MS", "30000")))
    transcription_ms: int = Field(default=int(os.getenv("AUTOPAUSE_TRANSCRIPTION_MS", "15000")))
    overlap_ms: int = Field(default=int(os.getenv("AUTOPAUSE_OVERLAP_MS", "5000")))
    interim_interval_s: float = Field(default=float(os.getenv("AUTOPAUSE_INTERIM_INTERVAL_S", "3.0")))
    silence_pad_ms: int = Field(default=int(os.getenv("AUTOPAUSE_SILENCE_PAD_MS", "2000")))

    dispatch_queue_size: int = Field(default=int(os.getenv("AUTOPAUSE_DISPATCH_QUEUE", "64")))
    retry_limit: int = Field(default=int(os.getenv("AUTOPAUSE_RETRY_LIMIT", "3")))
    retry_backoff_s: float = Field(default=float(os.getenv("AUTOPAUSE_RETRY_BACKOFF_S", "1.0")))
    retry_backoff_max_s: float = Field(default=float(os.getenv("AUTOPAUSE_RETRY_BACKOFF_MAX_S", "60.0")))
    drain_timeout_s: float = Field(default=float(os.getenv("AUTOPAUSE_DRAIN_TIMEOUT_S", "120")))
    stream_stall_s: float = Field(default=float(os.getenv("AUTOPAUSE_STREAM_STALL_S", "5.0")))

    data_dir: str = Field(default=os.getenv("AUTOPAUSE_DATA_DIR", "data"))
    audio_dir: Optional[str] = Field(default=os.getenv("AUTOPAUSE_AUDIO_DIR"))
    segment_log_path: Optional[str] = Field(default=os.getenv("AUTOPAUSE_SEGMENT_LOG"))
    transcript_path: Optional[str] = Field(default=os.getenv("AUTOPAUSE_TRANSCRIPT_PATH"))
    export_recordings: bool = Field(default=_env_bool("AUTOPAUSE_EXPORT_RECORDINGS", "false"))

    engine: str = Field(default=os.getenv("AUTOPAUSE_ENGINE", "mock"))
    whisper_model: str = Field(default=os.getenv("AUTOPAUSE_WHISPER_MODEL", "tiny"))
    whisper_device: str = Field(default=os.getenv("AUTOPAUSE_WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(default=os.getenv("AUTOPAUSE_WHISPER_COMPUTE_TYPE", "int8"))
    whisper_language: Optional[str] = Field(default=os.getenv("AUTOPAUSE_WHISPER_LANGUAGE"))
    server_url: str = Field(default=os.getenv("AUTOPAUSE_SERVER_URL", ""))
    api_key: str = Field(default=os.getenv("AUTOPAUSE_API_KEY", ""))
    engine_timeout_s: float = Field(default=float(os.getenv("AUTOPAUSE_ENGINE_TIMEOUT_S", "30")))
    openai_api_key: Optional[str] = Field(default=os.getenv("OPENAI_API_KEY"))
    openai_model: str = Field(default=os.getenv("AUTOPAUSE_OPENAI_MODEL", "gpt-4o-mini-transcribe"))

    @model_validator(mode="after")
    def _check(self) -> "PipelineSettings":
        if self.sample_rate <= 0 or self.sample_rate % 100:
            raise ConfigurationError(f"sample_rate {self.sample_rate} cannot be split into 10 ms frames")
        if self.frame_ms != 10:
            raise ConfigurationError(f"frame_ms must be 10 (the chunker frames audio in 10 ms), got {self.frame_ms}")
        for name in (
            "silence_threshold_ms",
            "min_chunk_ms",
            "max_chunk_ms",
            "transcription_ms",
            "retention_ms",
            "dispatch_queue_size",
            "retry_limit",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        for name in ("min_speech_ms", "overlap_ms", "silence_pad_ms", "energy_threshold"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if self.interim_interval_s <= 0 or self.stream_stall_s <= 0:
            raise ConfigurationError("timer intervals must be positive")
        if self.max_chunk_ms <= self.min_chunk_ms:
            raise ConfigurationError("max_chunk_ms must be greater than min_chunk_ms")
        if self.retention_ms < self.transcription_ms:
            raise ConfigurationError("retention_ms must be at least transcription_ms")
        if self.overlap_ms > self.retention_ms:
            raise ConfigurationError("overlap_ms must not exceed retention_ms")
        if self.engine not in ENGINES:
            raise ConfigurationError(f"engine must be one of {', '.join(ENGINES)}, got {self.engine!r}")
        return self

    @property
    def audio_path(self) -> Path:
        return Path(self.audio_dir) if self.audio_dir else Path(self.data_dir) / "audio"

    @property
    def segment_log_file(self) -> Path:
        return Path(self.segment_log_path) if self.segment_log_path else Path(self.data_dir) / "segments.json"

    @property
    def transcript_file(self) -> Path:
        return Path(self.transcript_path) if self.transcript_path else Path(self.data_dir) / "transcripts.srt"


def build_engine(settings: PipelineSettings) -> TranscriptionEngine:
    if settings.engine == "http":
        return HttpTranscriptionEngine(
            settings.server_url,
            settings.api_key,
            sample_rate=settings.sample_rate,
            timeout=settings.engine_timeout_s,
        )
    if settings.engine == "openai":
        return OpenAITranscriptionEngine(
            settings.openai_api_key,
            model=settings.openai_model,
            sample_rate=settings.sample_rate,
        )
    return WhisperEngine(
        settings.whisper_model,
        device=settings.whisper_device,
        compute_type=settings.whisper_compute_type,
        language=settings.whisper_language,
        sample_rate=settings.sample_rate,
        mock=settings.engine == "mock",
    )


@lru_cache()
def get_settings() -> PipelineSettings:
    return PipelineSettings()


__all__ = ["ENGINES", "PipelineSettings", "build_engine", "get_settings"]
