"""Transcription engine contract and adapters.

Every engine takes mono 16-bit little-endian PCM bytes and returns a
``TranscriptionResult`` or raises ``EngineError``. Engines are stateless per call.
"""

from __future__ import annotations

import io
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

import httpx
import numpy as np
import soundfile as sf

from ..audio.pcm import SAMPLE_WIDTH
from ..errors import EngineError

LOGGER = logging.getLogger("autopause.engine")


@dataclass(slots=True, frozen=True)
class TranscriptionResult:
    text: str
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@runtime_checkable
class TranscriptionEngine(Protocol):
    def transcribe(self, pcm: bytes) -> TranscriptionResult: ...


def pcm_to_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap raw PCM in a 16-bit mono WAV container."""
    usable = len(pcm) - (len(pcm) % SAMPLE_WIDTH)
    samples = np.frombuffer(pcm[:usable], dtype="<i2")
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


class WhisperEngine:
    """Thin wrapper that loads faster-whisper on demand, with a mock mode."""

    def __init__(
        self,
        model: str = "tiny",
        *,
        device: str = "cpu",
        compute_type: str = "int8",
        language: str | None = None,
        sample_rate: int = 16_000,
        mock: bool = False,
    ) -> None:
        self.model_name = model
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.sample_rate = sample_rate
        self._mock = mock
        self._lock = threading.Lock()
        self._model = None
        if self._mock:
            LOGGER.warning(
                "Whisper mock mode enabled (set AUTOPAUSE_ENGINE=whisper and "
                "AUTOPAUSE_WHISPER_MODEL to enable real transcription)."
            )

    def _load_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from faster_whisper import WhisperModel

                    try:
                        self._model = WhisperModel(
                            self.model_name,
                            device=self.device,
                            compute_type=self.compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error("Failed to load Whisper model '%s': %s", self.model_name, exc)
                        raise EngineError(f"cannot load whisper model {self.model_name}") from exc
        return self._model

    def transcribe(self, pcm: bytes) -> TranscriptionResult:
        samples = len(pcm) // SAMPLE_WIDTH
        if self._mock:
            return TranscriptionResult(text=f"[mock transcript {samples} samples]")
        audio = np.frombuffer(pcm[: samples * SAMPLE_WIDTH], dtype="<i2").astype(np.float32) / 32768.0
        model = self._load_model()
        try:
            segments, _info = model.transcribe(audio, language=self.language, beam_size=5)
            text = " ".join(segment.text.strip() for segment in segments if segment.text.strip())
        except Exception as exc:
            raise EngineError(f"whisper transcription failed: {exc}") from exc
        return TranscriptionResult(text=text.strip())


class HttpTranscriptionEngine:
    """Posts WAV-wrapped chunks to a remote ``/v1/transcribe`` endpoint."""

    def __init__(
        self,
        server_url: str,
        api_key: str,
        *,
        sample_rate: int = 16_000,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not server_url:
            raise EngineError("Server URL missing")
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.sample_rate = sample_rate
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        if not self.api_key:
            raise EngineError("API key missing")
        return {"X-API-Key": self.api_key}

    def transcribe(self, pcm: bytes) -> TranscriptionResult:
        request_id = uuid.uuid4().hex
        files = {"file": (f"{request_id}.wav", pcm_to_wav(pcm, self.sample_rate), "audio/wav")}
        try:
            resp = self._client.post(
                f"{self.server_url}/v1/transcribe",
                headers=self._headers(),
                files=files,
            )
            if resp.status_code == 401:
                raise EngineError("Unauthorized: check API key")
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise EngineError(f"Transcription failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise EngineError(str(exc)) from exc
        except ValueError as exc:
            raise EngineError(f"Invalid response: {exc}") from exc
        return TranscriptionResult(text=str(payload.get("text", "")).strip(), request_id=request_id)

    def close(self) -> None:
        self._client.close()


class OpenAITranscriptionEngine:
    """Hosted transcription through the OpenAI audio API."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gpt-4o-mini-transcribe",
        sample_rate: int = 16_000,
        client=None,
    ) -> None:
        if client is None:
            if not api_key:
                raise EngineError("AUTOPAUSE_ENGINE=openai but OPENAI_API_KEY is missing")
            from openai import OpenAI

            client = OpenAI(api_key=api_key)
        self._client = client
        self.model = model
        self.sample_rate = sample_rate

    def transcribe(self, pcm: bytes) -> TranscriptionResult:
        request_id = uuid.uuid4().hex
        wav = pcm_to_wav(pcm, self.sample_rate)
        try:
            transcript = self._client.audio.transcriptions.create(
                model=self.model,
                file=(f"{request_id}.wav", wav, "audio/wav"),
            )
        except Exception as exc:
            raise EngineError(f"OpenAI transcription failed: {exc}") from exc
        return TranscriptionResult(text=(transcript.text or "").strip(), request_id=request_id)


__all__ = [
    "HttpTranscriptionEngine",
    "OpenAITranscriptionEngine",
    "TranscriptionEngine",
    "TranscriptionResult",
    "WhisperEngine",
    "pcm_to_wav",
]
