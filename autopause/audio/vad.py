"""Energy-based voice activity detector working on fixed-size frames."""

from __future__ import annotations

import numpy as np

from ..errors import ConfigurationError
from .pcm import PcmInput, as_int16, rms
from .types import VADStats


class VoiceActivityDetector:
    """Classify frames as speech when their RMS energy exceeds a threshold.

    The detector keeps running totals of speech and silence since the last
    ``reset()``. Silence accumulates only across an unbroken run of quiet
    frames: any speech frame zeroes it. There is no smoothing, so one loud or
    quiet frame flips ``is_speaking`` immediately.

    ``energy_threshold`` is on the raw 16-bit scale. The default of 100.0 is a
    weak threshold; real microphones usually need 400-800 to reject room noise.
    """

    def __init__(
        self,
        sample_rate: int = 16_000,
        *,
        energy_threshold: float = 100.0,
        frame_ms: int = 10,
        silence_threshold_ms: int = 1000,
    ) -> None:
        if sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {sample_rate}")
        if frame_ms <= 0 or (sample_rate * frame_ms) % 1000:
            raise ConfigurationError(
                f"frame_ms={frame_ms} does not divide {sample_rate} Hz into whole samples"
            )
        if silence_threshold_ms <= 0:
            raise ConfigurationError("silence_threshold_ms must be positive")
        if energy_threshold < 0:
            raise ConfigurationError("energy_threshold must not be negative")
        self.sample_rate = sample_rate
        self.frame_ms = frame_ms
        self.samples_per_frame = sample_rate * frame_ms // 1000
        self.energy_threshold = float(energy_threshold)
        self.silence_threshold_ms = silence_threshold_ms
        self.reset()

    def process_frame(self, frame: PcmInput) -> bool:
        samples = as_int16(frame)
        if samples.size == 0:
            return False
        speech = self.energy(samples) > self.energy_threshold
        if speech:
            self._consecutive_speech += 1
            self._consecutive_silence = 0
            self._speech_ms += self.frame_ms
            self._silence_ms = 0
        else:
            self._consecutive_silence += 1
            self._consecutive_speech = 0
            self._silence_ms += self.frame_ms
        self._speaking = speech
        return speech

    @staticmethod
    def energy(samples: np.ndarray) -> float:
        return rms(samples)

    def should_chunk(self) -> bool:
        return self._silence_ms >= self.silence_threshold_ms

    def reset(self) -> None:
        self._silence_ms = 0
        self._speech_ms = 0
        self._consecutive_silence = 0
        self._consecutive_speech = 0
        self._speaking = False

    def set_energy_threshold(self, value: float) -> None:
        if value < 0:
            raise ConfigurationError("energy_threshold must not be negative")
        self.energy_threshold = float(value)

    @property
    def silence_ms(self) -> int:
        return self._silence_ms

    @property
    def speech_ms(self) -> int:
        return self._speech_ms

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def consecutive_silence(self) -> int:
        return self._consecutive_silence

    @property
    def consecutive_speech(self) -> int:
        return self._consecutive_speech

    @property
    def stats(self) -> VADStats:
        return VADStats(
            silence_ms=self._silence_ms,
            speech_ms=self._speech_ms,
            consecutive_silence=self._consecutive_silence,
            consecutive_speech=self._consecutive_speech,
            is_speaking=self._speaking,
        )


__all__ = ["VoiceActivityDetector"]
