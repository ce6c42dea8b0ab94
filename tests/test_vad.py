import numpy as np
import pytest

from autopause.audio.vad import VoiceActivityDetector
from autopause.errors import ConfigurationError


def _frame(value: int, size: int = 160) -> np.ndarray:
    return np.full(size, value, dtype=np.int16)


def test_energy_threshold_is_strictly_greater():
    vad = VoiceActivityDetector(16_000, energy_threshold=100.0)
    assert vad.process_frame(_frame(100)) is False
    assert vad.process_frame(_frame(101)) is True
    assert vad.speech_ms == 10
    assert vad.is_speaking


def test_speech_frame_resets_silence_run():
    vad = VoiceActivityDetector(16_000)
    for _ in range(50):
        vad.process_frame(_frame(0))
    assert vad.silence_ms == 500
    vad.process_frame(_frame(500))
    assert vad.silence_ms == 0
    assert vad.consecutive_speech == 1
    assert vad.consecutive_silence == 0


def test_should_chunk_after_silence_threshold():
    vad = VoiceActivityDetector(16_000, silence_threshold_ms=1000)
    for _ in range(99):
        vad.process_frame(_frame(0))
    assert not vad.should_chunk()
    vad.process_frame(_frame(0))
    assert vad.should_chunk()


def test_empty_frame_is_ignored():
    vad = VoiceActivityDetector(16_000)
    assert vad.process_frame(np.zeros(0, dtype=np.int16)) is False
    assert vad.stats.silence_ms == 0


def test_reset_and_threshold_update():
    vad = VoiceActivityDetector(16_000)
    vad.process_frame(_frame(300))
    vad.set_energy_threshold(400)
    assert vad.process_frame(_frame(300)) is False
    vad.reset()
    assert vad.stats.speech_ms == 0 and not vad.stats.is_speaking


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sample_rate": 0},
        {"frame_ms": 0},
        {"silence_threshold_ms": 0},
        {"energy_threshold": -1},
    ],
)
def test_invalid_configuration_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        VoiceActivityDetector(**kwargs)
