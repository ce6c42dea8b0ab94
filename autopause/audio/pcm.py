"""Little-endian 16-bit PCM helpers."""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

SAMPLE_WIDTH = 2

PcmInput = Union[bytes, bytearray, memoryview, np.ndarray, Sequence[int]]


def rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    values = samples.astype(np.float64, copy=False)
    return float(np.sqrt(np.mean(values * values)))


def as_int16(samples: PcmInput) -> np.ndarray:
    """Return ``samples`` as a 1-D int16 array (first channel if 2-D)."""
    if isinstance(samples, (bytes, bytearray, memoryview)):
        raw = bytes(samples)
        usable = len(raw) - (len(raw) % SAMPLE_WIDTH)
        return np.frombuffer(raw[:usable], dtype="<i2").astype(np.int16)
    data = np.asarray(samples)
    if data.ndim > 1:
        data = data[:, 0]
    if data.dtype == np.int16:
        return data
    if np.issubdtype(data.dtype, np.floating):
        data = np.round(data)
    return np.clip(data, -32768, 32767).astype(np.int16)


def to_bytes(samples: np.ndarray) -> bytes:
    return np.asarray(samples, dtype=np.int16).astype("<i2", copy=False).tobytes()


def ms_to_samples(duration_ms: int, sample_rate: int) -> int:
    return int(sample_rate * duration_ms // 1000)


def samples_to_ms(count: int, sample_rate: int) -> int:
    return int(count * 1000 // sample_rate)


class PcmDecoder:
    """Turns arbitrary byte runs into int16 samples, carrying an odd trailing byte."""

    def __init__(self) -> None:
        self._carry = b""

    def decode(self, data: PcmInput) -> np.ndarray:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            return as_int16(data)
        raw = self._carry + bytes(data)
        usable = len(raw) - (len(raw) % SAMPLE_WIDTH)
        self._carry = raw[usable:]
        return np.frombuffer(raw[:usable], dtype="<i2").astype(np.int16)

    def reset(self) -> None:
        self._carry = b""


__all__ = [
    "PcmDecoder",
    "PcmInput",
    "SAMPLE_WIDTH",
    "as_int16",
    "ms_to_samples",
    "rms",
    "samples_to_ms",
    "to_bytes",
]
