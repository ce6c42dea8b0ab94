"""First-order high-pass filter applied ahead of the VAD."""

from __future__ import annotations

import numpy as np

from ..errors import ConfigurationError


class HighPassFilter:
    """Removes low-frequency drone (fans, mains hum, rumble) from int16 PCM.

    ``y[n] = a * (y[n-1] + x[n] - x[n-1])`` with ``a = RC / (RC + dt)``. Filter
    state carries across calls so a stream can be processed in pieces.
    """

    def __init__(self, sample_rate: int, cutoff_hz: float = 80.0) -> None:
        if cutoff_hz <= 0 or cutoff_hz >= sample_rate / 2:
            raise ConfigurationError(f"cutoff_hz must be in (0, {sample_rate / 2}), got {cutoff_hz}")
        self.sample_rate = sample_rate
        self.cutoff = float(cutoff_hz)
        rc = 1.0 / (2 * np.pi * self.cutoff)
        dt = 1.0 / sample_rate
        self.alpha = rc / (rc + dt)
        self.reset()

    def apply(self, pcm: np.ndarray) -> np.ndarray:
        if pcm.size == 0:
            return pcm
        data = pcm.astype(np.float64, copy=False)
        output = np.empty_like(data)
        alpha = self.alpha
        prev_in = self._prev_input
        prev_out = self._prev_output
        for idx, sample in enumerate(data):
            out = alpha * (prev_out + sample - prev_in)
            output[idx] = out
            prev_out = out
            prev_in = sample
        self._prev_input = prev_in
        self._prev_output = prev_out
        return np.clip(np.round(output), -32768, 32767).astype(np.int16)

    def reset(self) -> None:
        self._prev_input = 0.0
        self._prev_output = 0.0


__all__ = ["HighPassFilter"]
