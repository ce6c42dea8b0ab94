"""Audio sources that feed a recording session."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

import numpy as np
import soundfile as sf

from ..errors import ConfigurationError, SessionError

LOGGER = logging.getLogger("autopause.capture")


def iter_wav_blocks(path: Path, *, sample_rate: int = 16_000, block_ms: int = 100) -> Iterator[np.ndarray]:
    """Yield int16 mono blocks from an audio file at ``sample_rate``."""
    info = sf.info(str(path))
    if info.samplerate != sample_rate:
        raise ConfigurationError(
            f"{path} is {info.samplerate} Hz; expected {sample_rate} Hz audio"
        )
    blocksize = max(1, sample_rate * block_ms // 1000)
    for block in sf.blocks(str(path), blocksize=blocksize, dtype="int16", always_2d=True):
        yield np.ascontiguousarray(block[:, 0])


class MicrophoneCapture:
    """Pushes microphone blocks into ``on_samples`` from the input stream's thread."""

    def __init__(
        self,
        on_samples: Callable[[np.ndarray], None],
        *,
        sample_rate: int = 16_000,
        block_ms: int = 10,
        device: Optional[int | str] = None,
        backend=None,
    ) -> None:
        self.on_samples = on_samples
        self.sample_rate = sample_rate
        self.blocksize = max(1, sample_rate * block_ms // 1000)
        self.device = device
        self._sd = backend
        self._stream = None
        self._lock = threading.Lock()
        self.overflows = 0

    def _backend(self):
        if self._sd is None:
            try:
                import sounddevice as sd
            except (ImportError, OSError) as exc:
                raise SessionError("microphone capture needs the 'sounddevice' package") from exc
            self._sd = sd
        return self._sd

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        with self._lock:
            if self._stream is not None:
                return
            sd = self._backend()
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self.blocksize,
                device=self.device,
                callback=self._callback,
            )
            stream.start()
            self._stream = stream
        LOGGER.info("Microphone capture started at %d Hz", self.sample_rate)

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            self.overflows += 1
            LOGGER.warning("Input stream status: %s", status)
        self.on_samples(np.array(indata[:, 0], dtype=np.int16, copy=True))

    def stop(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        LOGGER.info("Microphone capture stopped")


__all__ = ["MicrophoneCapture", "iter_wav_blocks"]
