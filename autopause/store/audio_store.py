"""Append-only raw PCM files backing persisted segments."""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Iterable, List

import numpy as np
import soundfile as sf

from ..audio.pcm import SAMPLE_WIDTH, to_bytes
from ..errors import StorageMissing

LOGGER = logging.getLogger("autopause.audio_store")


class SessionAudioWriter:
    """Open handle on one session's ``.pcm`` file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: BinaryIO | None = path.open("ab")
        self._offset = path.stat().st_size

    @property
    def offset(self) -> int:
        return self._offset

    def append(self, samples: np.ndarray) -> int:
        """Write ``samples`` and return the byte offset they start at."""
        if self._handle is None:
            raise ValueError(f"{self.path} is closed")
        start = self._offset
        payload = to_bytes(samples)
        self._handle.write(payload)
        self._offset += len(payload)
        return start

    def sync(self) -> None:
        if self._handle is None:
            return
        self._handle.flush()
        os.fsync(self._handle.fileno())

    def close(self) -> None:
        if self._handle is None:
            return
        self.sync()
        self._handle.close()
        self._handle = None


class AudioStore:
    """Directory of raw little-endian int16 mono recordings, one per session."""

    suffix = ".pcm"

    def __init__(self, root: Path, sample_rate: int = 16_000) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.sample_rate = sample_rate

    def new_session_id(self) -> str:
        return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

    def open_session(self, session_id: str) -> SessionAudioWriter:
        return SessionAudioWriter(self.root / f"{session_id}{self.suffix}")

    def read(self, path: str | Path, offset: int, length: int) -> bytes:
        target = Path(path)
        try:
            with target.open("rb") as handle:
                handle.seek(offset)
                data = handle.read(length)
        except FileNotFoundError as exc:
            raise StorageMissing(f"audio source missing: {target}") from exc
        if len(data) < length:
            raise StorageMissing(
                f"audio source truncated: {target} has {len(data)} of {length} bytes at offset {offset}"
            )
        return data

    def read_samples(self, path: str | Path, offset: int, sample_count: int) -> bytes:
        return self.read(path, offset, sample_count * SAMPLE_WIDTH)

    def export(self, path: str | Path, destination: Path, *, format: str = "FLAC") -> Path:
        """Render a raw session file into a playable container."""
        source = Path(path)
        if not source.exists():
            raise StorageMissing(f"audio source missing: {source}")
        data, _ = sf.read(
            str(source),
            dtype="int16",
            samplerate=self.sample_rate,
            channels=1,
            format="RAW",
            subtype="PCM_16",
            endian="LITTLE",
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        sf.write(str(destination), data, self.sample_rate, format=format, subtype="PCM_16")
        return destination

    def list_files(self) -> List[Path]:
        return sorted(self.root.glob(f"*{self.suffix}"))

    def delete_unreferenced(self, referenced: Iterable[str], keep: Iterable[str] = ()) -> List[Path]:
        """Remove session files that no segment record points at."""
        wanted = {str(Path(item).resolve()) for item in referenced}
        wanted.update(str(Path(item).resolve()) for item in keep)
        removed: List[Path] = []
        for path in self.list_files():
            if str(path.resolve()) in wanted:
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
            LOGGER.info("Removed unreferenced audio %s", path.name)
        return removed


__all__ = ["AudioStore", "SessionAudioWriter"]
