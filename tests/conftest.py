"""Pytest configuration helpers."""

from __future__ import annotations

import math
import sys
import threading
from pathlib import Path
from typing import Callable, List

import numpy as np
import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from autopause.errors import EngineError  # noqa: E402
from autopause.services.engine import TranscriptionResult  # noqa: E402

SAMPLE_RATE = 16_000


def tone_ms(duration_ms: int, *, amplitude: int = 8000, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    length = sample_rate * duration_ms // 1000
    t = np.arange(length)
    return (np.sin(2 * math.pi * 220 * t / sample_rate) * amplitude).astype(np.int16)


def silence_ms(duration_ms: int, *, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    return np.zeros(sample_rate * duration_ms // 1000, dtype=np.int16)


class ScriptedEngine:
    """Returns queued replies in order; an ``Exception`` instance is raised instead."""

    def __init__(self, replies: List[object] | None = None, default: str = "hello world") -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[bytes] = []
        self._lock = threading.Lock()

    def transcribe(self, pcm: bytes) -> TranscriptionResult:
        with self._lock:
            self.calls.append(pcm)
            reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return TranscriptionResult(text=str(reply))


class BlockingEngine:
    """Holds every call until ``release`` is set."""

    def __init__(self, text: str = "interim words") -> None:
        self.text = text
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def transcribe(self, pcm: bytes) -> TranscriptionResult:
        self.calls += 1
        self.started.set()
        if not self.release.wait(5):
            raise EngineError("blocking engine never released")
        return TranscriptionResult(text=self.text)


@pytest.fixture
def tone() -> Callable[..., np.ndarray]:
    return tone_ms


@pytest.fixture
def silence() -> Callable[..., np.ndarray]:
    return silence_ms


@pytest.fixture
def scripted_engine() -> Callable[..., ScriptedEngine]:
    return ScriptedEngine


@pytest.fixture
def blocking_engine() -> BlockingEngine:
    engine = BlockingEngine()
    yield engine
    engine.release.set()
