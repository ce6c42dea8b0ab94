"""Error taxonomy shared by the capture, storage and transcription layers."""

from __future__ import annotations


class AutopauseError(Exception):
    pass


class ConfigurationError(AutopauseError):
    """Rejected configuration, raised before any audio is accepted."""


class EngineError(AutopauseError):
    """The transcription engine failed or timed out."""


class StorageMissing(AutopauseError):
    """Audio source file is absent or shorter than the requested range."""


class SegmentNotFound(AutopauseError):
    pass


class InvalidTransition(AutopauseError):
    """A segment status change that the state machine does not allow."""

    def __init__(self, index: int, current: str, target: str) -> None:
        super().__init__(f"segment {index}: cannot move from {current} to {target}")
        self.index = index
        self.current = current
        self.target = target


class SessionError(AutopauseError):
    """Recording session lifecycle misuse."""


__all__ = [
    "AutopauseError",
    "ConfigurationError",
    "EngineError",
    "InvalidTransition",
    "SegmentNotFound",
    "SessionError",
    "StorageMissing",
]
