"""Minimal publish/subscribe channel for session events."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger("autopause.events")


class EventStream(Generic[T]):
    """Broadcasts values to callbacks on the publishing thread.

    A subscriber that raises is logged and does not stop delivery to the rest.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                LOGGER.exception("Subscriber to %s failed", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["EventStream"]
