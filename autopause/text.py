"""Transcript text helpers."""

from __future__ import annotations

import re
from typing import Iterable

_PUNCT = re.compile(r"[^\w']+")


def _normalize(word: str) -> str:
    return _PUNCT.sub("", word.lower())


def remove_overlap(previous: str, current: str, *, max_words: int = 10, min_words: int = 2) -> str:
    """Strip the leading words of ``current`` that repeat the tail of ``previous``.

    Interim windows keep a few seconds of already-finalized audio, so their
    text often starts with the end of the last confirmed segment.
    """
    prev_words = previous.split()
    curr_words = current.split()
    if not prev_words or not curr_words:
        return current.strip()
    longest = min(max_words, len(prev_words), len(curr_words))
    for size in range(longest, min_words - 1, -1):
        tail = [_normalize(word) for word in prev_words[-size:]]
        head = [_normalize(word) for word in curr_words[:size]]
        if tail == head:
            return " ".join(curr_words[size:])
    return current.strip()


def join_segments(texts: Iterable[str]) -> str:
    return "\n\n".join(text.strip() for text in texts if text and text.strip())


__all__ = ["join_segments", "remove_overlap"]
