"""Memo of quality scores for photos that were already analysed.

A score depends on the photo and on the resolution it was analysed at, so
entries are keyed by ``(identity key, analysis edge)``. Running the pipeline
again on the same upload reuses the scores instead of decoding every image.
Neutral fallback scores are never stored: a photo that failed to decode is
tried again next time.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional, Tuple

from . import config
from .models import PhotoRecord, QualityScore

CacheKey = Tuple[str, int]


class ScoreCache:
    """Least recently used store of :class:`QualityScore` objects."""

    def __init__(self, max_size: int = config.MAX_CACHE_SIZE) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self._scores: "OrderedDict[CacheKey, QualityScore]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._scores)

    @staticmethod
    def key(record: PhotoRecord, max_edge: int) -> CacheKey:
        return record.identity_key, max_edge

    def lookup(self, record: PhotoRecord, max_edge: int) -> Optional[QualityScore]:
        """Score of ``record`` analysed at ``max_edge``, marking it recently used."""
        key = self.key(record, max_edge)
        score = self._scores.get(key)
        if score is None:
            self.misses += 1
            return None
        self._scores.move_to_end(key)
        self.hits += 1
        return score

    def store(self, record: PhotoRecord, max_edge: int, score: QualityScore) -> None:
        if score.is_default:
            return
        key = self.key(record, max_edge)
        self._scores[key] = score
        self._scores.move_to_end(key)
        while len(self._scores) > self.max_size:
            self._scores.popitem(last=False)

    def clear(self) -> None:
        self._scores.clear()
        self.hits = 0
        self.misses = 0


# Shared by analyzers created without their own cache
SHARED_CACHE = ScoreCache()
