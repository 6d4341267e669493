"""Duplicate upload removal.

Two uploads are the same photo when their name, byte size and modification
time match. The first occurrence wins; later ones are dropped before any
image is decoded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .models import PhotoRecord

LOGGER = logging.getLogger(__name__)


@dataclass
class DeduplicationResult:
    unique: List[PhotoRecord] = field(default_factory=list)
    duplicate_records: List[PhotoRecord] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return len(self.duplicate_records)


def deduplicate(records: Iterable[PhotoRecord]) -> DeduplicationResult:
    """Split ``records`` into unique photos and dropped duplicates in O(n)."""
    seen: Dict[str, PhotoRecord] = {}
    result = DeduplicationResult()
    for record in records:
        key = record.identity_key
        if key in seen:
            result.duplicate_records.append(record)
            continue
        seen[key] = record
        result.unique.append(record)
    if result.duplicates:
        LOGGER.info(
            "Removed %d duplicate uploads (%d unique)",
            result.duplicates,
            len(result.unique),
        )
    return result
