"""Representative sampling and batching helpers.

Expensive downstream steps (the remote enrichment call in particular) only
ever see a bounded subset of the book: the opening photos, the closing
photos and an evenly spaced selection from the middle.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, TypeVar

from . import config

T = TypeVar("T")


def smart_sample(items: Sequence[T], max_samples: int = config.MAX_ENRICHMENT_SAMPLES) -> List[T]:
    """Return at most ``max_samples`` items spread over the whole sequence."""
    if len(items) <= max_samples:
        return list(items)

    head = list(items[: config.SAMPLE_HEAD])
    tail = list(items[-config.SAMPLE_TAIL:])
    middle = items[config.SAMPLE_HEAD: len(items) - config.SAMPLE_TAIL]

    step = max(1, len(middle) // config.SAMPLE_MIDDLE)
    middle_samples = [
        middle[i * step]
        for i in range(config.SAMPLE_MIDDLE)
        if i * step < len(middle)
    ]
    return (head + middle_samples + tail)[:max_samples]


def create_batches(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split ``items`` into consecutive batches of ``batch_size``."""
    if batch_size <= 0:
        raise ValueError("batch_size must be greater than zero")
    return [list(items[i: i + batch_size]) for i in range(0, len(items), batch_size)]


@dataclass(frozen=True)
class BatchConfig:
    batch_size: int
    max_concurrent: int
    estimated_seconds: int


def calculate_batch_config(photo_count: int) -> BatchConfig:
    """Pick a batch size for thumbnail preparation based on ``photo_count``."""
    batch_size = 12
    max_concurrent = 3
    if photo_count <= 20:
        batch_size = 10
        max_concurrent = 2
    elif photo_count > 40:
        batch_size = 15
        max_concurrent = 3

    total_batches = math.ceil(photo_count / batch_size)
    estimated = math.ceil((total_batches / max_concurrent) * 3)
    return BatchConfig(batch_size, max_concurrent, estimated)
