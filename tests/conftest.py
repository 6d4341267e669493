"""Shared fixtures: fake schedulers, synthetic photos and registry resets."""
from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Callable, List, Tuple

import pytest
from PIL import Image

from photobook.cache import SHARED_CACHE
from photobook.layouts import LayoutTemplates
from photobook.log import LOGGER_NAME
from photobook.models import PhotoRecord, QualityScore, SelectedPhoto
from photobook.selection import classify_tier


class FakeScheduler:
    """Stand-in for ``QTimer.singleShot`` that queues callbacks."""

    def __init__(self) -> None:
        self.calls: List[Tuple[int, Callable[[], None]]] = []

    def __call__(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.calls.append((delay_ms, callback))

    def run_next(self) -> None:
        _, callback = self.calls.pop(0)
        callback()

    def run_all(self, limit: int = 1000) -> None:
        while self.calls and limit:
            self.run_next()
            limit -= 1


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture(autouse=True)
def reset_registries():
    """Each test starts with the built-in layouts and a fresh score cache."""

    LayoutTemplates.reset()
    SHARED_CACHE.clear()
    yield
    LayoutTemplates.reset()
    SHARED_CACHE.clear()


def save_image(img: Image.Image, path: Path) -> PhotoRecord:
    img.save(path)
    return PhotoRecord.from_path(path)


def noise_image(seed: int, size=(120, 80)) -> Image.Image:
    rng = random.Random(seed)
    data = bytes(rng.randrange(256) for _ in range(size[0] * size[1]))
    return Image.frombytes("L", size, data).convert("RGB")


@pytest.fixture
def photo_files(tmp_path) -> Callable[[int], List[PhotoRecord]]:
    """Factory writing ``n`` analysable PNG photos and returning their records."""

    def make(n: int) -> List[PhotoRecord]:
        records = []
        for i in range(n):
            img = noise_image(i) if i % 2 == 0 else Image.new("RGB", (90, 120), (120 + i, 140, 160))
            records.append(save_image(img, tmp_path / f"photo_{i:03d}.png"))
        return records

    return make


def make_selected(n: int, overall: int = 70, prefix: str = "img") -> List[SelectedPhoto]:
    """Selected photos with synthetic scores and no pixel data."""

    photos = []
    for i in range(n):
        record = PhotoRecord(name=f"{prefix}_{i:03d}.jpg", size=1000 + i, last_modified=i, width=1600, height=1200)
        quality = QualityScore(
            overall=overall,
            sharpness=overall,
            lighting=overall,
            composition=overall,
            aspect_ratio=record.aspect_ratio,
            is_landscape=True,
        )
        photos.append(SelectedPhoto(record, quality, classify_tier(overall)))
    return photos


@pytest.fixture
def package_logger():
    """The ``photobook`` logger, restored after tests that configure it."""

    logger = logging.getLogger(LOGGER_NAME)
    handlers, propagate, level = list(logger.handlers), logger.propagate, logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)
