"""Heuristic photo quality scoring.

Scores are rough approximations computed from a downscaled luminance copy
of the photo:

* sharpness: mean absolute difference between a pixel and its four
  neighbours on a stride-3 grid;
* lighting: distance of the mean luminance from mid-grey, with penalties for
  crushed shadows and blown highlights;
* composition: local contrast at the rule-of-thirds intersections compared
  with the centre;
* subject centre: contrast-weighted centroid, later used to centre crops.

Failures never propagate: a photo that cannot be decoded gets the neutral
default score so that a single bad upload cannot block pagination.
"""

from __future__ import annotations

import io
import logging
import math
from collections import Counter
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, ImageChops, ImageFilter, ImageOps

from .. import config
from ..cache import SHARED_CACHE, ScoreCache
from ..errors import AnalysisError
from ..models import PhotoRecord, QualityScore

LOGGER = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return max(0, min(100, _round_half_up(value)))


class QualityAnalyzer:
    """Scores photos for sharpness, lighting and composition."""

    def __init__(
        self,
        cache: Optional[ScoreCache] = None,
        *,
        max_edge: int = config.ANALYSIS_MAX_EDGE,
        use_cache: bool = True,
    ) -> None:
        self._cache = cache
        self._use_cache = use_cache
        self.max_edge = max_edge

    @property
    def cache(self) -> ScoreCache:
        return self._cache if self._cache is not None else SHARED_CACHE

    def analyze(self, record: PhotoRecord) -> QualityScore:
        """Return the score for ``record``, never raising."""
        if self._use_cache:
            cached = self.cache.lookup(record, self.max_edge)
            if cached is not None:
                return cached

        try:
            with self._open(record) as img:
                score = self.analyze_image(img, record)
        except Exception as exc:  # noqa: BLE001 - any decode failure degrades to the neutral score
            LOGGER.warning("Analysis failed for %s, using neutral score: %s", record.name, exc)
            return QualityScore.neutral(record)

        if self._use_cache:
            self.cache.store(record, self.max_edge, score)
        return score

    def _open(self, record: PhotoRecord) -> Image.Image:
        source = record.source
        if isinstance(source, bytes):
            return Image.open(io.BytesIO(source))
        if isinstance(source, (str, Path)):
            return Image.open(source)
        raise AnalysisError(f"No pixel source for {record.name}")

    def prepare(self, image: Image.Image) -> Image.Image:
        """Orient, convert to RGB and reduce to the analysis resolution."""
        if image.format == "JPEG":
            # Ask the decoder to downscale early for large inputs
            image.draft("RGB", (self.max_edge, self.max_edge))
        image = ImageOps.exif_transpose(image)
        rgb = image.convert("RGB")
        if max(rgb.size) > self.max_edge:
            rgb.thumbnail((self.max_edge, self.max_edge), Image.Resampling.BILINEAR)
        return rgb

    def analyze_image(self, image: Image.Image, record: Optional[PhotoRecord] = None) -> QualityScore:
        """Score an already decoded image.

        The result only depends on the pixels and on the source width from
        ``record`` (which decides the resolution bonus).
        """
        source_width = record.width if record and record.width else image.width
        source_height = record.height if record and record.height else image.height

        rgb = self.prepare(image)
        width, height = rgb.size
        if width < 3 or height < 3:
            raise AnalysisError(f"Image too small to analyse: {width}x{height}")

        gray = rgb.convert("L")
        contrast = local_contrast_map(gray)

        sharpness = calculate_sharpness(gray)
        lighting = calculate_lighting(gray)
        composition = calculate_composition(contrast)
        subject_center = find_subject_center(contrast)
        dominant = extract_dominant_colors(rgb)

        bonus = config.HIGH_RESOLUTION_BONUS if source_width >= config.HIGH_RESOLUTION_WIDTH else 0
        overall = _clamp_score(
            sharpness * config.SHARPNESS_WEIGHT
            + lighting * config.LIGHTING_WEIGHT
            + composition * config.COMPOSITION_WEIGHT
            + bonus
        )

        aspect = source_width / source_height if source_height else 1.0
        return QualityScore(
            overall=overall,
            sharpness=sharpness,
            lighting=lighting,
            composition=composition,
            subject_center=subject_center,
            aspect_ratio=aspect,
            dominant_colors=tuple(dominant),
            is_portrait=source_height > source_width,
            is_landscape=source_width > source_height,
        )


def local_contrast_map(gray: Image.Image, radius: int = config.LOCAL_CONTRAST_RADIUS) -> Image.Image:
    """Per-pixel ``max - min`` luminance in a square window of ``radius``."""
    size = radius * 2 + 1
    high = gray.filter(ImageFilter.MaxFilter(size))
    low = gray.filter(ImageFilter.MinFilter(size))
    return ImageChops.subtract(high, low)


def calculate_sharpness(gray: Image.Image) -> int:
    width, height = gray.size
    px = gray.load()
    total = 0
    count = 0
    for y in range(1, height - 1, 3):
        for x in range(1, width - 1, 3):
            centre = px[x, y]
            total += (
                abs(centre - px[x, y - 1])
                + abs(centre - px[x, y + 1])
                + abs(centre - px[x - 1, y])
                + abs(centre - px[x + 1, y])
            )
            count += 1
    if count == 0:
        raise AnalysisError("No interior pixels to sample")
    return min(100, _round_half_up((total / count) * 2))


def calculate_lighting(gray: Image.Image) -> int:
    samples = list(gray.getdata())[::4]
    if not samples:
        raise AnalysisError("No pixels to sample")
    count = len(samples)
    mean = sum(samples) / count
    under = sum(1 for v in samples if v < 30) / count
    over = sum(1 for v in samples if v > 240) / count

    score = 100 - abs(mean - 128) * 0.5
    score -= under * 50
    score -= over * 30
    return _clamp_score(score)


def calculate_composition(contrast: Image.Image) -> int:
    width, height = contrast.size
    px = contrast.load()
    thirds_x = (width // 3, (width * 2) // 3)
    thirds_y = (height // 3, (height * 2) // 3)
    thirds = [px[x, y] for y in thirds_y for x in thirds_x]
    centre = px[width // 2, height // 2]

    avg_thirds = sum(thirds) / 4
    balance = 20 if avg_thirds > centre * 0.7 else 0
    return min(100, _round_half_up(avg_thirds + balance))


def find_subject_center(contrast: Image.Image, stride: int = 5) -> Tuple[float, float]:
    width, height = contrast.size
    px = contrast.load()
    total_x = total_y = total_weight = 0.0
    for y in range(0, height, stride):
        for x in range(0, width, stride):
            value = px[x, y]
            weight = value * value
            total_x += x * weight
            total_y += y * weight
            total_weight += weight
    if total_weight == 0:
        return (0.5, 0.5)
    return (total_x / total_weight / width, total_y / total_weight / height)


def extract_dominant_colors(rgb: Image.Image, limit: int = 3) -> List[str]:
    counts: Counter = Counter()
    for r, g, b in list(rgb.getdata())[::10]:
        counts[(_quantize(r), _quantize(g), _quantize(b))] += 1
    return [f"#{r:02x}{g:02x}{b:02x}" for (r, g, b), _ in counts.most_common(limit)]


def _quantize(channel: int) -> int:
    return min(255, _round_half_up(channel / 32) * 32)
