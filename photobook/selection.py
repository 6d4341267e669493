"""Inclusive photo selection.

Every photo is kept and tiered unless it is unusable; tiers only decide
where a photo is placed, never whether it is shown.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from . import config
from .models import PhotoRecord, QualityScore, SelectedPhoto, Tier

LOGGER = logging.getLogger(__name__)


def classify_tier(overall: float) -> Tier:
    if overall >= config.HERO_THRESHOLD:
        return Tier.HERO
    if overall >= config.FEATURED_THRESHOLD:
        return Tier.FEATURED
    if overall >= config.STANDARD_THRESHOLD:
        return Tier.STANDARD
    return Tier.SUPPORTING


def exclusion_reason(quality: QualityScore) -> Optional[str]:
    """Return why a photo is unusable, or ``None`` when it should be kept."""
    if quality.overall < config.MINIMUM_QUALITY_THRESHOLD:
        return "Quality too low to display clearly"
    if (
        quality.sharpness < config.EXTREME_SHARPNESS_THRESHOLD
        and quality.lighting < config.EXTREME_LIGHTING_THRESHOLD
    ):
        return "Image is both extremely blurry and dark"
    return None


def should_exclude(quality: QualityScore) -> bool:
    return exclusion_reason(quality) is not None


@dataclass
class SelectionResult:
    selected: List[SelectedPhoto] = field(default_factory=list)
    excluded: List[PhotoRecord] = field(default_factory=list)
    exclusion_reasons: Dict[str, str] = field(default_factory=dict)

    @property
    def stats(self) -> Dict[str, object]:
        by_tier = Counter(photo.tier.value for photo in self.selected)
        return {
            "total": len(self.selected) + len(self.excluded),
            "selected": len(self.selected),
            "excluded": len(self.excluded),
            "by_tier": {tier.value: by_tier.get(tier.value, 0) for tier in Tier},
        }


def select_photos(
    scored: Sequence[Tuple[PhotoRecord, QualityScore]],
    *,
    include_all: bool = False,
) -> SelectionResult:
    """Tier every photo and drop only the unusable ones.

    ``selected`` is stable-sorted from hero to supporting, so photos of the
    same tier keep their upload order.
    """
    result = SelectionResult()
    for record, quality in scored:
        reason = None if include_all else exclusion_reason(quality)
        if reason is not None:
            LOGGER.debug("Excluding %s: %s", record.name, reason)
            result.excluded.append(record)
            result.exclusion_reasons[record.identity_key] = reason
            continue
        tier = classify_tier(quality.overall)
        result.selected.append(SelectedPhoto(record, quality, tier, tier.description))

    result.selected.sort(key=lambda photo: photo.tier.rank)
    LOGGER.info(
        "Selected %d photos, excluded %d",
        len(result.selected),
        len(result.excluded),
    )
    return result


def group_by_tier(photos: Sequence[SelectedPhoto]) -> Dict[Tier, List[SelectedPhoto]]:
    groups: Dict[Tier, List[SelectedPhoto]] = {tier: [] for tier in Tier}
    for photo in photos:
        groups[photo.tier].append(photo)
    return groups


def target_page_count(photo_count: int) -> int:
    """Recommended number of pages for ``photo_count`` photos.

    Thin books get a generous minimum; larger books taper towards one page
    per 2.5-3.5 photos and never exceed 60 pages. Each bracket starts at the
    count the previous bracket ended on, so one more photo never yields a
    shorter book.
    """
    if photo_count <= 5:
        return max(6, photo_count + 2)
    if photo_count <= 15:
        return max(target_page_count(5), math.ceil(photo_count / 2) + 2)
    if photo_count <= 30:
        return max(target_page_count(15), math.ceil(photo_count / 2.5) + 2)
    if photo_count <= 60:
        return max(target_page_count(30), math.ceil(photo_count / 3))
    return min(config.MAX_PAGES, max(target_page_count(60), math.ceil(photo_count / 3.5)))


@dataclass(frozen=True)
class PhotosPerPage:
    min: int
    max: int
    avg: float


def photos_per_page_distribution(photo_count: int, page_count: int) -> PhotosPerPage:
    if page_count <= 0:
        return PhotosPerPage(0, 0, 0.0)
    avg = photo_count / page_count
    return PhotosPerPage(
        min=max(1, math.floor(avg)),
        max=min(4, math.ceil(avg) + 1),
        avg=round(avg, 1),
    )
