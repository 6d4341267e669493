"""Subject-aware crop placement for photos inside layout frames."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import CropTransform, Geometry, QualityScore


@dataclass(frozen=True)
class CropWindow:
    """Crop rectangle in normalised image coordinates (0-1)."""

    x: float
    y: float
    width: float
    height: float


def calculate_smart_crop(quality: QualityScore, target_aspect: float) -> CropWindow:
    """Largest ``target_aspect`` window centred on the subject, kept inside the image."""
    source_aspect = quality.aspect_ratio or 1.0
    subject_x, subject_y = quality.subject_center

    if target_aspect <= 0:
        return CropWindow(0.0, 0.0, 1.0, 1.0)

    if source_aspect > target_aspect:
        # Source is wider: crop horizontally
        width = target_aspect / source_aspect
        x = max(0.0, min(1.0 - width, subject_x - width / 2))
        return CropWindow(x, 0.0, width, 1.0)

    height = source_aspect / target_aspect
    y = max(0.0, min(1.0 - height, subject_y - height / 2))
    return CropWindow(0.0, y, 1.0, height)


def crop_for_slot(quality: QualityScore, slot: Geometry, page_aspect: float = 1.0) -> CropTransform:
    """Translate the smart crop for ``slot`` into the element's pan values."""
    if slot.height <= 0:
        return CropTransform()
    window = calculate_smart_crop(quality, (slot.width / slot.height) * page_aspect)
    return CropTransform(
        x=_pan(window.x, window.width),
        y=_pan(window.y, window.height),
    )


def _pan(offset: float, extent: float) -> float:
    free = 1.0 - extent
    if free <= 1e-9:
        return 50.0
    return round(offset / free * 100, 2)
