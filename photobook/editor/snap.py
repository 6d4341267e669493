"""Snap-to-guide geometry for dragging and resizing.

Targets are the page's 0/50/100 lines plus the edges and centre lines of
every other element. A coordinate snaps when it is strictly closer than
the threshold to a target; the target then becomes the visible guide.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .. import config
from ..models import Geometry, PageElement

VERTICAL = "vertical"
HORIZONTAL = "horizontal"

_PAGE_LINES = (0.0, 50.0, 100.0)


@dataclass(frozen=True)
class SnapGuide:
    orientation: str  # "vertical" lines snap x, "horizontal" lines snap y
    position: float


@dataclass(frozen=True)
class SnapTargets:
    x: Tuple[float, ...] = _PAGE_LINES
    y: Tuple[float, ...] = _PAGE_LINES


@dataclass
class SnapResult:
    x: float
    y: float
    guides: List[SnapGuide] = field(default_factory=list)


def snap_targets(elements: Iterable[PageElement], active_id: Optional[str] = None) -> SnapTargets:
    """Alignment lines for every element except ``active_id``."""
    xs: List[float] = list(_PAGE_LINES)
    ys: List[float] = list(_PAGE_LINES)
    for element in elements:
        if element.id == active_id:
            continue
        xs.extend((element.x, element.x + element.width, element.x + element.width / 2))
        ys.extend((element.y, element.y + element.height, element.y + element.height / 2))
    return SnapTargets(x=tuple(dict.fromkeys(xs)), y=tuple(dict.fromkeys(ys)))


def snap_value(
    value: float,
    targets: Sequence[float],
    threshold: float = config.SNAP_THRESHOLD,
) -> Tuple[float, Optional[float]]:
    """Return ``(snapped, guide)``; ``guide`` is ``None`` when nothing is in range."""
    best: Optional[float] = None
    best_diff = threshold
    for target in targets:
        diff = abs(target - value)
        if diff < best_diff:
            best_diff = diff
            best = target
    if best is None:
        return value, None
    return best, best


def _snap_axis(
    start: float,
    extent: float,
    targets: Sequence[float],
    threshold: float,
) -> Tuple[float, Optional[float]]:
    # Reference points: leading edge, centre, trailing edge
    offsets = (0.0, extent / 2, extent)
    best_diff = threshold
    snapped: Optional[float] = None
    guide: Optional[float] = None
    for target in targets:
        for offset in offsets:
            diff = abs(target - (start + offset))
            if diff < best_diff:
                best_diff = diff
                snapped = target - offset
                guide = target
    if snapped is None:
        return start, None
    return snapped, guide


def snap_move(
    x: float,
    y: float,
    width: float,
    height: float,
    targets: SnapTargets,
    threshold: float = config.SNAP_THRESHOLD,
) -> SnapResult:
    """Snap a moving element so one of its edges or its centre meets a target."""
    new_x, guide_x = _snap_axis(x, width, targets.x, threshold)
    new_y, guide_y = _snap_axis(y, height, targets.y, threshold)
    result = SnapResult(new_x, new_y)
    if guide_x is not None:
        result.guides.append(SnapGuide(VERTICAL, guide_x))
    if guide_y is not None:
        result.guides.append(SnapGuide(HORIZONTAL, guide_y))
    return result


def snap_resize(
    handle: str,
    geometry: Geometry,
    targets: SnapTargets,
    threshold: float = config.SNAP_THRESHOLD,
    min_size: float = config.MIN_ELEMENT_SIZE,
) -> Tuple[Geometry, List[SnapGuide]]:
    """Snap the edges moved by ``handle`` (any of ``n``, ``s``, ``e``, ``w``).

    The opposite edge stays fixed. A snap that would shrink the element below
    ``min_size`` is ignored.
    """
    x, y, width, height = geometry.x, geometry.y, geometry.width, geometry.height
    guides: List[SnapGuide] = []

    if "e" in handle:
        right, guide = snap_value(x + width, targets.x, threshold)
        if guide is not None and right - x >= min_size:
            width = right - x
            guides.append(SnapGuide(VERTICAL, guide))
    elif "w" in handle:
        left, guide = snap_value(x, targets.x, threshold)
        if guide is not None and (x + width) - left >= min_size:
            width = (x + width) - left
            x = left
            guides.append(SnapGuide(VERTICAL, guide))

    if "s" in handle:
        bottom, guide = snap_value(y + height, targets.y, threshold)
        if guide is not None and bottom - y >= min_size:
            height = bottom - y
            guides.append(SnapGuide(HORIZONTAL, guide))
    elif "n" in handle:
        top, guide = snap_value(y, targets.y, threshold)
        if guide is not None and (y + height) - top >= min_size:
            height = (y + height) - top
            y = top
            guides.append(SnapGuide(HORIZONTAL, guide))

    return Geometry(x, y, width, height), guides


def guides_on(geometry: Geometry, guides: Iterable[SnapGuide], tolerance: float = 1e-6) -> List[SnapGuide]:
    """Keep the guides that an edge or centre line of ``geometry`` still meets."""
    kept: List[SnapGuide] = []
    for guide in guides:
        if guide.orientation == VERTICAL:
            start, extent = geometry.x, geometry.width
        else:
            start, extent = geometry.y, geometry.height
        lines = (start, start + extent / 2, start + extent)
        if any(abs(line - guide.position) <= tolerance for line in lines):
            kept.append(guide)
    return kept
