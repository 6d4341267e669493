"""Layout templates and layout selection.

Templates are static sets of slots in page percentages. The registry holds
two families:

* the generator family used when pages are composed automatically
  (``full``, ``classic-*``, ``split-*``, ``diagonal``, ``focus-*``,
  ``three-*``), where a template with ``n`` slots is meant for ``n`` photos;
* the editor presets offered to the user when re-laying out a page.

Unknown template ids never raise at lookup time; they resolve to the
default template with a warning.
"""

from __future__ import annotations

import json
import logging
import random
from collections import Counter
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import config
from .errors import LayoutError
from .models import Geometry, LayoutTemplate, Page, Prefill, new_id

LOGGER = logging.getLogger(__name__)

COVER = "cover"
OPENING = "opening"
CONTENT = "content"
CLOSING = "closing"
PAGE_ROLES = (COVER, OPENING, CONTENT, CLOSING)


def _template(template_id: str, name: str, slots, tags=()) -> LayoutTemplate:
    return LayoutTemplate(
        id=template_id,
        name=name,
        slots=tuple(Geometry(*slot) for slot in slots),
        tags=tuple(tags),
    )


_DEFAULT_TEMPLATES: List[LayoutTemplate] = [
    # Generator family
    _template("full", "Full page", [(0, 0, 100, 100)], ["generator", "hero"]),
    _template("classic-top", "Classic top", [(10, 8, 80, 62)], ["generator", "minimal"]),
    _template("classic-bottom", "Classic bottom", [(10, 30, 80, 62)], ["generator", "minimal"]),
    _template("split-v", "Side by side", [(4, 4, 44, 92), (52, 4, 44, 92)], ["generator", "grid"]),
    _template("split-h", "Stacked", [(4, 4, 92, 44), (4, 52, 92, 44)], ["generator", "grid"]),
    _template("diagonal", "Diagonal", [(4, 4, 58, 58), (38, 38, 58, 58)], ["generator", "collage"]),
    _template(
        "focus-left",
        "Focus left",
        [(4, 4, 60, 92), (68, 4, 28, 44), (68, 52, 28, 44)],
        ["generator", "featured"],
    ),
    _template(
        "focus-right",
        "Focus right",
        [(36, 4, 60, 92), (4, 4, 28, 44), (4, 52, 28, 44)],
        ["generator", "featured"],
    ),
    _template(
        "three-col",
        "Three columns",
        [(4, 4, 28, 92), (36, 4, 28, 92), (68, 4, 28, 92)],
        ["generator", "collage"],
    ),
    _template(
        "three-row",
        "Three rows",
        [(4, 4, 92, 28), (4, 36, 92, 28), (4, 68, 92, 28)],
        ["generator", "collage"],
    ),
    # Editor presets
    _template("full-bleed", "Full bleed", [(0, 0, 100, 100)], ["preset", "hero"]),
    _template(
        "two-horizontal",
        "Two horizontal",
        [(2, 2, 47, 96), (51, 2, 47, 96)],
        ["preset", "grid"],
    ),
    _template(
        "two-vertical",
        "Two vertical",
        [(2, 2, 96, 47), (2, 51, 96, 47)],
        ["preset", "grid"],
    ),
    _template(
        "three-grid",
        "Three photos",
        [(2, 2, 47, 47), (51, 2, 47, 47), (2, 51, 96, 47)],
        ["preset", "collage"],
    ),
    _template(
        "four-grid",
        "Collage",
        [(2, 2, 47, 47), (51, 2, 47, 47), (2, 51, 47, 47), (51, 51, 47, 47)],
        ["preset", "collage"],
    ),
    _template(
        "featured",
        "Featured",
        [(2, 2, 65, 96), (69, 2, 29, 47), (69, 51, 29, 47)],
        ["preset", "featured"],
    ),
    _template("panorama", "Panorama", [(0, 20, 100, 60)], ["preset", "hero"]),
    _template("corner", "Corner", [(5, 5, 60, 60), (68, 55, 27, 40)], ["preset", "minimal"]),
]

LAYOUTS_BY_COUNT: Dict[int, List[str]] = {
    1: ["full", "classic-top", "classic-bottom"],
    2: ["split-v", "split-h", "diagonal"],
    3: ["focus-left", "focus-right", "three-col", "three-row"],
}


class LayoutTemplates:
    """Registry of layout templates keyed by id."""

    TEMPLATES: Dict[str, LayoutTemplate] = {t.id: t for t in _DEFAULT_TEMPLATES}

    @classmethod
    def get_template(cls, template_id: Optional[str]) -> LayoutTemplate:
        """Return ``template_id`` or the default template when it is unknown."""
        template = cls.TEMPLATES.get(template_id) if template_id else None
        if template is None:
            LOGGER.warning(
                "Layout '%s' not found, falling back to '%s'",
                template_id,
                config.DEFAULT_LAYOUT_ID,
            )
            template = cls.TEMPLATES[config.DEFAULT_LAYOUT_ID]
        return template

    @classmethod
    def has_template(cls, template_id: str) -> bool:
        return template_id in cls.TEMPLATES

    @classmethod
    @lru_cache(maxsize=None)
    def get_template_ids(cls) -> List[str]:
        return sorted(cls.TEMPLATES.keys())

    @classmethod
    @lru_cache(maxsize=None)
    def get_templates_by_tag(cls, tag: str) -> List[LayoutTemplate]:
        return [template for template in cls.TEMPLATES.values() if tag in template.tags]

    @classmethod
    def _invalidate_caches(cls) -> None:
        cls.get_template_ids.cache_clear()
        cls.get_templates_by_tag.cache_clear()

    @classmethod
    def add_custom_template(cls, template: LayoutTemplate) -> None:
        if template.id in cls.TEMPLATES:
            raise LayoutError(f"Layout '{template.id}' already exists")
        cls.TEMPLATES[template.id] = template
        LOGGER.info("Added new layout: %s", template.id)
        cls._invalidate_caches()

    @classmethod
    def remove_template(cls, template_id: str) -> None:
        if template_id == config.DEFAULT_LAYOUT_ID:
            raise LayoutError(f"Layout '{template_id}' is the fallback and cannot be removed")
        try:
            del cls.TEMPLATES[template_id]
        except KeyError:
            raise LayoutError(f"Layout '{template_id}' not found") from None
        LOGGER.info("Removed layout: %s", template_id)
        cls._invalidate_caches()

    @classmethod
    def reset(cls) -> None:
        """Restore the built-in templates, dropping custom ones."""
        cls.TEMPLATES = {t.id: t for t in _DEFAULT_TEMPLATES}
        cls._invalidate_caches()

    @classmethod
    def save_templates(cls, file_path: str) -> None:
        """Save all templates to a JSON file."""
        try:
            path = Path(file_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            data = {tid: template.to_dict() for tid, template in cls.TEMPLATES.items()}
            with path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            LOGGER.info("Saved layouts to %s", file_path)
        except OSError as e:
            LOGGER.error("Failed to save layouts: %s", e)
            raise

    @classmethod
    def load_templates(cls, file_path: str) -> None:
        """Load templates from a JSON file, replacing those with the same id."""
        try:
            path = Path(file_path)
            if not path.exists():
                raise FileNotFoundError(f"Layout file not found: {file_path}")
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            for template_data in data.values():
                template = LayoutTemplate.from_dict(template_data)
                cls.TEMPLATES[template.id] = template
            LOGGER.info("Loaded layouts from %s", file_path)
            cls._invalidate_caches()
        except (OSError, ValueError) as e:
            LOGGER.error("Failed to load layouts: %s", e)
            raise


def get_template(template_id: Optional[str]) -> LayoutTemplate:
    return LayoutTemplates.get_template(template_id)


def select_layout(
    photo_count: int,
    page_role: str,
    previous_layout_id: Optional[str] = None,
    has_hero_photo: bool = False,
    rng: Optional[random.Random] = None,
) -> str:
    """Pick a layout id for a page.

    Cover and opening pages always use ``full`` and closing pages a calm one
    or two photo layout. Other pages draw from the templates for
    ``min(photo_count, 3)`` photos, avoiding ``previous_layout_id`` unless it
    is the only candidate, and preferring ``focus`` layouts when a hero photo
    is on the page.
    """
    if page_role in (COVER, OPENING):
        return config.COVER_LAYOUT_ID
    if page_role == CLOSING:
        return "classic-top" if photo_count == 1 else "split-h"

    rng = rng or random.Random()
    count = max(1, min(photo_count, 3))
    available = LAYOUTS_BY_COUNT.get(count, LAYOUTS_BY_COUNT[2])

    filtered = [lid for lid in available if lid != previous_layout_id]
    choices = filtered or list(available)

    if has_hero_photo and count >= 2:
        focus = [lid for lid in choices if "focus" in lid]
        if focus:
            return rng.choice(focus)
    return rng.choice(choices)


def generate_prefills_from_layout(
    layout_id: Optional[str],
    id_factory: Callable[[str], str] = new_id,
) -> List[Prefill]:
    """One fresh empty prefill per slot of ``layout_id`` (default on unknown)."""
    template = get_template(layout_id)
    return [
        Prefill(id=id_factory("prefill"), slot_index=index, geometry=slot)
        for index, slot in enumerate(template.slots)
    ]


def layout_suggestions(
    photo_count: int,
    previous_layout_id: Optional[str] = None,
    limit: int = 4,
) -> List[str]:
    """Editor presets with room for ``photo_count`` photos, excluding the previous one."""
    suggestions = [
        template.id
        for template in LayoutTemplates.get_templates_by_tag("preset")
        if len(template.slots) >= photo_count and template.id != previous_layout_id
    ]
    return suggestions[:limit]


def layout_variety_score(pages: Sequence[Page]) -> float:
    """Higher when more distinct layouts are used and fewer are repeated."""
    if not pages:
        return 0.0
    counts = Counter(page.layout_id for page in pages if page.layout_id)
    if not counts:
        return 0.0
    unique = len(counts)
    max_repeats = max(counts.values())
    return (unique / len(pages)) * 100 - (max_repeats / len(pages)) * 20
